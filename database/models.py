"""Row models for the exchange tables.

These mirror the rows of ``users``, ``inventories``, ``trades``,
``market_listings`` and ``buy_orders``. Repositories return copies, so a
model can be modified freely by the caller without touching the store.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============== Enums ==============

class TradeStatus(str, Enum):
    """Trade lifecycle states."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELED = "canceled"


class ListingStatus(str, Enum):
    """Market listing lifecycle states."""
    ACTIVE = "active"
    SOLD = "sold"
    CANCELLED = "cancelled"


class BuyOrderStatus(str, Enum):
    """Buy order lifecycle states."""
    ACTIVE = "active"
    CANCELLED = "cancelled"
    FULFILLED = "fulfilled"


# ============== Users ==============

class User(BaseModel):
    """A user directory row; the engine only touches ``balance``."""
    user_id: str
    balance: int = Field(default=0, ge=0)
    username: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ============== Inventory ==============

class InventoryItem(BaseModel):
    """One stack of a stackable item or one unique item instance.

    A stack is identified by ``(user_id, item_id, sellable, purchase_price)``.
    A unique item has ``unique_id`` and ``metadata``, and ``amount`` is 1.
    """
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    item_id: str
    amount: int = Field(default=1, ge=0)
    metadata: Optional[Dict[str, Any]] = None
    unique_id: Optional[str] = None
    sellable: bool = False
    purchase_price: Optional[int] = None
    rarity: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_unique(self) -> bool:
        return self.unique_id is not None

    def stack_key(self):
        return (self.user_id, self.item_id, self.sellable, self.purchase_price)


class Inventory(BaseModel):
    user_id: str
    items: List[InventoryItem] = []


# ============== Trades ==============

class TradeItem(BaseModel):
    """A line on one side of a trade.

    Mirrors the identity fields of an inventory row. Nothing is removed
    from the owner's inventory until the trade completes.
    """
    item_id: str
    amount: int = Field(default=1, ge=1)
    metadata: Optional[Dict[str, Any]] = None
    unique_id: Optional[str] = None
    purchase_price: Optional[int] = None

    @property
    def is_unique(self) -> bool:
        return self.unique_id is not None

    def same_line(self, other: 'TradeItem') -> bool:
        if self.item_id != other.item_id:
            return False
        if self.is_unique or other.is_unique:
            return self.unique_id == other.unique_id
        return self.purchase_price == other.purchase_price


class Trade(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    from_user_id: str
    to_user_id: str
    from_user_items: List[TradeItem] = []
    to_user_items: List[TradeItem] = []
    approved_from_user: bool = False
    approved_to_user: bool = False
    status: TradeStatus = TradeStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(from_attributes=True)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.from_user_id, self.to_user_id)

    @property
    def pair(self):
        """Unordered user pair, as stored in ``pair_low``/``pair_high``."""
        return tuple(sorted((self.from_user_id, self.to_user_id)))


# ============== Marketplace ==============

class MarketListing(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    seller_id: str
    item_id: str
    price: int = Field(gt=0)
    status: ListingStatus = ListingStatus.ACTIVE
    metadata: Optional[Dict[str, Any]] = None
    unique_id: Optional[str] = None
    purchase_price: Optional[int] = None
    rarity: Optional[str] = "common"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    sold_at: Optional[datetime] = None
    buyer_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class BuyOrder(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    buyer_id: str
    item_id: str
    price: int = Field(gt=0, description="Maximum acceptable price, escrowed at creation")
    status: BuyOrderStatus = BuyOrderStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    fulfilled_at: Optional[datetime] = None
    sale_id: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True)
