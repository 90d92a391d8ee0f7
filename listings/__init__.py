"""Listings module for managing marketplace listings.

This module provides functionality for:
- Listing one unit of an item for sale, escrowed out of the seller's inventory
- Cancelling a listing, which returns the unit to the seller
- Buying a listing outright at its price, less the platform fee
- Querying listings by id, seller or item

A listing is matched against standing buy orders as soon as it is created.
"""
import logging
from decimal import ROUND_FLOOR, Decimal
from typing import List, Optional
from uuid import UUID

from credits import CreditLedger
from database import Store, get_store, retry_on_conflict
from database.models import InventoryItem, ListingStatus, MarketListing, utcnow
from errors import (
    AlreadyProcessedError,
    ExchangeError,
    InsufficientInventoryError,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
    NotOwnerError,
)
from inventory import InventoryLedger
from matching import match_listing

logger = logging.getLogger(__name__)


class ListingError(ExchangeError):
    """Base exception for listing operations."""
    pass


class ListingNotFoundError(ListingError, NotFoundError):
    """Raised when a listing is not found."""
    pass


class InvalidPriceError(ListingError, InvalidRequestError):
    """Raised when a listing price is not a positive integer."""
    pass


class ItemNotSellableError(ListingError, InvalidRequestError):
    pass


class NotListingOwnerError(ListingError, NotOwnerError):
    pass


class ListingNotActiveError(ListingError, InvalidStateError):
    pass


class ListingAlreadyProcessedError(ListingError, AlreadyProcessedError):
    """Raised when buying a listing that is already sold or cancelled."""
    pass


class ListingItemUnavailableError(ListingError, InsufficientInventoryError):
    pass


def seller_payout(price: int, share: Optional[Decimal] = None) -> int:
    """Credits paid to the seller of a directly bought listing.

    Args:
        price: Listing price
        share: Seller's share of the price; defaults to ``seller_share``
            from settings

    Returns:
        ``floor(price * share)``
    """
    if share is None:
        from config import settings_conf
        share = settings_conf['seller_share']
    return int((Decimal(price) * Decimal(share)).to_integral_value(rounding=ROUND_FLOOR))


class ListingManager:
    """Manager class for handling listing operations."""

    def __init__(self, store: Optional[Store] = None):
        """Initialize the listing manager.

        Args:
            store: Optional store. If not provided, will get from database module.
        """
        self.store = store

    async def ensure_store(self) -> Store:
        if not self.store:
            self.store = await get_store()
        return self.store

    @retry_on_conflict
    async def create_listing(self, seller_id: str, inventory_item: InventoryItem,
                             price: int) -> MarketListing:
        """Create a new listing for one unit of an inventory row.

        The unit is escrowed out of the seller's inventory: a unique item is
        removed by its unique id, a stackable item is taken from the stack
        with the same ``(item_id, sellable, purchase_price)``. The new
        listing is then matched against active buy orders for the item.

        Args:
            seller_id: Listing user
            inventory_item: The inventory row to sell from
            price: Asking price in credits

        Returns:
            The listing; already ``sold`` if a buy order matched

        Raises:
            InvalidPriceError: If the price is not positive
            NotListingOwnerError: If the row belongs to another user
            ItemNotSellableError: If a stackable row is not sellable
            ListingItemUnavailableError: If the row is empty
            ItemNotFoundError: If the unique item is no longer held
            InsufficientItemsError: If the stack is no longer held
        """
        if not isinstance(price, int) or isinstance(price, bool) or price <= 0:
            raise InvalidPriceError(f"Price must be a positive integer, got {price!r}")
        if inventory_item.user_id != seller_id:
            raise NotListingOwnerError(f"Item does not belong to {seller_id}")
        if not inventory_item.is_unique and not inventory_item.sellable:
            raise ItemNotSellableError(f"Item {inventory_item.item_id} is not sellable")
        if inventory_item.amount < 1:
            raise ListingItemUnavailableError(f"No {inventory_item.item_id} left to list")

        store = await self.ensure_store()
        async with store.transaction() as session:
            unit = await InventoryLedger(session).take_one(seller_id, inventory_item)

            listing = await session.listings.insert(MarketListing(
                seller_id=seller_id,
                item_id=unit.item_id,
                price=price,
                metadata=unit.metadata,
                unique_id=unit.unique_id,
                purchase_price=unit.purchase_price,
                rarity=unit.rarity or 'common'
            ))
            logger.info(f"Listed {listing.item_id} by {seller_id} at {price} ({listing.id})")

            matched = await match_listing(session, listing)
            if matched:
                listing = matched[0]
            return listing

    @retry_on_conflict
    async def cancel_listing(self, listing_id: UUID, seller_id: str) -> MarketListing:
        """Cancel an active listing and return the unit to the seller.

        The returned unit is sellable and keeps its purchase price, metadata
        and unique id.
        """
        store = await self.ensure_store()
        async with store.transaction() as session:
            listing = await session.listings.get(listing_id, for_update=True)
            if not listing:
                raise ListingNotFoundError(f"Listing {listing_id} not found")
            if listing.seller_id != seller_id:
                raise NotListingOwnerError(f"Listing {listing_id} does not belong to {seller_id}")
            if listing.status != ListingStatus.ACTIVE:
                raise ListingNotActiveError(f"Listing {listing_id} is {listing.status.value}")

            await InventoryLedger(session).restore_item(
                seller_id,
                listing.item_id,
                metadata=listing.metadata,
                unique_id=listing.unique_id,
                sellable=True,
                purchase_price=listing.purchase_price,
                rarity=listing.rarity
            )

            listing.status = ListingStatus.CANCELLED
            listing.updated_at = utcnow()
            await session.listings.update(listing)
            logger.info(f"Listing {listing_id} cancelled by {seller_id}")
            return listing

    @retry_on_conflict
    async def buy_listing(self, listing_id: UUID, buyer_id: str) -> MarketListing:
        """Buy an active listing at its price.

        The buyer pays the full price; the seller receives ``seller_payout``
        of it and the remainder is kept as the platform fee. The buyer gets
        the unit as a sellable item with the listing's metadata, unique id,
        rarity and original purchase price.

        Raises:
            ListingNotFoundError: If the listing does not exist
            ListingAlreadyProcessedError: If it is no longer active
            InsufficientCreditsError: If the buyer cannot pay
        """
        store = await self.ensure_store()
        async with store.transaction() as session:
            listing = await session.listings.get(listing_id, for_update=True)
            if not listing:
                raise ListingNotFoundError(f"Listing {listing_id} not found")
            if listing.status != ListingStatus.ACTIVE:
                raise ListingAlreadyProcessedError(
                    f"Listing {listing_id} is already {listing.status.value}"
                )

            credits = CreditLedger(session)
            await credits.debit(buyer_id, listing.price)
            payout = seller_payout(listing.price)
            await credits.credit(listing.seller_id, payout)

            await InventoryLedger(session).restore_item(
                buyer_id,
                listing.item_id,
                metadata=listing.metadata,
                unique_id=listing.unique_id,
                sellable=True,
                purchase_price=listing.purchase_price,
                rarity=listing.rarity
            )

            now = utcnow()
            listing.status = ListingStatus.SOLD
            listing.buyer_id = buyer_id
            listing.sold_at = now
            listing.updated_at = now
            await session.listings.update(listing)

            logger.info(
                f"Listing {listing_id} sold to {buyer_id} for {listing.price} "
                f"(seller {listing.seller_id} paid {payout})"
            )
            return listing

    async def get_listing(self, listing_id: UUID) -> MarketListing:
        store = await self.ensure_store()
        async with store.transaction() as session:
            listing = await session.listings.get(listing_id)
        if not listing:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        return listing

    async def get_listings_by_user(self, seller_id: str) -> List[MarketListing]:
        """All of a seller's listings in any status, newest first."""
        store = await self.ensure_store()
        async with store.transaction() as session:
            return await session.listings.list_by_seller(seller_id)

    async def get_active_listings_for_item(self, item_id: str) -> List[MarketListing]:
        """Active listings for an item, cheapest first, oldest first on ties."""
        store = await self.ensure_store()
        async with store.transaction() as session:
            return await session.listings.list_active(item_id)

    async def get_active_listings(self, limit: Optional[int] = None,
                                  offset: int = 0) -> List[MarketListing]:
        """Active listings across all items, newest first.

        Args:
            limit: Maximum number of listings to return
            offset: Number of listings to skip
        """
        store = await self.ensure_store()
        async with store.transaction() as session:
            return await session.listings.list_active(limit=limit, offset=offset)


__all__ = [
    'ListingManager',
    'seller_payout',
    'ListingError',
    'ListingNotFoundError',
    'InvalidPriceError',
    'ItemNotSellableError',
    'NotListingOwnerError',
    'ListingNotActiveError',
    'ListingAlreadyProcessedError',
    'ListingItemUnavailableError',
]
