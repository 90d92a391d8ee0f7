"""Inventory module for managing per-user item holdings.

This module provides functionality for:
- Adding stackable items (merged by item, sellable flag and purchase price)
- Adding unique items (one row per unit, each with its own unique id)
- Draining stacks largest-first and removing or transferring unique items
- Read-only sufficiency checks used before trades and listings

``InventoryLedger`` works inside a caller's open transaction and is what the
trade, listing and matching engines use. ``InventoryManager`` wraps each
ledger operation in its own transaction for direct callers.
"""
import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

from database import Store, get_store, retry_on_conflict
from database.models import Inventory, InventoryItem
from errors import ExchangeError, InsufficientInventoryError, InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)


class InventoryError(ExchangeError):
    """Base exception for inventory operations."""
    pass


class ItemNotFoundError(InventoryError, NotFoundError):
    """Raised when a unique item is not in the user's inventory."""
    pass


class InsufficientItemsError(InventoryError, InsufficientInventoryError):
    """Raised when a user holds fewer units than requested."""
    def __init__(self, item_id: str, available: int, requested: int):
        self.item_id = item_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient inventory for {item_id}: "
            f"available {available}, requested {requested}"
        )


class InvalidAmountError(InventoryError, InvalidRequestError):
    pass


def _check_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 1:
        raise InvalidAmountError(f"Amount must be a positive integer, got {amount!r}")


class InventoryLedger:
    """Inventory operations bound to an open store session."""

    def __init__(self, session):
        self.session = session
        self.rows = session.inventories

    async def get_inventory(self, user_id: str) -> Inventory:
        items = await self.rows.list(user_id)
        # Stacks before unique items of the same id
        items.sort(key=lambda i: (i.item_id, i.is_unique))
        return Inventory(user_id=user_id, items=items)

    async def get_amount(self, user_id: str, item_id: str) -> int:
        """Total units of ``item_id`` held, stacks and unique items alike."""
        return sum(r.amount for r in await self.rows.list(user_id, item_id))

    async def available(
        self,
        user_id: str,
        item_id: str,
        sellable: Optional[bool] = None,
        purchase_price: Optional[int] = None
    ) -> int:
        """Units held in stacks (no metadata), optionally filtered."""
        stacks = await self._stacks(user_id, item_id, sellable, purchase_price)
        return sum(s.amount for s in stacks)

    async def has_item(self, user_id: str, item_id: str, amount: int = 1) -> bool:
        return await self.get_amount(user_id, item_id) >= amount

    async def has_item_without_metadata(self, user_id: str, item_id: str, amount: int = 1) -> bool:
        return await self.available(user_id, item_id) >= amount

    async def has_item_without_metadata_sellable(self, user_id: str, item_id: str,
                                                 amount: int = 1) -> bool:
        return await self.available(user_id, item_id, sellable=True) >= amount

    async def find_unique(self, user_id: str, item_id: str, unique_id: str) -> Optional[InventoryItem]:
        return await self.rows.get_unique(user_id, item_id, unique_id)

    async def add_item(
        self,
        user_id: str,
        item_id: str,
        amount: int,
        metadata: Optional[Dict[str, Any]] = None,
        sellable: bool = False,
        purchase_price: Optional[int] = None,
        rarity: Optional[str] = None
    ) -> List[InventoryItem]:
        """Add units of an item.

        When ``metadata`` is given, even an empty dict, one unique row is
        created per unit, each carrying a copy of the metadata and a freshly
        generated unique id. With ``metadata=None``, the units are merged
        into the stack matching ``(item_id, sellable, purchase_price)`` or a
        new stack is created.

        Returns:
            The rows created or updated
        """
        _check_amount(amount)

        if metadata is not None:
            created = []
            for _ in range(amount):
                row = InventoryItem(
                    user_id=user_id,
                    item_id=item_id,
                    amount=1,
                    metadata=dict(metadata),
                    unique_id=str(uuid4()),
                    sellable=sellable,
                    purchase_price=purchase_price,
                    rarity=rarity or metadata.get('rarity')
                )
                created.append(await self.rows.insert(row))
            logger.debug(f"Added {amount} unique {item_id} to {user_id}")
            return created

        return [await self._merge_into_stack(user_id, item_id, amount, sellable, purchase_price, rarity)]

    async def restore_item(
        self,
        user_id: str,
        item_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        unique_id: Optional[str] = None,
        sellable: bool = True,
        purchase_price: Optional[int] = None,
        rarity: Optional[str] = None
    ) -> InventoryItem:
        """Put one escrowed unit into ``user_id``'s inventory.

        Unlike ``add_item``, a unique item keeps its unique id.
        """
        if unique_id is not None:
            row = InventoryItem(
                user_id=user_id,
                item_id=item_id,
                amount=1,
                metadata=dict(metadata or {}),
                unique_id=unique_id,
                sellable=sellable,
                purchase_price=purchase_price,
                rarity=rarity
            )
            return await self.rows.insert(row)
        return await self._merge_into_stack(user_id, item_id, 1, sellable, purchase_price, rarity)

    async def _merge_into_stack(self, user_id, item_id, amount, sellable, purchase_price, rarity):
        stack = await self.rows.find_stack(user_id, item_id, sellable, purchase_price, for_update=True)
        if stack:
            stack.amount += amount
            await self.rows.update(stack)
            logger.debug(f"Stacked {amount} {item_id} onto {user_id} (now {stack.amount})")
            return stack
        stack = InventoryItem(
            user_id=user_id,
            item_id=item_id,
            amount=amount,
            sellable=sellable,
            purchase_price=purchase_price,
            rarity=rarity
        )
        logger.debug(f"New stack of {amount} {item_id} for {user_id}")
        return await self.rows.insert(stack)

    async def _stacks(self, user_id, item_id, sellable=None, purchase_price=None, for_update=False):
        rows = await self.rows.list(user_id, item_id, for_update=for_update)
        return [
            r for r in rows
            if not r.is_unique
            and (sellable is None or r.sellable == sellable)
            and (purchase_price is None or r.purchase_price == purchase_price)
        ]

    async def remove_item(
        self,
        user_id: str,
        item_id: str,
        amount: int,
        sellable: Optional[bool] = None,
        purchase_price: Optional[int] = None
    ) -> List[InventoryItem]:
        """Drain stacks of ``item_id``, largest first.

        Only stacks (never unique items) are drained. ``sellable`` and
        ``purchase_price`` restrict which stacks qualify.

        Returns:
            The drained portions, one per stack touched, each with the
            stack's sellable flag and purchase price and the amount taken

        Raises:
            InsufficientItemsError: If the qualifying stacks hold fewer than
                ``amount`` units; nothing is removed
        """
        _check_amount(amount)

        stacks = await self._stacks(user_id, item_id, sellable, purchase_price, for_update=True)
        total = sum(s.amount for s in stacks)
        if total < amount:
            raise InsufficientItemsError(item_id, total, amount)

        drained = []
        remaining = amount
        for stack in sorted(stacks, key=lambda s: s.amount, reverse=True):
            if remaining <= 0:
                break
            take = min(remaining, stack.amount)
            drained.append(stack.model_copy(update={'amount': take}))
            if take == stack.amount:
                await self.rows.delete(stack.id)
            else:
                stack.amount -= take
                await self.rows.update(stack)
            remaining -= take

        logger.debug(f"Removed {amount} {item_id} from {user_id} across {len(drained)} stacks")
        return drained

    async def remove_sellable_item(self, user_id: str, item_id: str, amount: int,
                                   purchase_price: Optional[int] = None) -> List[InventoryItem]:
        return await self.remove_item(user_id, item_id, amount, sellable=True,
                                      purchase_price=purchase_price)

    async def remove_by_unique_id(self, user_id: str, item_id: str, unique_id: str) -> InventoryItem:
        row = await self.rows.get_unique(user_id, item_id, unique_id, for_update=True)
        if not row:
            raise ItemNotFoundError(f"Item {item_id} ({unique_id}) not found in {user_id}'s inventory")
        await self.rows.delete(row.id)
        logger.debug(f"Removed unique {item_id} ({unique_id}) from {user_id}")
        return row

    async def transfer_unique(self, from_user_id: str, to_user_id: str, item_id: str,
                              unique_id: str) -> InventoryItem:
        """Move one unique row to another owner, metadata and unique id unchanged."""
        row = await self.rows.get_unique(from_user_id, item_id, unique_id, for_update=True)
        if not row:
            raise ItemNotFoundError(
                f"Item {item_id} ({unique_id}) not found in {from_user_id}'s inventory"
            )
        row.user_id = to_user_id
        await self.rows.update(row)
        logger.debug(f"Transferred unique {item_id} ({unique_id}) from {from_user_id} to {to_user_id}")
        return row

    async def take_one(self, user_id: str, item: InventoryItem) -> InventoryItem:
        """Escrow one unit of the row ``item`` identifies.

        Unique items are identified by unique id, stacks by
        ``(item_id, sellable, purchase_price)``.

        Returns:
            The removed unit (amount 1)
        """
        if item.unique_id is not None:
            return await self.remove_by_unique_id(user_id, item.item_id, item.unique_id)

        stack = await self.rows.find_stack(user_id, item.item_id, item.sellable,
                                           item.purchase_price, for_update=True)
        if not stack:
            raise InsufficientItemsError(item.item_id, 0, 1)
        unit = stack.model_copy(update={'amount': 1})
        if stack.amount <= 1:
            await self.rows.delete(stack.id)
        else:
            stack.amount -= 1
            await self.rows.update(stack)
        return unit

    async def set_amount(self, user_id: str, item_id: str, amount: int) -> Optional[InventoryItem]:
        """Replace the user's stacks of ``item_id`` with one default stack.

        The default stack is not sellable and has no purchase price. An
        amount of 0 or less removes every stack. Unique items are untouched.
        """
        for stack in await self._stacks(user_id, item_id, for_update=True):
            await self.rows.delete(stack.id)
        if amount <= 0:
            return None
        stack = InventoryItem(user_id=user_id, item_id=item_id, amount=amount)
        return await self.rows.insert(stack)

    async def update_item_metadata(self, user_id: str, item_id: str, unique_id: str,
                                   metadata: Dict[str, Any]) -> InventoryItem:
        row = await self.rows.get_unique(user_id, item_id, unique_id, for_update=True)
        if not row:
            raise ItemNotFoundError(f"Item {item_id} ({unique_id}) not found in {user_id}'s inventory")
        row.metadata = dict(metadata)
        if metadata.get('rarity'):
            row.rarity = metadata['rarity']
        await self.rows.update(row)
        return row


class InventoryManager:
    """Runs each inventory operation in its own transaction."""

    def __init__(self, store: Optional[Store] = None):
        """Initialize the inventory manager.

        Args:
            store: Optional store. If not provided, will get from database module.
        """
        self.store = store

    async def ensure_store(self) -> Store:
        if not self.store:
            self.store = await get_store()
        return self.store

    async def _run(self, method: str, *args, **kwargs):
        store = await self.ensure_store()
        async with store.transaction() as session:
            return await getattr(InventoryLedger(session), method)(*args, **kwargs)

    async def get_inventory(self, user_id: str) -> Inventory:
        return await self._run('get_inventory', user_id)

    async def get_amount(self, user_id: str, item_id: str) -> int:
        return await self._run('get_amount', user_id, item_id)

    async def has_item(self, user_id: str, item_id: str, amount: int = 1) -> bool:
        return await self._run('has_item', user_id, item_id, amount)

    async def has_item_without_metadata(self, user_id: str, item_id: str, amount: int = 1) -> bool:
        return await self._run('has_item_without_metadata', user_id, item_id, amount)

    async def has_item_without_metadata_sellable(self, user_id: str, item_id: str,
                                                 amount: int = 1) -> bool:
        return await self._run('has_item_without_metadata_sellable', user_id, item_id, amount)

    async def find_unique(self, user_id: str, item_id: str, unique_id: str) -> Optional[InventoryItem]:
        return await self._run('find_unique', user_id, item_id, unique_id)

    @retry_on_conflict
    async def add_item(self, user_id: str, item_id: str, amount: int,
                       metadata: Optional[Dict[str, Any]] = None, sellable: bool = False,
                       purchase_price: Optional[int] = None) -> List[InventoryItem]:
        return await self._run('add_item', user_id, item_id, amount, metadata, sellable, purchase_price)

    @retry_on_conflict
    async def remove_item(self, user_id: str, item_id: str, amount: int) -> List[InventoryItem]:
        return await self._run('remove_item', user_id, item_id, amount)

    @retry_on_conflict
    async def remove_sellable_item(self, user_id: str, item_id: str, amount: int,
                                   purchase_price: Optional[int] = None) -> List[InventoryItem]:
        return await self._run('remove_sellable_item', user_id, item_id, amount, purchase_price)

    @retry_on_conflict
    async def remove_by_unique_id(self, user_id: str, item_id: str, unique_id: str) -> InventoryItem:
        return await self._run('remove_by_unique_id', user_id, item_id, unique_id)

    @retry_on_conflict
    async def transfer_unique(self, from_user_id: str, to_user_id: str, item_id: str,
                              unique_id: str) -> InventoryItem:
        return await self._run('transfer_unique', from_user_id, to_user_id, item_id, unique_id)

    @retry_on_conflict
    async def set_amount(self, user_id: str, item_id: str, amount: int) -> Optional[InventoryItem]:
        return await self._run('set_amount', user_id, item_id, amount)

    @retry_on_conflict
    async def update_item_metadata(self, user_id: str, item_id: str, unique_id: str,
                                   metadata: Dict[str, Any]) -> InventoryItem:
        return await self._run('update_item_metadata', user_id, item_id, unique_id, metadata)


__all__ = [
    'InventoryLedger',
    'InventoryManager',
    'InventoryError',
    'ItemNotFoundError',
    'InsufficientItemsError',
    'InvalidAmountError',
]
