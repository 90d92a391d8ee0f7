"""Matching of sell listings against standing buy orders.

Called at the end of listing and buy order creation, inside the creating
transaction. Each call makes at most one match: the best counter-order by
price, then by age.
"""
import logging
from typing import Optional, Tuple

from credits import CreditLedger
from database.models import BuyOrder, BuyOrderStatus, ListingStatus, MarketListing, utcnow
from inventory import InventoryLedger

logger = logging.getLogger(__name__)


async def match_listing(session, listing: MarketListing) -> Optional[Tuple[MarketListing, BuyOrder]]:
    """Match a new listing with the highest buy order at or above its price."""
    order = await session.buy_orders.best_bid(listing.item_id, listing.price)
    if not order:
        return None
    return await settle(session, listing, order)


async def match_buy_order(session, order: BuyOrder) -> Optional[Tuple[MarketListing, BuyOrder]]:
    """Match a new buy order with the cheapest listing at or under its price."""
    listing = await session.listings.best_ask(order.item_id, order.price)
    if not listing:
        return None
    return await settle(session, listing, order)


async def settle(session, listing: MarketListing, order: BuyOrder) -> Tuple[MarketListing, BuyOrder]:
    """Execute a matched sale.

    The buyer's credits were escrowed at ``order.price`` when the order was
    placed. The seller receives the full listing price, the buyer gets back
    whatever was escrowed above it, and the escrowed unit goes to the buyer
    as a sellable item bought at ``listing.price``.

    Returns:
        The sold listing and the fulfilled order
    """
    credits = CreditLedger(session)
    await credits.credit(listing.seller_id, listing.price)
    refund = order.price - listing.price
    if refund > 0:
        await credits.credit(order.buyer_id, refund)

    await InventoryLedger(session).restore_item(
        order.buyer_id,
        listing.item_id,
        metadata=listing.metadata,
        unique_id=listing.unique_id,
        sellable=True,
        purchase_price=listing.price,
        rarity=listing.rarity
    )

    now = utcnow()
    listing.status = ListingStatus.SOLD
    listing.buyer_id = order.buyer_id
    listing.sold_at = now
    listing.updated_at = now
    await session.listings.update(listing)

    order.status = BuyOrderStatus.FULFILLED
    order.fulfilled_at = now
    order.sale_id = listing.id
    order.updated_at = now
    await session.buy_orders.update(order)

    logger.info(
        f"Matched listing {listing.id} ({listing.item_id} at {listing.price}) "
        f"with order {order.id} from {order.buyer_id} (max {order.price}, refund {max(refund, 0)})"
    )
    return listing, order


__all__ = ['match_listing', 'match_buy_order', 'settle']
