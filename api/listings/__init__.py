"""Marketplace listing API endpoints."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from auth import get_current_user
from database.models import InventoryItem, MarketListing
from errors import ExchangeError
from listings import ListingManager

from ..errors import to_http_exception

router = APIRouter(
    prefix="/listings",
    tags=["Listings"]
)


class CreateListingRequest(BaseModel):
    """Request model for listing one unit of an inventory item.

    A unique item is identified by ``unique_id``; a stacked item by its
    ``sellable`` flag and ``purchase_price``.
    """
    item_id: str
    price: int
    unique_id: Optional[str] = None
    sellable: bool = True
    purchase_price: Optional[int] = None


@router.post("", response_model=MarketListing)
async def create_listing(request: CreateListingRequest, user_id: str = Depends(get_current_user)):
    """List an item for sale. Matches a standing buy order if one qualifies."""
    item = InventoryItem(
        user_id=user_id,
        item_id=request.item_id,
        unique_id=request.unique_id,
        sellable=request.sellable,
        purchase_price=request.purchase_price
    )
    try:
        return await ListingManager().create_listing(user_id, item, request.price)
    except ExchangeError as e:
        raise to_http_exception(e)


@router.get("", response_model=List[MarketListing])
async def get_active_listings(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0)
):
    """Get active listings across all items, newest first."""
    return await ListingManager().get_active_listings(limit=limit, offset=offset)


@router.get("/item/{item_id}", response_model=List[MarketListing])
async def get_listings_for_item(item_id: str):
    return await ListingManager().get_active_listings_for_item(item_id)


@router.get("/user/{user_id}", response_model=List[MarketListing])
async def get_listings_by_user(user_id: str):
    return await ListingManager().get_listings_by_user(user_id)


@router.get("/{listing_id}", response_model=MarketListing)
async def get_listing(listing_id: UUID):
    try:
        return await ListingManager().get_listing(listing_id)
    except ExchangeError as e:
        raise to_http_exception(e)


@router.post("/{listing_id}/buy", response_model=MarketListing)
async def buy_listing(listing_id: UUID, user_id: str = Depends(get_current_user)):
    try:
        return await ListingManager().buy_listing(listing_id, user_id)
    except ExchangeError as e:
        raise to_http_exception(e)


@router.post("/{listing_id}/cancel", response_model=MarketListing)
async def cancel_listing(listing_id: UUID, user_id: str = Depends(get_current_user)):
    try:
        return await ListingManager().cancel_listing(listing_id, user_id)
    except ExchangeError as e:
        raise to_http_exception(e)
