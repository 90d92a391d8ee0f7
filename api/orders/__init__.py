"""Buy order API endpoints."""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from auth import get_current_user
from database.models import BuyOrder
from errors import ExchangeError
from orders import BuyOrderManager

from ..errors import to_http_exception

router = APIRouter(
    prefix="/buy-orders",
    tags=["Buy Orders"]
)


class CreateBuyOrderRequest(BaseModel):
    """Request model for placing a buy order."""
    item_id: str
    max_price: int


class BulkBuyOrderRequest(CreateBuyOrderRequest):
    quantity: int = Field(ge=1, le=100)


@router.post("", response_model=BuyOrder)
async def create_buy_order(request: CreateBuyOrderRequest, user_id: str = Depends(get_current_user)):
    """Place a buy order, escrowing ``max_price``. Matches a listing if one qualifies."""
    try:
        return await BuyOrderManager().create_buy_order(user_id, request.item_id, request.max_price)
    except ExchangeError as e:
        raise to_http_exception(e)


@router.post("/bulk", response_model=List[BuyOrder])
async def create_buy_orders(request: BulkBuyOrderRequest, user_id: str = Depends(get_current_user)):
    try:
        return await BuyOrderManager().create_buy_orders(
            user_id, request.item_id, request.max_price, request.quantity
        )
    except ExchangeError as e:
        raise to_http_exception(e)


@router.get("", response_model=List[BuyOrder])
async def get_my_buy_orders(user_id: str = Depends(get_current_user)):
    return await BuyOrderManager().get_buy_orders_by_user(user_id)


@router.get("/item/{item_id}", response_model=List[BuyOrder])
async def get_buy_orders_for_item(item_id: str):
    """Active orders for an item, best bid first."""
    return await BuyOrderManager().get_active_buy_orders_for_item(item_id)


@router.get("/{order_id}", response_model=BuyOrder)
async def get_buy_order(order_id: UUID):
    try:
        return await BuyOrderManager().get_buy_order(order_id)
    except ExchangeError as e:
        raise to_http_exception(e)


@router.post("/{order_id}/cancel", response_model=BuyOrder)
async def cancel_buy_order(order_id: UUID, user_id: str = Depends(get_current_user)):
    try:
        return await BuyOrderManager().cancel_buy_order(order_id, user_id)
    except ExchangeError as e:
        raise to_http_exception(e)
