"""Trades API endpoints."""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from auth import get_current_user
from database.models import Trade, TradeItem
from errors import ExchangeError
from trades import TradeManager

from ..errors import to_http_exception

router = APIRouter(
    prefix="/trades",
    tags=["Trades"]
)


class StartTradeRequest(BaseModel):
    """Request model for opening (or resuming) a trade with another user."""
    with_user_id: str


@router.post("", response_model=Trade)
async def start_trade(request: StartTradeRequest, user_id: str = Depends(get_current_user)):
    """Get the pending trade with another user, creating it if needed."""
    try:
        return await TradeManager().start_or_get_pending_trade(user_id, request.with_user_id)
    except ExchangeError as e:
        raise to_http_exception(e)


@router.get("", response_model=List[Trade])
async def get_my_trades(user_id: str = Depends(get_current_user)):
    return await TradeManager().get_trades_by_user(user_id)


@router.get("/{trade_id}", response_model=Trade)
async def get_trade(trade_id: UUID):
    try:
        return await TradeManager().get_trade(trade_id)
    except ExchangeError as e:
        raise to_http_exception(e)


@router.post("/{trade_id}/items", response_model=Trade)
async def add_item(trade_id: UUID, item: TradeItem, user_id: str = Depends(get_current_user)):
    """Offer an item on the acting user's side. Clears both approvals."""
    try:
        return await TradeManager().add_item_to_trade(trade_id, user_id, item)
    except ExchangeError as e:
        raise to_http_exception(e)


@router.post("/{trade_id}/items/remove", response_model=Trade)
async def remove_item(trade_id: UUID, item: TradeItem, user_id: str = Depends(get_current_user)):
    """Withdraw an item from the acting user's side. Clears both approvals."""
    try:
        return await TradeManager().remove_item_from_trade(trade_id, user_id, item)
    except ExchangeError as e:
        raise to_http_exception(e)


@router.post("/{trade_id}/approve", response_model=Trade)
async def approve_trade(trade_id: UUID, user_id: str = Depends(get_current_user)):
    try:
        return await TradeManager().approve_trade(trade_id, user_id)
    except ExchangeError as e:
        raise to_http_exception(e)


@router.post("/{trade_id}/cancel", response_model=Trade)
async def cancel_trade(trade_id: UUID, user_id: str = Depends(get_current_user)):
    try:
        return await TradeManager().cancel_trade(trade_id, user_id)
    except ExchangeError as e:
        raise to_http_exception(e)
