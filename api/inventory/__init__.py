"""Inventory API endpoints."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from auth import get_admin_user, get_current_user, require_owner_or_admin
from database.models import Inventory, InventoryItem
from errors import ExchangeError
from inventory import InventoryManager

from ..errors import to_http_exception

router = APIRouter(
    prefix="/inventories",
    tags=["Inventory"]
)


class AddItemRequest(BaseModel):
    """Request model for adding items to an inventory."""
    item_id: str
    amount: int = Field(default=1, ge=1)
    metadata: Optional[Dict[str, Any]] = None
    sellable: bool = False
    purchase_price: Optional[int] = None


class RemoveItemRequest(BaseModel):
    item_id: str
    amount: int = Field(default=1, ge=1)
    unique_id: Optional[str] = None


class SetAmountRequest(BaseModel):
    amount: int


class TransferRequest(BaseModel):
    """Request model for giving a unique item to another user."""
    to_user_id: str
    item_id: str
    unique_id: str


@router.get("/{user_id}", response_model=Inventory)
async def get_inventory(user_id: str):
    """Get every stack and unique item a user holds."""
    return await InventoryManager().get_inventory(user_id)


@router.get("/{user_id}/{item_id}/amount")
async def get_amount(user_id: str, item_id: str):
    amount = await InventoryManager().get_amount(user_id, item_id)
    return {"user_id": user_id, "item_id": item_id, "amount": amount}


@router.post("/{user_id}/items", response_model=List[InventoryItem])
async def add_item(user_id: str, request: AddItemRequest, _: str = Depends(get_admin_user)):
    """Grant items to a user. Administrators only."""
    try:
        return await InventoryManager().add_item(
            user_id,
            request.item_id,
            request.amount,
            metadata=request.metadata,
            sellable=request.sellable,
            purchase_price=request.purchase_price
        )
    except ExchangeError as e:
        raise to_http_exception(e)


@router.post("/{user_id}/items/remove", response_model=List[InventoryItem])
async def remove_item(user_id: str, request: RemoveItemRequest,
                      acting_user: str = Depends(get_current_user)):
    """Remove stacked units, or one unique item when ``unique_id`` is given.

    Only the owner or an administrator may remove items.
    """
    require_owner_or_admin(user_id, acting_user)
    try:
        manager = InventoryManager()
        if request.unique_id:
            return [await manager.remove_by_unique_id(user_id, request.item_id, request.unique_id)]
        return await manager.remove_item(user_id, request.item_id, request.amount)
    except ExchangeError as e:
        raise to_http_exception(e)


@router.put("/{user_id}/items/{item_id}")
async def set_amount(user_id: str, item_id: str, request: SetAmountRequest,
                     _: str = Depends(get_admin_user)):
    """Overwrite a user's stacked amount of an item. Administrators only."""
    try:
        await InventoryManager().set_amount(user_id, item_id, request.amount)
        return {"user_id": user_id, "item_id": item_id, "amount": max(request.amount, 0)}
    except ExchangeError as e:
        raise to_http_exception(e)


@router.post("/transfer", response_model=InventoryItem)
async def transfer_unique(request: TransferRequest, user_id: str = Depends(get_current_user)):
    """Give one of the acting user's unique items to another user."""
    try:
        return await InventoryManager().transfer_unique(
            user_id, request.to_user_id, request.item_id, request.unique_id
        )
    except ExchangeError as e:
        raise to_http_exception(e)
