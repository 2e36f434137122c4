from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from schemas.store_schema import (
    RedemptionPage,
    RedemptionStatusUpdate,
    StoreItem,
    StoreItemCreate,
    StoreItemUpdate,
    StoreRedemption,
)
from schemas.user_schema import UserInDB
from api.dependencies import get_current_user
from db.storage.base import Storage
from db.storage.factory import get_storage
from services import store_service
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter()

@router.get("/creators/{creator_id}/store", response_model=List[StoreItem])
async def public_store(creator_id: int, storage: Storage = Depends(get_storage)):
    return await store_service.list_store_items(creator_id, storage)

@router.get("/store/items", response_model=List[StoreItem])
async def my_store_items(current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return no_store_json(await store_service.list_own_store_items(current_user, storage))

@router.post("/store/items", response_model=StoreItem, status_code=201)
async def create_item(data: StoreItemCreate, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return await store_service.create_store_item(current_user, data, storage)

@router.put("/store/items/{item_id}", response_model=StoreItem)
async def update_item(item_id: int, data: StoreItemUpdate, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return await store_service.update_store_item(current_user, item_id, data, storage)

@router.delete("/store/items/{item_id}")
async def delete_item(item_id: int, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    await store_service.delete_store_item(current_user, item_id, storage)
    return {"message": "Store item deleted"}

@router.post("/store/items/{item_id}/redeem", response_model=StoreRedemption, status_code=201)
@timeit()
async def redeem(item_id: int, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return await store_service.redeem_store_item(current_user, item_id, storage)

@router.get("/store/redemptions", response_model=RedemptionPage)
async def redemptions(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status: Optional[str] = None,
    current_user: UserInDB = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return no_store_json(await store_service.list_redemptions(current_user, storage, limit=limit, offset=offset, status=status))

@router.patch("/store/redemptions/{redemption_id}", response_model=StoreRedemption)
async def update_redemption(redemption_id: int, data: RedemptionStatusUpdate, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return await store_service.update_redemption_status(current_user, redemption_id, data.status, storage)
