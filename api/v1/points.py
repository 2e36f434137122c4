from fastapi import APIRouter, Depends, Query
from typing import List
from schemas.points_schema import PointTransaction, UserPoints
from schemas.user_schema import UserInDB
from api.dependencies import get_current_user
from db.storage.base import Storage
from db.storage.factory import get_storage
from services import points_service
from utils.responses import no_store_json

router = APIRouter()

@router.get("/points/{creator_id}", response_model=UserPoints)
async def my_points(creator_id: int, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return no_store_json(await points_service.get_points(current_user, creator_id, storage))

@router.get("/points/{creator_id}/transactions", response_model=List[PointTransaction])
async def my_transactions(
    creator_id: int,
    limit: int = Query(50, ge=1, le=200),
    current_user: UserInDB = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return no_store_json(await points_service.get_transactions(current_user, creator_id, storage, limit=limit))
