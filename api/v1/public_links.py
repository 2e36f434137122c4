from fastapi import APIRouter, Depends
from typing import List
from schemas.public_link_schema import PublicLinkCreate, PublicLinkResponse, PublicLinkToggle
from schemas.user_schema import UserInDB
from api.dependencies import get_current_user
from db.storage.base import Storage
from db.storage.factory import get_storage
from services import public_link_service
from utils.responses import no_store_json

router = APIRouter()

@router.post("/public-links", response_model=PublicLinkResponse, status_code=201)
async def create_link(data: PublicLinkCreate, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return await public_link_service.create_public_link(current_user, data, storage)

@router.get("/public-links", response_model=List[PublicLinkResponse])
async def list_links(current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return no_store_json(await public_link_service.list_public_links(current_user, storage))

@router.patch("/public-links/{link_id}", response_model=PublicLinkResponse)
async def toggle_link(link_id: int, data: PublicLinkToggle, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return await public_link_service.toggle_public_link(current_user, link_id, data.is_active, storage)

@router.delete("/public-links/{link_id}")
async def delete_link(link_id: int, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    await public_link_service.delete_public_link(current_user, link_id, storage)
    return {"message": "Public link deleted"}

@router.get("/l/{token}")
async def resolve_link(token: str, storage: Storage = Depends(get_storage)):
    return no_store_json(await public_link_service.resolve_public_link(token, storage))
