from fastapi import APIRouter, Depends
from typing import Optional
from schemas.user_schema import (
    AudienceStats,
    ChangePasswordRequest,
    PremiumAccessStatus,
    ProfileUpdate,
    User,
    UserCreate,
    UserInDB,
)
from schemas.idea_schema import IdeaQuota
from api.dependencies import get_current_user, get_optional_user
from db.storage.base import Storage
from db.storage.factory import get_storage
from services import user_service
from services.idea_service import get_creator_page, get_idea_quota
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter()

@router.post("/signup", response_model=User, status_code=201)
@timeit()
async def signup(user: UserCreate, storage: Storage = Depends(get_storage)):
    return await user_service.create_user(user, storage)

@router.get("/me", response_model=User)
async def read_users_me(current_user: UserInDB = Depends(get_current_user)):
    return no_store_json(user_service.to_public(current_user))

@router.patch("/me/profile", response_model=User)
async def update_my_profile(data: ProfileUpdate, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return no_store_json(await user_service.update_profile(current_user, data, storage))

@router.post("/change-password")
@timeit()
async def change_password_endpoint(data: ChangePasswordRequest, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return no_store_json(await user_service.change_password(current_user, data, storage))

@router.post("/me/trial", response_model=User)
async def start_my_trial(current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return no_store_json(await user_service.start_trial(current_user, storage))

@router.get("/me/premium-status", response_model=PremiumAccessStatus)
async def my_premium_status(current_user: UserInDB = Depends(get_current_user)):
    return no_store_json(user_service.get_premium_status(current_user))

@router.get("/me/audience-stats", response_model=AudienceStats)
async def my_audience_stats(current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return no_store_json(await user_service.get_audience_stats(current_user, storage))

@router.get("/me/idea-quota", response_model=IdeaQuota)
async def my_idea_quota(current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return no_store_json(await get_idea_quota(current_user, storage))

@router.get("/creators/{username}")
@timeit()
async def creator_page(username: str, viewer: Optional[UserInDB] = Depends(get_optional_user), storage: Storage = Depends(get_storage)):
    return no_store_json(await get_creator_page(username, storage, viewer=viewer))
