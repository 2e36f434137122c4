from fastapi import APIRouter, Depends
from typing import List
from schemas.user_schema import PriorityWeightUpdate, UserInDB
from schemas.youtube_schema import IdeaWithPriority, YoutubeScoreResult
from api.dependencies import get_current_user
from db.storage.base import Storage
from db.storage.factory import get_storage
from services import priority_service, youtube_service
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter()

@router.get("/ideas/{idea_id}/youtube-score")
async def cached_score(idea_id: int, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    result = await youtube_service.get_idea_youtube_score(current_user, idea_id, storage)
    return no_store_json({"score": result})

@router.post("/ideas/{idea_id}/youtube-score", response_model=YoutubeScoreResult)
@timeit()
async def refresh_score(idea_id: int, force: bool = False, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return no_store_json(await youtube_service.refresh_idea_youtube_score(current_user, idea_id, storage, force=force))

@router.get("/me/priority", response_model=List[IdeaWithPriority])
async def my_priorities(current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return no_store_json(await priority_service.get_ideas_with_priority(current_user, storage))

@router.put("/me/priority-weight")
async def set_priority_weight(data: PriorityWeightUpdate, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    weight = await priority_service.update_priority_weight(current_user, data.weight, storage)
    return no_store_json({"weight": weight})
