from fastapi import APIRouter, Depends, File, UploadFile
from typing import List, Optional
from schemas.idea_schema import CsvImportResult, Idea, IdeaCreate, IdeaUpdate, IdeaWithPosition
from schemas.user_schema import UserInDB
from api.dependencies import get_current_user
from db.storage.base import Storage
from db.storage.factory import get_storage
from services import idea_service
from services.csv_import_service import import_ideas_csv
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter()

@router.get("/ideas", response_model=List[IdeaWithPosition])
@timeit()
async def list_ideas(creator_id: Optional[int] = None, storage: Storage = Depends(get_storage)):
    return no_store_json(await idea_service.list_leaderboard(storage, creator_id=creator_id))

@router.get("/ideas/{idea_id}", response_model=Idea)
async def get_idea(idea_id: int, storage: Storage = Depends(get_storage)):
    return await idea_service.get_idea_or_404(idea_id, storage)

@router.post("/ideas", response_model=Idea, status_code=201)
@timeit()
async def create_idea(data: IdeaCreate, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return await idea_service.create_idea(current_user, data, storage)

@router.post("/ideas/import-csv", response_model=CsvImportResult, status_code=201)
async def import_csv(file: UploadFile = File(...), current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    content = await file.read()
    return await import_ideas_csv(current_user, content, storage)

@router.put("/ideas/{idea_id}", response_model=Idea)
async def update_idea(idea_id: int, data: IdeaUpdate, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return await idea_service.update_idea(current_user, idea_id, data, storage)

@router.delete("/ideas/{idea_id}")
async def delete_idea(idea_id: int, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    await idea_service.delete_idea(current_user, idea_id, storage)
    return {"message": "Idea deleted"}

@router.post("/ideas/{idea_id}/vote", response_model=Idea)
@timeit()
async def vote(idea_id: int, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return no_store_json(await idea_service.vote_for_idea(current_user, idea_id, storage))

@router.post("/creators/{creator_id}/suggestions", response_model=Idea, status_code=201)
@timeit()
async def suggest(creator_id: int, data: IdeaCreate, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return await idea_service.suggest_idea(current_user, creator_id, data, storage)

@router.get("/me/pending-ideas", response_model=List[Idea])
async def pending_ideas(current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return no_store_json(await idea_service.get_pending_ideas(current_user, storage))

@router.post("/ideas/{idea_id}/approve", response_model=Idea)
async def approve(idea_id: int, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return await idea_service.approve_idea(current_user, idea_id, storage)

@router.delete("/ideas/{idea_id}/reject")
async def reject(idea_id: int, current_user: UserInDB = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    await idea_service.reject_idea(current_user, idea_id, storage)
    return {"message": "Suggestion rejected"}
