from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Literal, Optional

IdeaStatus = Literal["approved", "pending"]

class IdeaCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=280)

class IdeaUpdate(IdeaCreate):
    pass

class Idea(BaseModel):
    id: int
    title: str
    description: str
    votes: int = 0
    creator_id: int
    suggested_by: Optional[int] = None
    status: IdeaStatus = "approved"
    current_position: Optional[int] = None
    previous_position: Optional[int] = None
    created_at: datetime
    last_position_update: datetime

    class Config:
        from_attributes = True

class Vote(BaseModel):
    id: int
    idea_id: int
    user_id: Optional[int] = None
    session_id: Optional[str] = None
    voted_at: datetime

    class Config:
        from_attributes = True

class IdeaPosition(BaseModel):
    current: Optional[int] = None
    previous: Optional[int] = None
    change: int = 0

class IdeaWithPosition(BaseModel):
    id: int
    title: str
    description: str
    votes: int
    created_at: datetime
    creator_id: int
    status: IdeaStatus
    suggested_by: Optional[int] = None
    suggested_by_username: Optional[str] = None
    position: IdeaPosition

class IdeaQuota(BaseModel):
    count: int
    limit: int
    has_reached_limit: bool

class CsvImportResult(BaseModel):
    imported: int
    ideas: List[Idea]
