from datetime import datetime
from pydantic import BaseModel
from typing import Optional

class PublicLinkCreate(BaseModel):
    expires_at: Optional[datetime] = None

class PublicLinkToggle(BaseModel):
    is_active: bool

class PublicLink(BaseModel):
    id: int
    token: str
    creator_id: int
    is_active: bool = True
    expires_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

class PublicLinkResponse(PublicLink):
    url: str
