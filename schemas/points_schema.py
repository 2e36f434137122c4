from datetime import datetime
from pydantic import BaseModel
from typing import Literal, Optional

TransactionType = Literal["earned", "spent"]

class UserPoints(BaseModel):
    user_id: int
    creator_id: int
    total_points: int = 0
    points_earned: int = 0
    points_spent: int = 0

    class Config:
        from_attributes = True

class PointTransaction(BaseModel):
    id: int
    user_id: int
    creator_id: int
    type: TransactionType
    amount: int
    reason: str
    related_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True
