from datetime import datetime
from pydantic import BaseModel, Field, computed_field
from typing import List, Literal, Optional

RedemptionStatus = Literal["pending", "completed"]

class StoreItemCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    points_cost: int = Field(ge=1)
    max_quantity: Optional[int] = Field(default=None, ge=1)

class StoreItemUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    points_cost: Optional[int] = Field(default=None, ge=1)
    max_quantity: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None

class StoreItem(BaseModel):
    id: int
    creator_id: int
    title: str
    description: str
    points_cost: int
    max_quantity: Optional[int] = None
    current_quantity: int = 0
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @computed_field
    @property
    def is_available(self) -> bool:
        return self.is_active and (self.max_quantity is None or self.current_quantity < self.max_quantity)

class StoreRedemption(BaseModel):
    id: int
    store_item_id: int
    user_id: int
    creator_id: int
    points_spent: int
    status: RedemptionStatus = "pending"
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class StoreRedemptionDetail(StoreRedemption):
    user_username: str = "Unknown"
    user_email: str = "Unknown"
    store_item_title: str = "Unknown"
    store_item_description: str = "Unknown"

class RedemptionStatusUpdate(BaseModel):
    status: RedemptionStatus

class RedemptionPage(BaseModel):
    redemptions: List[StoreRedemptionDetail]
    total: int
