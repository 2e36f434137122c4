from typing import List
import logging

from core.errors import NotFoundError
from db.storage.base import Storage
from schemas.points_schema import PointTransaction, UserPoints
from schemas.user_schema import UserInDB

logger = logging.getLogger(__name__)


async def _require_creator(creator_id: int, storage: Storage) -> None:
    creator = await storage.get_user(creator_id)
    if not creator or creator.role != "creator":
        raise NotFoundError("Creator not found")


async def get_points(current_user: UserInDB, creator_id: int, storage: Storage) -> UserPoints:
    await _require_creator(creator_id, storage)
    return await storage.get_user_points(current_user.id, creator_id)


async def get_transactions(
    current_user: UserInDB, creator_id: int, storage: Storage, limit: int = 50
) -> List[PointTransaction]:
    await _require_creator(creator_id, storage)
    return await storage.get_user_point_transactions(current_user.id, creator_id=creator_id, limit=limit)
