"""Creator stores: item management, redemptions and their status."""
from typing import List, Optional
import logging

from core.config import settings
from core.errors import ForbiddenError, NotFoundError, ValidationError
from db.storage.base import Storage
from schemas.store_schema import (
    RedemptionPage,
    StoreItem,
    StoreItemCreate,
    StoreItemUpdate,
    StoreRedemption,
)
from schemas.user_schema import UserInDB
from services import access_policy
from services.idea_service import require_creator
from utils.timing import timeit

logger = logging.getLogger(__name__)


async def _get_owned_item(current_user: UserInDB, item_id: int, storage: Storage) -> StoreItem:
    item = await storage.get_store_item(item_id)
    if not item:
        raise NotFoundError("Store item not found")
    if item.creator_id != current_user.id:
        raise ForbiddenError("You can only manage your own store items")
    return item


async def list_store_items(creator_id: int, storage: Storage) -> List[StoreItem]:
    """Public storefront: active items only"""
    creator = await storage.get_user(creator_id)
    if not creator or creator.role != "creator":
        raise NotFoundError("Creator not found")
    return await storage.get_store_items(creator_id, active_only=True)


async def list_own_store_items(current_user: UserInDB, storage: Storage) -> List[StoreItem]:
    require_creator(current_user, "manage a store")
    return await storage.get_store_items(current_user.id)


async def create_store_item(current_user: UserInDB, data: StoreItemCreate, storage: Storage) -> StoreItem:
    require_creator(current_user, "manage a store")
    access_policy.require_premium_access(current_user)
    item = await storage.create_store_item(current_user.id, data, settings.MAX_ACTIVE_STORE_ITEMS)
    logger.info(f"Store item {item.id} created by creator {current_user.id} cost={item.points_cost}")
    return item


async def update_store_item(current_user: UserInDB, item_id: int, data: StoreItemUpdate, storage: Storage) -> StoreItem:
    await _get_owned_item(current_user, item_id, storage)
    return await storage.update_store_item(item_id, data, settings.MAX_ACTIVE_STORE_ITEMS)


async def delete_store_item(current_user: UserInDB, item_id: int, storage: Storage) -> None:
    await _get_owned_item(current_user, item_id, storage)
    await storage.delete_store_item(item_id)
    logger.info(f"Store item {item_id} deleted by creator {current_user.id}")


@timeit("redeem")
async def redeem_store_item(current_user: UserInDB, item_id: int, storage: Storage) -> StoreRedemption:
    return await storage.create_store_redemption(item_id, current_user.id)


async def list_redemptions(
    current_user: UserInDB,
    storage: Storage,
    limit: int = 10,
    offset: int = 0,
    status: Optional[str] = None,
) -> RedemptionPage:
    require_creator(current_user, "view redemptions")
    if status is not None and status not in ("pending", "completed"):
        raise ValidationError("status must be 'pending' or 'completed'")
    redemptions, total = await storage.get_store_redemptions(current_user.id, limit=limit, offset=offset, status=status)
    return RedemptionPage(redemptions=redemptions, total=total)


async def update_redemption_status(
    current_user: UserInDB, redemption_id: int, status: str, storage: Storage
) -> StoreRedemption:
    redemption = await storage.update_redemption_status(redemption_id, status, current_user.id)
    logger.info(f"Redemption {redemption_id} marked {redemption.status} by creator {current_user.id}")
    return redemption
