"""Shareable leaderboard links."""
import secrets
import logging
from typing import Any, Dict, List

from core.config import settings
from core.errors import ForbiddenError, NotFoundError, ValidationError
from db.storage.base import Storage
from schemas.public_link_schema import PublicLink, PublicLinkCreate, PublicLinkResponse
from schemas.user_schema import UserInDB
from services.idea_service import require_creator
from services.user_service import to_public
from utils.dates import ensure_utc, utcnow

logger = logging.getLogger(__name__)


def generate_token() -> str:
    return secrets.token_hex(16)


def build_url(token: str) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/l/{token}"


def with_url(link: PublicLink) -> PublicLinkResponse:
    return PublicLinkResponse(**link.model_dump(), url=build_url(link.token))


def is_link_usable(link: PublicLink, now=None) -> bool:
    now = now or utcnow()
    if not link.is_active:
        return False
    return link.expires_at is None or ensure_utc(link.expires_at) > now


async def _get_owned_link(current_user: UserInDB, link_id: int, storage: Storage) -> PublicLink:
    link = await storage.get_public_link(link_id)
    if not link:
        raise NotFoundError("Public link not found")
    if link.creator_id != current_user.id:
        raise ForbiddenError("You can only manage your own links")
    return link


async def create_public_link(current_user: UserInDB, data: PublicLinkCreate, storage: Storage) -> PublicLinkResponse:
    require_creator(current_user, "share public links")
    if data.expires_at is not None and ensure_utc(data.expires_at) <= utcnow():
        raise ValidationError("Expiry must be in the future")
    link = await storage.create_public_link(current_user.id, generate_token(), ensure_utc(data.expires_at))
    logger.info(f"Public link {link.id} created by creator {current_user.id}")
    return with_url(link)


async def list_public_links(current_user: UserInDB, storage: Storage) -> List[PublicLinkResponse]:
    require_creator(current_user, "share public links")
    return [with_url(link) for link in await storage.get_user_public_links(current_user.id)]


async def toggle_public_link(current_user: UserInDB, link_id: int, is_active: bool, storage: Storage) -> PublicLinkResponse:
    await _get_owned_link(current_user, link_id, storage)
    return with_url(await storage.toggle_public_link_status(link_id, is_active))


async def delete_public_link(current_user: UserInDB, link_id: int, storage: Storage) -> None:
    await _get_owned_link(current_user, link_id, storage)
    await storage.delete_public_link(link_id)
    logger.info(f"Public link {link_id} deleted by creator {current_user.id}")


async def resolve_public_link(token: str, storage: Storage) -> Dict[str, Any]:
    link = await storage.get_public_link_by_token(token)
    if not link or not is_link_usable(link):
        raise NotFoundError("This link is invalid or has expired")
    creator = await storage.get_user(link.creator_id)
    if not creator:
        raise NotFoundError("This link is invalid or has expired")
    return {
        "creator": to_public(creator),
        "ideas": await storage.get_ideas_with_positions(creator_id=creator.id),
    }
