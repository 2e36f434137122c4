from typing import Optional
from fastapi import Depends, HTTPException, status
from core.security import oauth2_scheme, optional_oauth2_scheme, verify_token
from db.storage.base import Storage
from db.storage.factory import get_storage
from schemas.user_schema import UserInDB
import logging

logger = logging.getLogger(__name__)

_credentials_error = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)

async def _user_from_token(token: str, storage: Storage) -> Optional[UserInDB]:
    payload = verify_token(token)
    if not payload:
        return None
    user_id = payload.get("user_id")
    user = await storage.get_user(int(user_id)) if user_id is not None else None
    if not user:
        # Tokens minted before an id claim existed only carry the username
        user = await storage.get_user_by_username(payload.get("sub") or "")
    return user

async def get_current_user(token: str = Depends(oauth2_scheme), storage: Storage = Depends(get_storage)) -> UserInDB:
    user = await _user_from_token(token, storage)
    if not user:
        raise _credentials_error
    return user

async def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme), storage: Storage = Depends(get_storage)
) -> Optional[UserInDB]:
    if not token:
        return None
    return await _user_from_token(token, storage)
