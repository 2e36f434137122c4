from datetime import timedelta
from typing import Any, Dict, Optional
import logging

from core.config import settings
from core.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from core.security import create_access_token, get_password_hash, verify_password
from db.storage.base import REQUIRED_PROFILE_FIELDS, Storage, drop_cleared
from schemas.user_schema import (
    AudienceStats,
    ChangePasswordRequest,
    PremiumAccessStatus,
    ProfileUpdate,
    SubscriptionUpdate,
    User,
    UserCreate,
    UserInDB,
)
from services import access_policy
from utils.timing import timeit

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Lowercase and strip so the same address cannot register twice"""
    return (email or "").strip().lower()


def to_public(user: UserInDB) -> User:
    """Drop credentials and billing references before a user leaves the API"""
    return User.model_validate(user.model_dump())


@timeit()
async def create_user(user: UserCreate, storage: Storage) -> User:
    """Register a new account"""
    email = normalize_email(user.email)
    if await storage.get_user_by_username(user.username):
        logger.warning(f"Signup rejected, username taken: {user.username}")
        raise ConflictError("Username already registered")
    if await storage.get_user_by_email(email):
        logger.warning(f"Signup rejected, email taken: {email}")
        raise ConflictError("Email already registered")

    created = await storage.create_user(
        username=user.username,
        email=email,
        hashed_password=get_password_hash(user.password),
        role=user.role,
    )
    logger.info(f"User registered: id={created.id} username={created.username} role={created.role}")
    return to_public(created)


async def authenticate_user(username: str, password: str, storage: Storage) -> Optional[UserInDB]:
    """Look the user up by username, then by email, and check the password"""
    user = await storage.get_user_by_username(username)
    if not user and "@" in (username or ""):
        user = await storage.get_user_by_email(normalize_email(username))
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


def issue_token(user: UserInDB) -> Dict[str, Any]:
    access_token = create_access_token(
        data={"sub": user.username, "user_id": user.id, "role": user.role},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return {"access_token": access_token, "token_type": "bearer"}


@timeit()
async def login_user(username: str, password: str, storage: Storage) -> Dict[str, Any]:
    user = await authenticate_user(username, password, storage)
    if not user:
        logger.warning(f"Failed login for {username}")
        raise UnauthorizedError("Incorrect username or password")
    logger.info(f"User logged in: {user.username}")
    return issue_token(user)


async def update_profile(current_user: UserInDB, data: ProfileUpdate, storage: Storage) -> User:
    changes = drop_cleared(data.model_dump(exclude_unset=True), REQUIRED_PROFILE_FIELDS)
    if "email" in changes:
        changes["email"] = normalize_email(changes["email"])
    updated = await storage.update_user_profile(current_user.id, changes)
    logger.info(f"Profile updated for user {current_user.id}: {sorted(changes)}")
    return to_public(updated)


async def change_password(current_user: UserInDB, request: ChangePasswordRequest, storage: Storage) -> Dict[str, str]:
    if not verify_password(request.current_password, current_user.hashed_password):
        raise ValidationError("Current password is incorrect")
    if request.current_password == request.new_password:
        raise ValidationError("New password must be different from the current password")
    await storage.update_user_password(current_user.id, get_password_hash(request.new_password))
    logger.info(f"Password changed for user {current_user.id}")
    return {"message": "Password changed successfully"}


async def start_trial(current_user: UserInDB, storage: Storage) -> User:
    if current_user.has_used_trial:
        logger.warning(f"Second trial refused for user {current_user.id}")
        raise ConflictError("Trial already used")
    updated = await storage.start_user_trial(current_user.id, settings.TRIAL_DAYS)
    logger.info(f"Trial started for user {current_user.id} until {updated.trial_end_date}")
    return to_public(updated)


async def update_subscription(user_id: int, data: SubscriptionUpdate, storage: Storage) -> User:
    """Apply a billing state change; has_used_trial can only ever be switched on"""
    updated = await storage.update_user_subscription(user_id, data.model_dump(exclude_unset=True))
    logger.info(f"Subscription for user {user_id} now {updated.subscription_status}")
    return to_public(updated)


async def get_user_by_stripe_customer_id(customer_id: str, storage: Storage) -> UserInDB:
    user = await storage.get_user_by_stripe_customer_id(customer_id)
    if not user:
        raise NotFoundError("No user for this billing customer")
    return user


def get_premium_status(current_user: UserInDB) -> PremiumAccessStatus:
    return access_policy.get_premium_access_status(current_user)


async def get_audience_stats(current_user: UserInDB, storage: Storage) -> AudienceStats:
    return await storage.get_audience_stats(current_user.id)


async def get_creator_by_username(username: str, storage: Storage) -> UserInDB:
    user = await storage.get_user_by_username(username)
    if not user or user.role != "creator":
        raise NotFoundError("Creator not found")
    return user
