from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from schemas.user_schema import Token
from services.user_service import login_user
from db.storage.base import Storage
from db.storage.factory import get_storage
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter()

@router.post("/login", response_model=Token)
@timeit()
async def login(form_data: OAuth2PasswordRequestForm = Depends(), storage: Storage = Depends(get_storage)):
    # username field accepts either the username or the email address
    return no_store_json(await login_user(form_data.username, form_data.password, storage))
