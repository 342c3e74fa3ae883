from fastapi import APIRouter, Depends

from app.dependencies import get_store
from app.schemas import Envelope, RefreshTokenIn, UserCreate, UserUpdate
from app.services import user_service
from app.store import EntityStore

router = APIRouter(prefix="/api/v1/users", tags=["users"])

@router.get("", response_model=Envelope)
async def list_users(store: EntityStore = Depends(get_store)):
    return await user_service.get_users(store)

@router.get("/{user_id}", response_model=Envelope)
async def get_user(user_id: int, store: EntityStore = Depends(get_store)):
    return await user_service.get_user(store, user_id)

@router.post("", status_code=201, response_model=Envelope)
async def create_user(data: UserCreate, store: EntityStore = Depends(get_store)):
    return await user_service.create_user(store, data)

@router.patch("/{user_id}", response_model=Envelope)
async def update_user(user_id: int, data: UserUpdate, store: EntityStore = Depends(get_store)):
    return await user_service.update_user(store, user_id, data)

@router.delete("/{user_id}", response_model=Envelope)
async def delete_user(user_id: int, store: EntityStore = Depends(get_store)):
    return await user_service.delete_user(store, user_id)

# Refresh tokens are issued and verified by the auth layer; only bookkeeping lives here.

@router.post("/{user_id}/refresh-tokens", status_code=201, response_model=Envelope)
async def save_refresh_token(user_id: int, data: RefreshTokenIn, store: EntityStore = Depends(get_store)):
    return await user_service.save_refresh_token(store, user_id, data.token)

@router.post("/{user_id}/refresh-tokens/revoke", response_model=Envelope)
async def revoke_refresh_token(user_id: int, data: RefreshTokenIn, store: EntityStore = Depends(get_store)):
    return await user_service.revoke_refresh_token(store, user_id, data.token)

@router.post("/{user_id}/refresh-tokens/check", response_model=Envelope)
async def check_refresh_token(user_id: int, data: RefreshTokenIn, store: EntityStore = Depends(get_store)):
    valid = await user_service.has_refresh_token(store, user_id, data.token)
    return Envelope(message="Refresh token has been checked successfully!", data={"valid": valid})
