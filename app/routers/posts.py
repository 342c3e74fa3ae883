from fastapi import APIRouter, Depends

from app.dependencies import get_current_user_id, get_store
from app.schemas import Envelope, PostCreate, PostUpdate
from app.services import comment_service, post_service
from app.store import EntityStore

router = APIRouter(prefix="/api/v1/posts", tags=["posts"])

@router.get("", response_model=Envelope)
async def list_posts(store: EntityStore = Depends(get_store)):
    return await post_service.get_posts(store)

@router.get("/{post_id}", response_model=Envelope)
async def get_post(post_id: int, store: EntityStore = Depends(get_store)):
    return await post_service.get_post(store, post_id)

@router.get("/{post_id}/comments", response_model=Envelope)
async def list_post_comments(post_id: int, store: EntityStore = Depends(get_store)):
    return await comment_service.get_comments_by_post(store, post_id)

@router.post("", status_code=201, response_model=Envelope)
async def create_post(
    data: PostCreate,
    user_id: int = Depends(get_current_user_id),
    store: EntityStore = Depends(get_store),
):
    return await post_service.create_post(store, data, user_id)

@router.patch("/{post_id}", response_model=Envelope)
async def update_post(post_id: int, data: PostUpdate, store: EntityStore = Depends(get_store)):
    return await post_service.update_post(store, post_id, data)

@router.delete("/{post_id}", response_model=Envelope)
async def delete_post(post_id: int, store: EntityStore = Depends(get_store)):
    return await post_service.delete_post(store, post_id)
