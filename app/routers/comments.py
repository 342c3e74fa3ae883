from fastapi import APIRouter, Depends, Query

from app.dependencies import get_current_user_id, get_store
from app.schemas import CommentCreate, CommentUpdate, Envelope
from app.services import comment_service
from app.store import EntityStore

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])

@router.get("", response_model=Envelope)
async def list_comments(
    post_id: int | None = Query(None, description="Only top-level comments of this post."),
    store: EntityStore = Depends(get_store),
):
    if post_id is not None:
        return await comment_service.get_comments_by_post(store, post_id)
    return await comment_service.get_comments(store)

@router.get("/{comment_id}", response_model=Envelope)
async def get_comment(comment_id: int, store: EntityStore = Depends(get_store)):
    return await comment_service.get_comment(store, comment_id)

@router.post("", status_code=201, response_model=Envelope)
async def create_comment(
    data: CommentCreate,
    user_id: int = Depends(get_current_user_id),
    store: EntityStore = Depends(get_store),
):
    return await comment_service.create_comment(store, data, user_id)

@router.patch("/{comment_id}", response_model=Envelope)
async def update_comment(comment_id: int, data: CommentUpdate, store: EntityStore = Depends(get_store)):
    return await comment_service.update_comment(store, comment_id, data)

@router.delete("/{comment_id}", response_model=Envelope)
async def delete_comment(comment_id: int, store: EntityStore = Depends(get_store)):
    return await comment_service.delete_comment(store, comment_id)
