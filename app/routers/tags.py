from fastapi import APIRouter, Depends

from app.dependencies import get_store
from app.schemas import TagCreate, TagUpdate, Envelope
from app.services import tag_service
from app.store import EntityStore

router = APIRouter(prefix="/api/v1/tags", tags=["tags"])

@router.get("", response_model=Envelope)
async def list_tags(store: EntityStore = Depends(get_store)):
    return await tag_service.get_tags(store)

@router.get("/{tag_id}", response_model=Envelope)
async def get_tag(tag_id: int, store: EntityStore = Depends(get_store)):
    return await tag_service.get_tag(store, tag_id)

@router.get("/{tag_id}/posts", response_model=Envelope)
async def list_tag_posts(tag_id: int, store: EntityStore = Depends(get_store)):
    return await tag_service.get_posts_by_tag(store, tag_id)

@router.post("", status_code=201, response_model=Envelope)
async def create_tag(data: TagCreate, store: EntityStore = Depends(get_store)):
    return await tag_service.create_tag(store, data)

@router.patch("/{tag_id}", response_model=Envelope)
async def update_tag(tag_id: int, data: TagUpdate, store: EntityStore = Depends(get_store)):
    return await tag_service.update_tag(store, tag_id, data)

@router.delete("/{tag_id}", response_model=Envelope)
async def delete_tag(tag_id: int, store: EntityStore = Depends(get_store)):
    return await tag_service.delete_tag(store, tag_id)
