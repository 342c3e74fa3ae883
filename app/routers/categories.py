from fastapi import APIRouter, Depends

from app.dependencies import get_store
from app.schemas import CategoryCreate, CategoryUpdate, Envelope
from app.services import category_service
from app.store import EntityStore

router = APIRouter(prefix="/api/v1/categories", tags=["categories"])

@router.get("", response_model=Envelope)
async def list_categories(store: EntityStore = Depends(get_store)):
    return await category_service.get_categories(store)

@router.get("/{category_id}", response_model=Envelope)
async def get_category(category_id: int, store: EntityStore = Depends(get_store)):
    return await category_service.get_category(store, category_id)

@router.get("/{category_id}/posts", response_model=Envelope)
async def list_category_posts(category_id: int, store: EntityStore = Depends(get_store)):
    return await category_service.get_posts_by_category(store, category_id)

@router.post("", status_code=201, response_model=Envelope)
async def create_category(data: CategoryCreate, store: EntityStore = Depends(get_store)):
    return await category_service.create_category(store, data)

@router.patch("/{category_id}", response_model=Envelope)
async def update_category(category_id: int, data: CategoryUpdate, store: EntityStore = Depends(get_store)):
    return await category_service.update_category(store, category_id, data)

@router.delete("/{category_id}", response_model=Envelope)
async def delete_category(category_id: int, store: EntityStore = Depends(get_store)):
    return await category_service.delete_category(store, category_id)
