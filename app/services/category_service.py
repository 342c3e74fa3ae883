"""
Category service.

A category's ``posts`` array is owned by the post service (through the
relationship maintainer); this module only creates, renames and deletes
categories.  Deleting one first unsets ``category_id`` on every post that
cites it and only then removes the category document.
"""
from app.cache import cache
from app.exceptions import NotFoundError, ValidationError, translate_errors
from app.models import Category
from app.schemas import CategoryCreate, CategoryUpdate, Envelope
from app.services.relationships import RelationshipMaintainer
from app.services.serializers import post_to_dict, taxonomy_to_dict
from app.store import EntityStore

_DUPLICATE = "Category name already exists"


async def _get_or_404(store: EntityStore, category_id: int) -> Category:
    category = await store.categories.find_by_id(category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category


@translate_errors(_DUPLICATE)
async def create_category(store: EntityStore, data: CategoryCreate) -> Envelope:
    if not data.name.strip():
        raise ValidationError("Category name is required")
    category = await store.categories.insert(
        name=data.name, description=data.description, posts=[]
    )
    return Envelope(
        message="Category has been created successfully!", data=taxonomy_to_dict(category)
    )


@translate_errors()
async def get_categories(store: EntityStore) -> Envelope:
    categories = await store.categories.find_by_filter(order_by="name")
    return Envelope(
        message="Categories have been fetched successfully!",
        data=[taxonomy_to_dict(c) for c in categories],
    )


@translate_errors()
async def get_category(store: EntityStore, category_id: int) -> Envelope:
    async def load() -> dict:
        return taxonomy_to_dict(await _get_or_404(store, category_id))

    data = await cache.get_or_load(store.categories.name, category_id, load)
    return Envelope(message="Category has been fetched successfully!", data=data)


@translate_errors(_DUPLICATE)
async def update_category(store: EntityStore, category_id: int, data: CategoryUpdate) -> Envelope:
    """Rename / re-describe a category; the ``posts`` list is never writable here."""
    changes = data.model_dump(exclude_unset=True)
    if "name" in changes and (changes["name"] is None or not changes["name"].strip()):
        raise ValidationError("Category name cannot be empty")
    category = await store.categories.update_fields(category_id, changes)
    if category is None:
        raise NotFoundError("Category not found")
    return Envelope(
        message="Category has been updated successfully!", data=taxonomy_to_dict(category)
    )


@translate_errors()
async def get_posts_by_category(store: EntityStore, category_id: int) -> Envelope:
    await _get_or_404(store, category_id)
    posts = await store.posts.find_by_filter(
        order_by="created_at", descending=True, category_id=category_id
    )
    return Envelope(
        message="Posts have been fetched successfully!", data=[post_to_dict(p) for p in posts]
    )


@translate_errors()
async def delete_category(store: EntityStore, category_id: int) -> Envelope:
    await _get_or_404(store, category_id)
    await RelationshipMaintainer(store).unlink_category(category_id)
    await store.categories.delete_by_id(category_id)
    return Envelope(message="Category has been deleted successfully!", data=None)
