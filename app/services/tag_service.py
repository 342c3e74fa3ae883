"""
Tag service.

Mirrors the category service, except that a post can cite many tags: a
tag is unlinked by pulling its id out of the ``tags`` array of every post
listed in the tag's own ``posts`` back-reference.
"""
from app.cache import cache
from app.exceptions import NotFoundError, ValidationError, translate_errors
from app.models import Tag
from app.schemas import Envelope, TagCreate, TagUpdate
from app.services.relationships import RelationshipMaintainer
from app.services.serializers import post_to_dict, taxonomy_to_dict
from app.store import EntityStore

_DUPLICATE = "Tag name already exists"


async def _get_or_404(store: EntityStore, tag_id: int) -> Tag:
    tag = await store.tags.find_by_id(tag_id)
    if tag is None:
        raise NotFoundError("Tag not found")
    return tag


@translate_errors(_DUPLICATE)
async def create_tag(store: EntityStore, data: TagCreate) -> Envelope:
    if not data.name.strip():
        raise ValidationError("Tag name is required")
    tag = await store.tags.insert(name=data.name, description=data.description, posts=[])
    return Envelope(message="Tag has been created successfully!", data=taxonomy_to_dict(tag))


@translate_errors()
async def get_tags(store: EntityStore) -> Envelope:
    tags = await store.tags.find_by_filter(order_by="name")
    return Envelope(
        message="Tags have been fetched successfully!", data=[taxonomy_to_dict(t) for t in tags]
    )


@translate_errors()
async def get_tag(store: EntityStore, tag_id: int) -> Envelope:
    async def load() -> dict:
        return taxonomy_to_dict(await _get_or_404(store, tag_id))

    data = await cache.get_or_load(store.tags.name, tag_id, load)
    return Envelope(message="Tag has been fetched successfully!", data=data)


@translate_errors(_DUPLICATE)
async def update_tag(store: EntityStore, tag_id: int, data: TagUpdate) -> Envelope:
    changes = data.model_dump(exclude_unset=True)
    if "name" in changes and (changes["name"] is None or not changes["name"].strip()):
        raise ValidationError("Tag name cannot be empty")
    tag = await store.tags.update_fields(tag_id, changes)
    if tag is None:
        raise NotFoundError("Tag not found")
    return Envelope(message="Tag has been updated successfully!", data=taxonomy_to_dict(tag))


@translate_errors()
async def get_posts_by_tag(store: EntityStore, tag_id: int) -> Envelope:
    tag = await _get_or_404(store, tag_id)
    posts = await store.posts.find_many(tag.posts)
    posts.sort(key=lambda p: (p.created_at, p.id), reverse=True)
    return Envelope(
        message="Posts have been fetched successfully!", data=[post_to_dict(p) for p in posts]
    )


@translate_errors()
async def delete_tag(store: EntityStore, tag_id: int) -> Envelope:
    tag = await _get_or_404(store, tag_id)
    await RelationshipMaintainer(store).unlink_tag(tag)
    await store.tags.delete_by_id(tag_id)
    return Envelope(message="Tag has been deleted successfully!", data=None)
