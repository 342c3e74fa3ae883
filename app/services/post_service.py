"""
Post service: coordinates every write that touches a post.

A post is linked to four other collections (its user, its category, its
tags and its comments), and none of those links can be written in the
same transaction as the post itself.  Each function below therefore runs a
fixed sequence of entity-store calls:

    create:  validate user/category/tags -> insert post -> fan out
    update:  validate new category/tags  -> write post  -> move back-refs
    delete:  detach back-refs -> delete comment trees -> delete post

Validation never writes, so a bad id aborts the operation with nothing
changed.  Failures *after* the primary write are not compensated: the
partial state is logged and left for ``reconcile`` to repair.
"""
import logging

from app.cache import cache
from app.exceptions import NotFoundError, ValidationError, translate_errors
from app.models import Post
from app.schemas import Envelope, PostCreate, PostUpdate
from app.services.comment_tree import CommentTreeManager
from app.services.relationships import RelationshipMaintainer, unique_ids
from app.services.serializers import post_to_dict
from app.store import EntityStore

logger = logging.getLogger(__name__)


async def _get_or_404(store: EntityStore, post_id: int) -> Post:
    post = await store.posts.find_by_id(post_id)
    if post is None:
        raise NotFoundError("Post not found")
    return post


async def cascade_delete(store: EntityStore, post: Post) -> int:
    """
    Remove *post* and everything that depends on it.

    Back-references are detached and comment trees deleted before the post
    document itself, so an interruption leaves only stale ids pointing at a
    post that still exists, never comments pointing at a deleted one.
    Returns the number of comments deleted.
    """
    tree = CommentTreeManager(store)
    await tree.relationships.unlink_post(post)
    removed = await tree.remove_for_post(post.id)
    await store.posts.delete_by_id(post.id)
    logger.info("Post %s deleted with %d comment(s)", post.id, removed)
    return removed


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@translate_errors()
async def get_posts(store: EntityStore) -> Envelope:
    posts = await store.posts.find_by_filter(order_by="created_at", descending=True)
    return Envelope(
        message="Posts have been fetched successfully!",
        data=[post_to_dict(p) for p in posts],
    )


@translate_errors()
async def get_post(store: EntityStore, post_id: int) -> Envelope:
    async def load() -> dict:
        return post_to_dict(await _get_or_404(store, post_id))

    data = await cache.get_or_load(store.posts.name, post_id, load)
    return Envelope(message="Post has been fetched successfully!", data=data)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

@translate_errors()
async def create_post(store: EntityStore, data: PostCreate, user_id: int) -> Envelope:
    """
    Create a post owned by *user_id*.

    The owner, category and tags are all checked before the insert.  After
    the insert the post is pushed into ``User.posts``, ``Category.posts``
    and each ``Tag.posts``; if one of those pushes fails the post stays in
    place with incomplete back-references (logged, not rolled back).
    """
    if not data.title.strip() or not data.content.strip():
        raise ValidationError("Title and content are required")

    relationships = RelationshipMaintainer(store)
    await relationships.ensure_exist(store.users, [user_id], "User not found")
    tag_ids = await relationships.validate_post_targets(data.category_id, data.tag_ids)

    post = await store.posts.insert(
        title=data.title,
        content=data.content,
        user_id=user_id,
        category_id=data.category_id,
        tags=tag_ids,
        comments=[],
    )

    try:
        await relationships.link_post(post)
    except Exception:
        logger.warning("Post %s was inserted but its back-references are incomplete", post.id)
        raise

    return Envelope(message="Post has been created successfully!", data=post_to_dict(post))


@translate_errors()
async def update_post(store: EntityStore, post_id: int, data: PostUpdate) -> Envelope:
    """
    Partially update a post.

    Only keys present in the payload are applied.  A new category/tag set is
    validated in full before anything is written; then the post's own fields
    are written, and finally only the *difference* between the old and new
    sets is detached/attached.
    """
    post = await _get_or_404(store, post_id)
    changes = data.model_dump(exclude_unset=True)

    for field in ("title", "content"):
        if field in changes and (changes[field] is None or not changes[field].strip()):
            raise ValidationError(f"{field.capitalize()} cannot be empty")

    category_given = "category_id" in changes
    tags_given = "tag_ids" in changes
    new_category_id = changes.pop("category_id", post.category_id)
    new_tag_ids = unique_ids(changes.pop("tag_ids", post.tags) or [])

    relationships = RelationshipMaintainer(store)
    await relationships.validate_post_targets(
        new_category_id if category_given else None,
        new_tag_ids if tags_given else (),
    )

    set_fields = dict(changes)
    unset: list[str] = []
    if category_given:
        if new_category_id is None:
            unset.append("category_id")
        else:
            set_fields["category_id"] = new_category_id
    if tags_given:
        set_fields["tags"] = new_tag_ids

    updated = await store.posts.update_fields(post_id, set_fields, unset)
    if updated is None:
        raise NotFoundError("Post not found")

    try:
        await relationships.relink_post(
            post_id, post.category_id, new_category_id, post.tags, new_tag_ids
        )
    except Exception:
        logger.warning("Post %s was updated but its back-references are incomplete", post_id)
        raise

    return Envelope(message="Post has been updated successfully!", data=post_to_dict(updated))


@translate_errors()
async def delete_post(store: EntityStore, post_id: int) -> Envelope:
    post = await _get_or_404(store, post_id)
    await cascade_delete(store, post)
    return Envelope(message="Post has been deleted successfully!", data=None)
