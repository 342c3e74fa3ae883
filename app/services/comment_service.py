"""
Comment service: thin coordinator over ``CommentTreeManager``.

Comments can be created, edited, moved (to another post or another
parent) and deleted.  Deleting a comment removes its entire reply subtree.
"""
import logging

from app.exceptions import NotFoundError, ValidationError, translate_errors
from app.models import Comment
from app.schemas import CommentCreate, CommentUpdate, Envelope
from app.services.comment_tree import CommentTreeManager
from app.services.serializers import comment_to_dict
from app.store import EntityStore

logger = logging.getLogger(__name__)


async def _get_or_404(store: EntityStore, comment_id: int) -> Comment:
    comment = await store.comments.find_by_id(comment_id)
    if comment is None:
        raise NotFoundError("Comment not found")
    return comment


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@translate_errors()
async def get_comments(store: EntityStore) -> Envelope:
    comments = await store.comments.find_by_filter(order_by="created_at", descending=True)
    return Envelope(
        message="Comments have been fetched successfully!",
        data=[comment_to_dict(c) for c in comments],
    )


@translate_errors()
async def get_comment(store: EntityStore, comment_id: int) -> Envelope:
    comment = await _get_or_404(store, comment_id)
    return Envelope(message="Comment has been fetched successfully!", data=comment_to_dict(comment))


@translate_errors()
async def get_comments_by_post(store: EntityStore, post_id: int) -> Envelope:
    """Top-level comments of *post_id*, newest first; replies are reachable by id."""
    if await store.posts.find_by_id(post_id) is None:
        raise NotFoundError("Post not found")
    comments = await store.comments.find_by_filter(
        order_by="created_at", descending=True, post_id=post_id, parent_comment_id=None
    )
    return Envelope(
        message="Comments have been fetched successfully!",
        data=[comment_to_dict(c) for c in comments],
    )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

@translate_errors()
async def create_comment(store: EntityStore, data: CommentCreate, user_id: int) -> Envelope:
    if not data.content.strip():
        raise ValidationError("Content is required")
    comment = await CommentTreeManager(store).add(
        content=data.content,
        user_id=user_id,
        post_id=data.post_id,
        parent_comment_id=data.parent_comment_id,
    )
    return Envelope(message="Comment has been created successfully!", data=comment_to_dict(comment))


@translate_errors()
async def update_comment(store: EntityStore, comment_id: int, data: CommentUpdate) -> Envelope:
    """
    Edit content and/or move a comment.

    A move is validated (target exists, no cycle) before any write; the
    comment's own fields are written next, then its back-references are
    moved from the old post/parent to the new ones.
    """
    comment = await _get_or_404(store, comment_id)
    changes = data.model_dump(exclude_unset=True)

    if "content" in changes and (changes["content"] is None or not changes["content"].strip()):
        raise ValidationError("Content cannot be empty")

    tree = CommentTreeManager(store)
    move = await tree.plan_move(
        comment,
        changes.get("post_id"),
        changes.get("parent_comment_id"),
        change_post="post_id" in changes,
        change_parent="parent_comment_id" in changes,
    )

    set_fields = {k: v for k, v in move.items() if v is not None}
    if "content" in changes:
        set_fields["content"] = changes["content"]
    unset = [k for k, v in move.items() if v is None]

    updated = await store.comments.update_fields(comment_id, set_fields, unset)
    if updated is None:
        raise NotFoundError("Comment not found")

    if move:
        try:
            await tree.apply_move(comment, move)
        except Exception:
            logger.warning("Comment %s was moved but its back-references are incomplete", comment_id)
            raise

    return Envelope(message="Comment has been updated successfully!", data=comment_to_dict(updated))


@translate_errors()
async def delete_comment(store: EntityStore, comment_id: int) -> Envelope:
    await CommentTreeManager(store).remove(comment_id)
    return Envelope(message="Comment has been deleted successfully!", data=None)
