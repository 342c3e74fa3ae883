"""
User service: profile CRUD, cascading delete and refresh-token bookkeeping.

Users are fetched without caching because the list is typically small
and the data changes infrequently.

Username and email uniqueness is enforced by unique indexes; a duplicate
surfaces from the store as ``DuplicateKeyError`` and is translated to
``ConflictError`` by ``translate_errors``.
"""
import logging

from app.config import settings
from app.exceptions import NotFoundError, translate_errors
from app.models import User
from app.schemas import Envelope, UserCreate, UserUpdate
from app.services import post_service
from app.services.comment_tree import CommentTreeManager
from app.services.relationships import unique_ids
from app.services.serializers import user_to_dict
from app.store import EntityStore

logger = logging.getLogger(__name__)

_DUPLICATE = "A user with this username or email already exists"


async def _get_or_404(store: EntityStore, user_id: int) -> User:
    user = await store.users.find_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

@translate_errors()
async def get_users(store: EntityStore) -> Envelope:
    """Return all users ordered by creation date (newest first)."""
    users = await store.users.find_by_filter(order_by="created_at", descending=True)
    return Envelope(
        message="Users have been fetched successfully!", data=[user_to_dict(u) for u in users]
    )


@translate_errors()
async def get_user(store: EntityStore, user_id: int) -> Envelope:
    user = await _get_or_404(store, user_id)
    return Envelope(message="User has been fetched successfully!", data=user_to_dict(user))


@translate_errors(_DUPLICATE)
async def create_user(store: EntityStore, data: UserCreate) -> Envelope:
    user = await store.users.insert(
        username=data.username,
        email=data.email,
        password_hash=data.password_hash,
        first_name=data.first_name,
        last_name=data.last_name,
        posts=[],
        comments=[],
        refresh_tokens=[],
    )
    return Envelope(message="User has been created successfully!", data=user_to_dict(user))


@translate_errors(_DUPLICATE)
async def update_user(store: EntityStore, user_id: int, data: UserUpdate) -> Envelope:
    """Update profile fields; relationship lists and credentials are not writable here."""
    changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    user = await store.users.update_fields(user_id, changes)
    if user is None:
        raise NotFoundError("User not found")
    return Envelope(message="User has been updated successfully!", data=user_to_dict(user))


@translate_errors()
async def delete_user(store: EntityStore, user_id: int) -> Envelope:
    """
    Delete a user and everything they own.

    Each post goes through the full post cascade (back-references, comment
    trees), then any comments the user left on other people's posts are
    removed with their subtrees, and the user document goes last.
    """
    user = await _get_or_404(store, user_id)

    owned = await store.posts.find_by_filter(user_id=user_id)
    owned_ids = unique_ids([p.id for p in owned] + list(user.posts))
    for post in await store.posts.find_many(owned_ids):
        await post_service.cascade_delete(store, post)

    removed_comments = await CommentTreeManager(store).remove_for_user(user_id)
    await store.users.delete_by_id(user_id)
    logger.info(
        "User %s deleted with %d post(s) and %d further comment(s)",
        user_id, len(owned_ids), removed_comments,
    )
    return Envelope(message="User has been deleted successfully!", data=None)


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------

@translate_errors()
async def save_refresh_token(store: EntityStore, user_id: int, token: str) -> Envelope:
    """
    Record *token* as the user's newest refresh token.

    Append and trim happen in one single-document update, so the list never
    holds more than ``settings.REFRESH_TOKEN_LIMIT`` entries and the oldest
    token is the one evicted.
    """
    found = await store.users.push_to_array(
        user_id, "refresh_tokens", token, keep_last=settings.REFRESH_TOKEN_LIMIT
    )
    if not found:
        raise NotFoundError("User not found")
    return Envelope(message="Refresh token has been saved successfully!", data=None)


@translate_errors()
async def revoke_refresh_token(store: EntityStore, user_id: int, token: str) -> Envelope:
    if not await store.users.pull_from_array(user_id, "refresh_tokens", token):
        raise NotFoundError("User not found")
    return Envelope(message="Refresh token has been revoked successfully!", data=None)


@translate_errors()
async def has_refresh_token(store: EntityStore, user_id: int, token: str) -> bool:
    user = await _get_or_404(store, user_id)
    return token in user.refresh_tokens
