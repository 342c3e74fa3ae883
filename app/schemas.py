from typing import Any

from pydantic import BaseModel, Field


# --- Envelope ---

class Envelope(BaseModel):
    """Uniform result of every service operation."""

    message: str
    success: bool = True
    data: Any = None


# --- User ---

class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    email: str = Field(min_length=3, max_length=255)
    # Hashing is the auth layer's job; only the resulting hash is stored.
    password_hash: str = Field(min_length=1, max_length=255)
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)


class UserUpdate(BaseModel):
    username: str | None = Field(None, min_length=1, max_length=50)
    email: str | None = Field(None, min_length=3, max_length=255)
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)


# --- Category / Tag ---

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None


class TagCreate(CategoryCreate):
    pass


class TagUpdate(CategoryUpdate):
    pass


# --- Post ---

class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    content: str = Field(min_length=1)
    category_id: int | None = None
    tag_ids: list[int] = []


class PostUpdate(BaseModel):
    """
    Partial post update.

    Only fields present in the payload are applied (``exclude_unset``):
    an explicit ``"category_id": null`` unlinks the category, while omitting
    the key leaves it untouched.  The owning user can never change.
    """

    title: str | None = Field(None, min_length=1, max_length=300)
    content: str | None = Field(None, min_length=1)
    category_id: int | None = None
    tag_ids: list[int] | None = None


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    post_id: int
    parent_comment_id: int | None = None


class CommentUpdate(BaseModel):
    """Partial comment update; ``"parent_comment_id": null`` makes it top-level."""

    content: str | None = Field(None, min_length=1)
    post_id: int | None = None
    parent_comment_id: int | None = None


# --- Refresh tokens ---

class RefreshTokenIn(BaseModel):
    token: str = Field(min_length=1)


# --- Maintenance / metrics ---

class ReconcileReport(BaseModel):
    orphan_posts_deleted: int = 0
    dangling_categories_unset: int = 0
    dangling_tags_pulled: int = 0
    orphan_comments_deleted: int = 0
    back_references_added: int = 0
    back_references_removed: int = 0

    @property
    def total(self) -> int:
        return sum(self.model_dump().values())


class MetricsResponse(BaseModel):
    total_users: int
    total_posts: int
    total_categories: int
    total_tags: int
    total_comments: int
    avg_comments_per_post: float
    cache_info: dict = {}
