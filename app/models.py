"""
Document-shaped tables for the five blog collections.

The persistence layer is treated as a document store: every row is one
document, and relationship lists (``posts``, ``tags``, ``comments``,
``replies``) are JSON arrays of ids stored on *both* sides of a link.  No
foreign-key constraints are declared; reference integrity is maintained by
the services through ``app.store`` push/pull operations, never by the
database.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Timestamps:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------
class User(_Timestamps, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Back-references
    posts: Mapped[List[int]] = mapped_column(JSON, default=list, nullable=False)
    comments: Mapped[List[int]] = mapped_column(JSON, default=list, nullable=False)

    refresh_tokens: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)


# ---------------------------------------------------------------------------
# Category / Tag
# ---------------------------------------------------------------------------
class Category(_Timestamps, Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    posts: Mapped[List[int]] = mapped_column(JSON, default=list, nullable=False)


class Tag(_Timestamps, Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    posts: Mapped[List[int]] = mapped_column(JSON, default=list, nullable=False)


# ---------------------------------------------------------------------------
# Post
# ---------------------------------------------------------------------------
class Post(_Timestamps, Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Forward references
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    category_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    tags: Mapped[List[int]] = mapped_column(JSON, default=list, nullable=False)

    # Back-references
    comments: Mapped[List[int]] = mapped_column(JSON, default=list, nullable=False)


# ---------------------------------------------------------------------------
# Comment
# ---------------------------------------------------------------------------
class Comment(_Timestamps, Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Forward references
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    post_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    parent_comment_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    # Back-references (immediate children only, in insertion order)
    replies: Mapped[List[int]] = mapped_column(JSON, default=list, nullable=False)
