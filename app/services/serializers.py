"""Plain-dict views of store documents, shared by the service modules."""
from datetime import datetime

from app.models import Category, Comment, Post, Tag, User


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def user_to_dict(user: User) -> dict:
    """Public view of a user: the credential hash and refresh tokens never leave."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "posts": list(user.posts),
        "comments": list(user.comments),
        "created_at": _iso(user.created_at),
        "updated_at": _iso(user.updated_at),
    }


def post_to_dict(post: Post) -> dict:
    return {
        "id": post.id,
        "title": post.title,
        "content": post.content,
        "user_id": post.user_id,
        "category_id": post.category_id,
        "tags": list(post.tags),
        "comments": list(post.comments),
        "created_at": _iso(post.created_at),
        "updated_at": _iso(post.updated_at),
    }


def taxonomy_to_dict(term: Category | Tag) -> dict:
    """Serialise a Category or Tag (both carry name, description and posts)."""
    return {
        "id": term.id,
        "name": term.name,
        "description": term.description,
        "posts": list(term.posts),
        "created_at": _iso(term.created_at),
        "updated_at": _iso(term.updated_at),
    }


def comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "content": comment.content,
        "user_id": comment.user_id,
        "post_id": comment.post_id,
        "parent_comment_id": comment.parent_comment_id,
        "replies": list(comment.replies),
        "created_at": _iso(comment.created_at),
        "updated_at": _iso(comment.updated_at),
    }
