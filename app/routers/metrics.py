from fastapi import APIRouter, Depends

from app.cache import cache
from app.dependencies import get_store
from app.schemas import MetricsResponse
from app.store import EntityStore

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])

@router.get("", response_model=MetricsResponse)
async def get_metrics(store: EntityStore = Depends(get_store)):

    total_posts = await store.posts.count()

    total_comments = await store.comments.count()

    avg_comments = total_comments / total_posts if total_posts > 0 else 0

    return MetricsResponse(
        total_users=await store.users.count(),
        total_posts=total_posts,
        total_categories=await store.categories.count(),
        total_tags=await store.tags.count(),
        total_comments=total_comments,
        avg_comments_per_post=round(avg_comments, 2),
        cache_info=cache.stats,
    )
