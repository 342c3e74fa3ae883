"""
Reconciliation sweep: re-derive every back-reference from forward references.

Multi-document operations are not atomic, so a crash or a lost race can
leave a post missing from its tag's ``posts`` list, a ``category_id``
naming a deleted category, or a reply whose parent is gone.  This sweep
treats the forward references (``Post.user_id``, ``Post.category_id``,
``Post.tags``, ``Comment.post_id``, ``Comment.user_id``,
``Comment.parent_comment_id``) as the source of truth and repairs the
rest through the same idempotent push/pull operations the services use.

Passes, in order:

1. Posts whose owner no longer exists are deleted (full post cascade).
2. Dangling ``category_id`` / ``tags`` entries on posts are removed.
3. Comments whose post, author or parent no longer exists are deleted
   together with their subtrees.
4. Every back-reference list is made equal, as a set, to what the forward
   references imply.  Surviving entries keep their order; missing ones are
   appended.

The sweep takes no locks.  Running it concurrently with regular traffic is
safe in the sense that every step is idempotent, but an operation in
flight may be "repaired" halfway through; schedule it during quiet periods.
"""
import logging
from collections import defaultdict

from app.exceptions import translate_errors
from app.schemas import ReconcileReport
from app.services import post_service
from app.services.comment_tree import CommentTreeManager
from app.store import Collection, EntityStore

logger = logging.getLogger(__name__)


async def _sync_back_references(
    collection: Collection,
    field: str,
    expected: dict[int, list[int]],
    report: ReconcileReport,
) -> None:
    for doc in await collection.find_by_filter():
        current = list(getattr(doc, field) or [])
        wanted = expected.get(doc.id, [])
        for stale in [i for i in dict.fromkeys(current) if i not in wanted]:
            await collection.pull_from_array(doc.id, field, stale)
            report.back_references_removed += 1
            logger.info("Reconcile: pulled %s from %s[%s].%s", stale, collection.name, doc.id, field)
        for missing in [i for i in wanted if i not in current]:
            await collection.push_to_array(doc.id, field, missing)
            report.back_references_added += 1
            logger.info("Reconcile: pushed %s to %s[%s].%s", missing, collection.name, doc.id, field)


@translate_errors()
async def reconcile(store: EntityStore) -> ReconcileReport:
    report = ReconcileReport()
    tree = CommentTreeManager(store)

    user_ids = {u.id for u in await store.users.find_by_filter()}
    category_ids = {c.id for c in await store.categories.find_by_filter()}
    tag_ids = {t.id for t in await store.tags.find_by_filter()}

    # 1 + 2. Posts
    for post in await store.posts.find_by_filter():
        if post.user_id not in user_ids:
            await post_service.cascade_delete(store, post)
            report.orphan_posts_deleted += 1
            continue
        if post.category_id is not None and post.category_id not in category_ids:
            await store.posts.update_fields(post.id, unset=["category_id"])
            report.dangling_categories_unset += 1
        for tag_id in [t for t in dict.fromkeys(post.tags) if t not in tag_ids]:
            await store.posts.pull_from_array(post.id, "tags", tag_id)
            report.dangling_tags_pulled += 1

    posts = await store.posts.find_by_filter()
    post_ids = {p.id for p in posts}

    # 3. Comments
    for comment in await store.comments.find_by_filter():
        if await store.comments.find_by_id(comment.id) is None:
            continue  # already removed as part of an earlier subtree
        parent_missing = (
            comment.parent_comment_id is not None
            and await store.comments.find_by_id(comment.parent_comment_id) is None
        )
        if comment.post_id not in post_ids or comment.user_id not in user_ids or parent_missing:
            report.orphan_comments_deleted += len(await tree.remove(comment.id, missing_ok=True))

    comments = await store.comments.find_by_filter()

    # 4. Back-references
    user_posts: dict[int, list[int]] = defaultdict(list)
    category_posts: dict[int, list[int]] = defaultdict(list)
    tag_posts: dict[int, list[int]] = defaultdict(list)
    for post in posts:
        user_posts[post.user_id].append(post.id)
        if post.category_id is not None:
            category_posts[post.category_id].append(post.id)
        for tag_id in dict.fromkeys(post.tags):
            tag_posts[tag_id].append(post.id)

    post_comments: dict[int, list[int]] = defaultdict(list)
    user_comments: dict[int, list[int]] = defaultdict(list)
    replies: dict[int, list[int]] = defaultdict(list)
    for comment in comments:
        post_comments[comment.post_id].append(comment.id)
        user_comments[comment.user_id].append(comment.id)
        if comment.parent_comment_id is not None:
            replies[comment.parent_comment_id].append(comment.id)

    await _sync_back_references(store.users, "posts", user_posts, report)
    await _sync_back_references(store.users, "comments", user_comments, report)
    await _sync_back_references(store.categories, "posts", category_posts, report)
    await _sync_back_references(store.tags, "posts", tag_posts, report)
    await _sync_back_references(store.posts, "comments", post_comments, report)
    await _sync_back_references(store.comments, "replies", replies, report)

    logger.info("Reconcile finished: %s", report.model_dump())
    return report
