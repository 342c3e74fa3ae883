"""
Relationship maintainer: the one place that writes back-reference lists
for posts.

Every link between a post and its user, category or tags is stored twice:
as a forward reference on the post (``user_id``, ``category_id``,
``tags``) and as the post's id inside the target's ``posts`` array.  The
services never touch those arrays directly; they call ``attach`` /
``detach`` here, which reduce to idempotent ``push_to_array`` /
``pull_from_array`` calls on the entity store.

Ordering rules
--------------
- ``attach`` validates that *every* target exists before issuing a single
  push, so a bad id aborts with ``NotFoundError`` and no partial writes.
- ``detach`` is tolerant: pulling from a document that has since been
  deleted is a no-op, because detaching is always part of a cleanup path
  and a missing target is already "detached".
- Validation happens immediately before each mutating step rather than
  once per logical operation; a target deleted in between is logged and
  skipped (see ``attach``).  The reconciliation sweep repairs what that
  window leaves behind.
"""
import logging
from typing import Iterable

from app.exceptions import NotFoundError
from app.models import Post, Tag
from app.store import Collection, EntityStore

logger = logging.getLogger(__name__)


def unique_ids(ids: Iterable[int | None]) -> list[int]:
    """Drop ``None`` and duplicates from *ids*, keeping first-seen order."""
    return list(dict.fromkeys(i for i in ids if i is not None))


class RelationshipMaintainer:
    def __init__(self, store: EntityStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Generic attach / detach
    # ------------------------------------------------------------------

    async def ensure_exist(
        self,
        collection: Collection,
        ids: Iterable[int | None],
        message: str,
    ) -> list[int]:
        """
        Raise ``NotFoundError(message)`` unless every id in *ids* resolves.

        Returns the de-duplicated id list.  Performs no writes.
        """
        wanted = unique_ids(ids)
        if not wanted:
            return wanted
        found = {doc.id for doc in await collection.find_many(wanted)}
        missing = [i for i in wanted if i not in found]
        if missing:
            logger.info("%s: missing ids %s", collection.name, missing)
            raise NotFoundError(message)
        return wanted

    async def attach(
        self,
        owner_id: int,
        target: Collection,
        field: str,
        target_ids: Iterable[int | None],
        message: str = "Referenced document not found",
    ) -> list[int]:
        """
        Add *owner_id* to ``target[i].field`` for every id in *target_ids*.

        All targets are validated first; on success, returns the ids that were
        linked.  A target removed between validation and its push is skipped
        with a warning instead of failing the remaining pushes.
        """
        ids = await self.ensure_exist(target, target_ids, message)
        linked = []
        for target_id in ids:
            if await target.push_to_array(target_id, field, owner_id):
                linked.append(target_id)
            else:
                logger.warning(
                    "%s[%s] vanished before %s could be linked to it",
                    target.name, target_id, owner_id,
                )
        return linked

    async def detach(
        self,
        owner_id: int,
        target: Collection,
        field: str,
        target_ids: Iterable[int | None],
    ) -> None:
        """Remove *owner_id* from ``target[i].field``; absent ids are no-ops."""
        for target_id in unique_ids(target_ids):
            await target.pull_from_array(target_id, field, owner_id)

    # ------------------------------------------------------------------
    # Post links
    # ------------------------------------------------------------------

    async def validate_post_targets(
        self,
        category_id: int | None = None,
        tag_ids: Iterable[int] = (),
    ) -> list[int]:
        """Check the category and tags a post is about to cite; returns clean tag ids."""
        if category_id is not None:
            await self.ensure_exist(self.store.categories, [category_id], "Category not found")
        return await self.ensure_exist(self.store.tags, tag_ids, "One or more tags not found")

    async def link_post(self, post: Post) -> None:
        """Fan out a freshly inserted post into User/Category/Tag ``posts``."""
        await self.attach(post.id, self.store.users, "posts", [post.user_id], "User not found")
        if post.category_id is not None:
            await self.attach(
                post.id, self.store.categories, "posts", [post.category_id], "Category not found"
            )
        await self.attach(post.id, self.store.tags, "posts", post.tags, "One or more tags not found")

    async def relink_post(
        self,
        post_id: int,
        old_category_id: int | None,
        new_category_id: int | None,
        old_tag_ids: Iterable[int],
        new_tag_ids: Iterable[int],
    ) -> None:
        """
        Move a post's back-references from its old category/tags to new ones.

        Only the difference is written: ids in both sets are left alone, ids
        only in the old set are detached, ids only in the new set attached.
        The caller must have validated the new set already.
        """
        if old_category_id != new_category_id:
            await self.detach(post_id, self.store.categories, "posts", [old_category_id])
            await self.attach(
                post_id, self.store.categories, "posts", [new_category_id], "Category not found"
            )

        old_tags = unique_ids(old_tag_ids)
        new_tags = unique_ids(new_tag_ids)
        removed = [t for t in old_tags if t not in new_tags]
        added = [t for t in new_tags if t not in old_tags]
        await self.detach(post_id, self.store.tags, "posts", removed)
        await self.attach(post_id, self.store.tags, "posts", added, "One or more tags not found")

    async def unlink_post(self, post: Post) -> None:
        """Remove *post* from its user's, category's and tags' ``posts``."""
        await self.detach(post.id, self.store.users, "posts", [post.user_id])
        await self.detach(post.id, self.store.categories, "posts", [post.category_id])
        await self.detach(post.id, self.store.tags, "posts", post.tags)

    # ------------------------------------------------------------------
    # Category / Tag removal
    # ------------------------------------------------------------------

    async def unlink_category(self, category_id: int) -> list[int]:
        """Unset ``category_id`` on every post citing it; returns those post ids."""
        post_ids = await self.store.posts.update_by_filter(
            {"category_id": category_id}, unset=["category_id"]
        )
        if post_ids:
            logger.info("Unlinked category %s from %d post(s)", category_id, len(post_ids))
        return post_ids

    async def unlink_tag(self, tag: Tag) -> list[int]:
        """
        Pull *tag* from the ``tags`` array of every post citing it.

        Posts are found by their own ``tags`` array, so a post whose id never
        made it into ``tag.posts`` is unlinked too.  Ids listed only in
        ``tag.posts`` are pulled as well; for them the pull is a no-op.
        """
        citing = await self.store.posts.find_by_array_member("tags", tag.id)
        post_ids = unique_ids([p.id for p in citing] + list(tag.posts))
        for post_id in post_ids:
            await self.store.posts.pull_from_array(post_id, "tags", tag.id)
        if post_ids:
            logger.info("Unlinked tag %s from %d post(s)", tag.id, len(post_ids))
        return post_ids
