"""
Comment tree manager: parent/reply links and subtree removal.

Comments form a forest: top-level comments have no parent, every other
comment names its parent in ``parent_comment_id`` and appears in that
parent's ``replies`` array.  Only immediate children are stored; the tree
is walked by id lookups, never by holding live object graphs.

Deletion is a depth-first post-order cascade: the root is first unhooked
from its post, user and parent, then every descendant is deleted children
first, and the root last.  At no point does a surviving comment name a
deleted parent.  The walk is iterative, so arbitrarily deep reply chains
are handled without touching the recursion limit.
"""
import logging

from app.exceptions import NotFoundError, ValidationError
from app.models import Comment
from app.services.relationships import RelationshipMaintainer, unique_ids
from app.store import EntityStore

logger = logging.getLogger(__name__)

_CROSS_POST_REPLY = "A reply must belong to the same post as its parent"


class CommentTreeManager:
    def __init__(self, store: EntityStore, relationships: RelationshipMaintainer | None = None) -> None:
        self.store = store
        self.relationships = relationships or RelationshipMaintainer(store)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def add(
        self,
        content: str,
        user_id: int,
        post_id: int,
        parent_comment_id: int | None = None,
    ) -> Comment:
        """
        Insert a comment and link it into its post, user and parent.

        The post, the user and (when given) the parent comment are validated
        before the insert; nothing is written if any of them is missing or if
        the parent sits on a different post.
        """
        await self.relationships.ensure_exist(self.store.posts, [post_id], "Post not found")
        await self.relationships.ensure_exist(self.store.users, [user_id], "User not found")
        if parent_comment_id is not None:
            parent = await self.store.comments.find_by_id(parent_comment_id)
            if parent is None:
                raise NotFoundError("Parent comment not found")
            if parent.post_id != post_id:
                raise ValidationError(_CROSS_POST_REPLY)

        comment = await self.store.comments.insert(
            content=content,
            user_id=user_id,
            post_id=post_id,
            parent_comment_id=parent_comment_id,
            replies=[],
        )

        try:
            await self.relationships.attach(
                comment.id, self.store.posts, "comments", [post_id], "Post not found"
            )
            await self.relationships.attach(
                comment.id, self.store.users, "comments", [user_id], "User not found"
            )
            if parent_comment_id is not None:
                await self.relationships.attach(
                    comment.id, self.store.comments, "replies", [parent_comment_id],
                    "Parent comment not found",
                )
        except Exception:
            logger.warning(
                "Comment %s was inserted but its back-references are incomplete", comment.id
            )
            raise
        return comment

    # ------------------------------------------------------------------
    # Move (re-post / re-parent)
    # ------------------------------------------------------------------

    async def descendant_ids(self, root_id: int) -> list[int]:
        """
        Return every descendant of *root_id* in pre-order (root excluded).

        Children are the union of the node's ``replies`` array and any comment
        whose ``parent_comment_id`` names it, so a reply whose back-reference
        was lost is still found.  Already-visited ids are skipped, so a
        corrupted cycle cannot loop forever.
        """
        seen = {root_id}
        order: list[int] = []
        stack = [root_id]
        while stack:
            node_id = stack.pop()
            node = await self.store.comments.find_by_id(node_id)
            children = list(node.replies) if node is not None else []
            children += [c.id for c in await self.store.comments.find_by_filter(parent_comment_id=node_id)]
            for child_id in reversed(unique_ids(children)):
                if child_id not in seen:
                    seen.add(child_id)
                    order.append(child_id)
                    stack.append(child_id)
        return order

    async def plan_move(
        self,
        comment: Comment,
        new_post_id: int | None,
        new_parent_id: int | None,
        *,
        change_post: bool,
        change_parent: bool,
    ) -> dict:
        """
        Validate a re-post and/or re-parent of *comment*.

        Returns the forward-reference fields that actually change (possibly
        empty).  Performs no writes: a missing target, a cycle, or a parent on
        a different post than the comment would end up on raises before
        anything is touched.  A re-post carries the comment's whole reply
        subtree along (see ``apply_move``), so only the moved comment's own
        parent has to be checked.
        """
        fields: dict = {}
        target_post_id = comment.post_id
        target_parent_id = comment.parent_comment_id

        if change_post and new_post_id != comment.post_id:
            if new_post_id is None:
                raise ValidationError("A comment must belong to a post")
            await self.relationships.ensure_exist(self.store.posts, [new_post_id], "Post not found")
            fields["post_id"] = target_post_id = new_post_id

        if change_parent and new_parent_id != comment.parent_comment_id:
            if new_parent_id is not None:
                if new_parent_id == comment.id:
                    raise ValidationError("A comment cannot reply to itself")
                await self.relationships.ensure_exist(
                    self.store.comments, [new_parent_id], "Parent comment not found"
                )
                if new_parent_id in await self.descendant_ids(comment.id):
                    raise ValidationError("A comment cannot reply to one of its own replies")
            fields["parent_comment_id"] = target_parent_id = new_parent_id

        if fields and target_parent_id is not None:
            parent = await self.store.comments.find_by_id(target_parent_id)
            if parent is not None and parent.post_id != target_post_id:
                raise ValidationError(_CROSS_POST_REPLY)
        return fields

    async def apply_move(self, comment: Comment, fields: dict) -> None:
        """
        Move *comment*'s back-references to match *fields* from ``plan_move``.

        *comment* is the state before the move; the comment's own forward
        references are written by the caller.  On a re-post every descendant
        follows: their ``post_id`` is rewritten and all the moved ids go from
        the old post's ``comments`` to the new one's, root first.
        """
        if "post_id" in fields:
            new_post_id = fields["post_id"]
            descendants = await self.descendant_ids(comment.id)
            if descendants:
                await self.store.comments.update_by_filter({"id": descendants}, {"post_id": new_post_id})
            for moved_id in [comment.id] + descendants:
                await self.relationships.detach(moved_id, self.store.posts, "comments", [comment.post_id])
                await self.relationships.attach(
                    moved_id, self.store.posts, "comments", [new_post_id], "Post not found"
                )
            if descendants:
                logger.info(
                    "Comment %s moved to post %s with %d descendant(s)",
                    comment.id, new_post_id, len(descendants),
                )
        if "parent_comment_id" in fields:
            await self.relationships.detach(
                comment.id, self.store.comments, "replies", [comment.parent_comment_id]
            )
            await self.relationships.attach(
                comment.id, self.store.comments, "replies", [fields["parent_comment_id"]],
                "Parent comment not found",
            )

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def _unhook(self, comment: Comment, *, from_parent: bool) -> None:
        await self.relationships.detach(comment.id, self.store.posts, "comments", [comment.post_id])
        await self.relationships.detach(comment.id, self.store.users, "comments", [comment.user_id])
        if from_parent:
            await self.relationships.detach(
                comment.id, self.store.comments, "replies", [comment.parent_comment_id]
            )

    async def remove(self, comment_id: int, *, missing_ok: bool = False) -> list[int]:
        """
        Delete *comment_id* and its whole reply subtree.

        Returns the ids actually deleted, descendants first and the root
        last.  With *missing_ok*, an absent root returns ``[]`` instead of
        raising ``NotFoundError`` (used by cascades that may race each other).
        """
        root = await self.store.comments.find_by_id(comment_id)
        if root is None:
            if missing_ok:
                return []
            raise NotFoundError("Comment not found")

        await self._unhook(root, from_parent=True)

        deleted: list[int] = []
        # Reversed pre-order puts every child before its parent.
        for node_id in reversed(await self.descendant_ids(root.id)):
            node = await self.store.comments.find_by_id(node_id)
            if node is None:
                continue
            # The parent is going too, so its ``replies`` need no repair.
            await self._unhook(node, from_parent=False)
            if await self.store.comments.delete_by_id(node_id) is not None:
                deleted.append(node_id)

        if await self.store.comments.delete_by_id(root.id) is not None:
            deleted.append(root.id)
        if len(deleted) > 1:
            logger.info("Comment %s removed with %d descendant(s)", root.id, len(deleted) - 1)
        return deleted

    async def remove_for_post(self, post_id: int) -> int:
        """Delete every comment on *post_id* (and their subtrees); returns the count."""
        total = 0
        for comment in await self.store.comments.find_by_filter(post_id=post_id):
            total += len(await self.remove(comment.id, missing_ok=True))
        return total

    async def remove_for_user(self, user_id: int) -> int:
        """Delete every comment written by *user_id* (and their subtrees)."""
        total = 0
        for comment in await self.store.comments.find_by_filter(user_id=user_id):
            total += len(await self.remove(comment.id, missing_ok=True))
        return total
