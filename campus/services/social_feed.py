"""Social Feed — posts, likes, bookmarks, and comments over the document store.

Invariants:
    - A like is recorded on both sides: post.liked_by and user.liked_posts change
      in the same transaction
    - A comment document exists iff its id is in the parent post's comment_ids
    - Only the author may edit or delete a comment

Design Decisions:
    - Same snapshot -> mutator -> commit shape as the enrollment coordinator,
      with the same RetryPolicy for write conflicts
"""

import logging
from collections.abc import Callable
from datetime import datetime

from campus.core.comment import Comment, comment_from_document, comment_to_document
from campus.core.documents import DocumentKey
from campus.core.domain_types import Collection
from campus.core.errors import (
    EntityValidationError,
    ResourceNotFoundError,
    WriteConflictError,
)
from campus.core.pagination import Page, PageCursor, clamp_limit
from campus.core.post import Post, post_from_document, post_to_document
from campus.core.repository_protocols import DocumentStore, Snapshot
from campus.core.user import User, user_from_document, user_to_document
from campus.core.validation import utc_now
from campus.infrastructure.retry_policy import RetryPolicy
from campus.services.course_catalog import decode_documents
from campus.services.enrollment_coordinator import user_key

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20


def post_key(post_id: str) -> DocumentKey:
    return DocumentKey.of(Collection.POSTS, post_id)


def comment_key(comment_id: str) -> DocumentKey:
    return DocumentKey.of(Collection.COMMENTS, comment_id)


def _contended(attempts: int) -> WriteConflictError:
    return WriteConflictError(f"Feed update still conflicting after {attempts} attempts")


class SocialFeed:
    """Post and comment operations with two-sided like bookkeeping."""

    def __init__(
        self,
        store: DocumentStore,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()
        self.clock = clock

    async def _transact(self, keys, fn):
        return await self.retry_policy.run(
            lambda: self.store.transaction(keys, fn), on_exhausted=_contended,
        )

    def _require(self, snapshot: Snapshot, key: DocumentKey, decoder, resource: str):
        data = snapshot[key]
        if data is None:
            raise ResourceNotFoundError(resource, key.id)
        return decoder(key.id, data, self.clock())

    # ─── Posts ───────────────────────────────────────────────────

    async def create_post(self, post: Post) -> Post:
        key = post_key(post.id)

        def insert(snapshot: Snapshot):
            if snapshot[key] is not None:
                raise WriteConflictError(f"Post '{post.id}' already exists")
            return post, {key: post_to_document(post)}

        return await self.store.transaction([key], insert)

    async def get_post(self, post_id: str) -> Post:
        data = await self.store.get(post_key(post_id))
        if data is None:
            raise ResourceNotFoundError("Post", post_id)
        return post_from_document(post_id, data, self.clock())

    async def list_posts(
        self, *, user_id: str | None = None, limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[Post]:
        limit = clamp_limit(limit, 10, 100)
        documents = await self.store.query(
            Collection.POSTS.value,
            equals={"userId": user_id} if user_id is not None else None,
            limit=limit,
            start_after=PageCursor.decode(cursor) if cursor else None,
        )
        posts, skipped = decode_documents(documents, post_from_document, self.clock())
        next_cursor = None
        if len(documents) == limit:
            next_cursor = PageCursor(documents[-1].sort_key, documents[-1].key.id).encode()
        return Page(items=tuple(posts), next_cursor=next_cursor, skipped=skipped)

    async def search_posts(
        self, query: str, *, tags: tuple[str, ...] = (), limit: int = SEARCH_LIMIT,
    ) -> list[Post]:
        """Posts whose content or tags match, newest first.

        Non-empty `tags` further keeps only posts carrying at least one of them.
        """
        if not query.strip():
            return []
        documents = await self.store.query(Collection.POSTS.value)
        posts, _ = decode_documents(documents, post_from_document, self.clock())
        wanted = {t.strip().lower() for t in tags}
        matches = [
            p for p in posts
            if p.matches_search(query)
            and (not wanted or wanted & {t.lower() for t in p.tags})
        ]
        return matches[:limit]

    async def search_users(self, query: str, limit: int = SEARCH_LIMIT) -> list[User]:
        if not query.strip():
            return []
        documents = await self.store.query(Collection.USERS.value)
        users, _ = decode_documents(documents, user_from_document, self.clock())
        return [u for u in users if u.matches_search(query)][:limit]

    async def toggle_like(self, post_id: str, user_id: str) -> Post:
        """Flip the user's like on both the post and the user profile."""
        keys = (post_key(post_id), user_key(user_id))

        def flip(snapshot: Snapshot):
            post: Post = self._require(snapshot, keys[0], post_from_document, "Post")
            user: User = self._require(snapshot, keys[1], user_from_document, "User")
            if post.is_liked_by(user_id):
                post, user = post.remove_like(user_id), user.remove_liked_post(post_id)
            else:
                post, user = post.add_like(user_id), user.add_liked_post(post_id)
            return post, {keys[0]: post_to_document(post), keys[1]: user_to_document(user)}

        return await self._transact(keys, flip)

    async def toggle_bookmark(self, user_id: str, post_id: str) -> User:
        key = user_key(user_id)

        def flip(snapshot: Snapshot):
            user: User = self._require(snapshot, key, user_from_document, "User")
            if user.has_bookmarked(post_id):
                user = user.remove_bookmark(post_id)
            else:
                user = user.add_bookmark(post_id)
            return user, {key: user_to_document(user)}

        return await self._transact([key], flip)

    # ─── Comments ────────────────────────────────────────────────

    async def add_comment(self, comment: Comment) -> Comment:
        keys = (post_key(comment.post_id), comment_key(comment.id))

        def attach(snapshot: Snapshot):
            post: Post = self._require(snapshot, keys[0], post_from_document, "Post")
            if snapshot[keys[1]] is not None:
                raise WriteConflictError(f"Comment '{comment.id}' already exists")
            return comment, {
                keys[0]: post_to_document(post.add_comment(comment.id)),
                keys[1]: comment_to_document(comment),
            }

        added = await self._transact(keys, attach)
        logger.info(f"Comment {comment.id} added to post {comment.post_id}")
        return added

    async def edit_comment(self, comment_id: str, user_id: str, content: str) -> Comment:
        key = comment_key(comment_id)

        def edit(snapshot: Snapshot):
            comment: Comment = self._require(snapshot, key, comment_from_document, "Comment")
            if not comment.is_authored_by(user_id):
                raise EntityValidationError(
                    "Comment", ("Only the author can edit this comment",),
                )
            edited = comment.edit(content, self.clock())
            return edited, {key: comment_to_document(edited)}

        return await self._transact([key], edit)

    async def delete_comment(self, comment_id: str, user_id: str) -> None:
        data = await self.store.get(comment_key(comment_id))
        if data is None:
            raise ResourceNotFoundError("Comment", comment_id)
        post_id = data.get("postId", "")
        keys = (post_key(post_id), comment_key(comment_id))

        def detach(snapshot: Snapshot):
            comment: Comment = self._require(snapshot, keys[1], comment_from_document, "Comment")
            if not comment.is_authored_by(user_id):
                raise EntityValidationError(
                    "Comment", ("Only the author can delete this comment",),
                )
            writes = {keys[1]: None}
            post_data = snapshot[keys[0]]
            if post_data is not None:
                post = post_from_document(post_id, post_data, self.clock())
                writes[keys[0]] = post_to_document(post.remove_comment(comment_id))
            return None, writes

        await self._transact(keys, detach)
        logger.info(f"Comment {comment_id} deleted from post {post_id}")

    async def list_comments(self, post_id: str) -> list[Comment]:
        """Comments of a post, oldest first."""
        documents = await self.store.query(
            Collection.COMMENTS.value, equals={"postId": post_id},
        )
        comments, _ = decode_documents(documents, comment_from_document, self.clock())
        return sorted(comments, key=lambda c: c.timestamp)
