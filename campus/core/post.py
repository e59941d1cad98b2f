"""Post — validated, immutable feed post with like and comment sets.

Invariants:
    - like_count == len(liked_by), comment_count == len(comment_ids), both >= 0
    - liked_by and comment_ids hold no duplicates
    - content 1..5000 chars, at most 10 tags
"""

from dataclasses import dataclass, replace
from datetime import datetime

from campus.core.documents import FieldReader, format_datetime
from campus.core.domain_types import Collection
from campus.core.validation import (
    ValidationResult,
    as_utc,
    check_not_future,
    check_required_id,
    check_tags,
    check_text_length,
    check_unique,
    strip_optional,
    utc_now,
)

MAX_CONTENT_LENGTH = 5000
MAX_TAGS = 10


@dataclass(frozen=True)
class Post:
    id: str
    user_id: str
    content: str
    timestamp: datetime
    image_url: str | None = None
    tags: tuple[str, ...] = ()
    liked_by: tuple[str, ...] = ()
    comment_ids: tuple[str, ...] = ()

    @property
    def like_count(self) -> int:
        return len(self.liked_by)

    @property
    def comment_count(self) -> int:
        return len(self.comment_ids)

    def is_liked_by(self, user_id: str) -> bool:
        return user_id in self.liked_by

    def is_authored_by(self, user_id: str) -> bool:
        return self.user_id == user_id

    @property
    def content_preview(self) -> str:
        if len(self.content) <= 100:
            return self.content
        return self.content[:97] + "..."

    def matches_search(self, query: str) -> bool:
        q = query.strip().lower()
        return q in self.content.lower() or any(q in tag.lower() for tag in self.tags)

    def add_like(self, user_id: str) -> "Post":
        if user_id in self.liked_by:
            return self
        return replace(self, liked_by=self.liked_by + (user_id,))

    def remove_like(self, user_id: str) -> "Post":
        if user_id not in self.liked_by:
            return self
        return replace(self, liked_by=tuple(u for u in self.liked_by if u != user_id))

    def toggle_like(self, user_id: str) -> "Post":
        if user_id in self.liked_by:
            return self.remove_like(user_id)
        return self.add_like(user_id)

    def add_comment(self, comment_id: str) -> "Post":
        if comment_id in self.comment_ids:
            return self
        return replace(self, comment_ids=self.comment_ids + (comment_id,))

    def remove_comment(self, comment_id: str) -> "Post":
        if comment_id not in self.comment_ids:
            return self
        return replace(
            self, comment_ids=tuple(c for c in self.comment_ids if c != comment_id),
        )


def validate_post(
    *,
    id: str,
    user_id: str,
    content: str,
    timestamp: datetime,
    image_url: str | None = None,
    tags: tuple[str, ...] | list[str] = (),
    liked_by: tuple[str, ...] | list[str] = (),
    comment_ids: tuple[str, ...] | list[str] = (),
    like_count: int | None = None,
    comment_count: int | None = None,
    now: datetime | None = None,
) -> ValidationResult[Post]:
    """Stored counts are optional; when given they must agree with their sets."""
    now = now or utc_now()
    errors: list[str] = []

    check_required_id(errors, id, "Post ID")
    check_text_length(errors, content, "Post content", max_length=MAX_CONTENT_LENGTH)
    check_required_id(errors, user_id, "User ID")
    if image_url is not None and not image_url.strip():
        errors.append("Image URL cannot be empty if provided")
    check_tags(errors, tags, max_tags=MAX_TAGS)

    if like_count is not None:
        if like_count < 0:
            errors.append("Like count cannot be negative")
        if like_count != len(liked_by):
            errors.append("Like count must match likedBy array length")
    if comment_count is not None:
        if comment_count < 0:
            errors.append("Comment count cannot be negative")
        if comment_count != len(comment_ids):
            errors.append("Comment count must match commentIds array length")

    check_unique(errors, liked_by, "Liked by list cannot contain duplicates")
    check_unique(errors, comment_ids, "Comment ids cannot contain duplicates")
    check_not_future(errors, timestamp, "Post timestamp", now)

    if errors:
        return ValidationResult.failure(errors)

    return ValidationResult.success(Post(
        id=id.strip(),
        user_id=user_id.strip(),
        content=content.strip(),
        timestamp=as_utc(timestamp),
        image_url=strip_optional(image_url),
        tags=tuple(tag.strip() for tag in tags),
        liked_by=tuple(liked_by),
        comment_ids=tuple(comment_ids),
    ))


def post_to_document(post: Post) -> dict:
    return {
        "userId": post.user_id,
        "content": post.content,
        "imageUrl": post.image_url,
        "tags": list(post.tags),
        "timestamp": format_datetime(post.timestamp),
        "likeCount": post.like_count,
        "likedBy": list(post.liked_by),
        "commentCount": post.comment_count,
        "commentIds": list(post.comment_ids),
    }


def post_from_document(document_id: str, data: dict, now: datetime | None = None) -> Post:
    reader = FieldReader(Collection.POSTS.value, document_id, data)
    liked_by = reader.string_list("likedBy")
    comment_ids = reader.string_list("commentIds")
    fields = dict(
        id=document_id,
        user_id=reader.string("userId"),
        content=reader.string("content"),
        timestamp=reader.timestamp("timestamp"),
        image_url=reader.optional_string("imageUrl"),
        tags=reader.string_list("tags"),
        liked_by=liked_by,
        comment_ids=comment_ids,
        like_count=reader.integer("likeCount", default=len(liked_by)),
        comment_count=reader.integer("commentCount", default=len(comment_ids)),
    )
    reader.fail_if_problems()
    result = validate_post(**fields, now=now)
    if not result.ok:
        reader.fail_with(result.violations)
    return result.value
