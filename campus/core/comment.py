"""Comment — validated, immutable comment on a post.

Invariants:
    - is_edited <=> edited_at is present, and edited_at >= timestamp
    - content 1..1000 chars after trimming
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
    check_text_length,
    utc_now,
)

MAX_CONTENT_LENGTH = 1000


@dataclass(frozen=True)
class Comment:
    id: str
    post_id: str
    user_id: str
    content: str
    timestamp: datetime
    edited_at: datetime | None = None
    is_edited: bool = False

    def is_authored_by(self, user_id: str) -> bool:
        return self.user_id == user_id

    @property
    def content_preview(self) -> str:
        if len(self.content) <= 50:
            return self.content
        return self.content[:47] + "..."

    def edit(self, new_content: str, now: datetime | None = None) -> "Comment":
        """Replace content. No-op when the trimmed text is empty or too long."""
        text = new_content.strip()
        if not text or len(text) > MAX_CONTENT_LENGTH:
            return self
        stamp = max(as_utc(now or utc_now()), self.timestamp)
        return replace(self, content=text, edited_at=stamp, is_edited=True)


def validate_comment(
    *,
    id: str,
    post_id: str,
    user_id: str,
    content: str,
    timestamp: datetime,
    edited_at: datetime | None = None,
    is_edited: bool = False,
    now: datetime | None = None,
) -> ValidationResult[Comment]:
    now = now or utc_now()
    errors: list[str] = []

    check_required_id(errors, id, "Comment ID")
    check_required_id(errors, post_id, "Post ID")
    check_required_id(errors, user_id, "User ID")
    check_text_length(errors, content, "Comment content", max_length=MAX_CONTENT_LENGTH)
    check_not_future(errors, timestamp, "Comment timestamp", now)

    if edited_at is not None:
        if as_utc(edited_at) < as_utc(timestamp):
            errors.append("Edit timestamp cannot be before original timestamp")
        check_not_future(errors, edited_at, "Edit timestamp", now)
    if is_edited and edited_at is None:
        errors.append("Edited comments must have an edit timestamp")
    if not is_edited and edited_at is not None:
        errors.append("Non-edited comments cannot have an edit timestamp")

    if errors:
        return ValidationResult.failure(errors)

    return ValidationResult.success(Comment(
        id=id.strip(),
        post_id=post_id.strip(),
        user_id=user_id.strip(),
        content=content.strip(),
        timestamp=as_utc(timestamp),
        edited_at=as_utc(edited_at) if edited_at is not None else None,
        is_edited=is_edited,
    ))


def comment_to_document(comment: Comment) -> dict:
    return {
        "postId": comment.post_id,
        "userId": comment.user_id,
        "content": comment.content,
        "timestamp": format_datetime(comment.timestamp),
        "editedAt": format_datetime(comment.edited_at),
        "isEdited": comment.is_edited,
    }


def comment_from_document(
    document_id: str, data: dict, now: datetime | None = None,
) -> Comment:
    reader = FieldReader(Collection.COMMENTS.value, document_id, data)
    fields = dict(
        id=document_id,
        post_id=reader.string("postId"),
        user_id=reader.string("userId"),
        content=reader.string("content"),
        timestamp=reader.timestamp("timestamp"),
        edited_at=reader.optional_timestamp("editedAt"),
        is_edited=reader.boolean("isEdited", default=False),
    )
    reader.fail_if_problems()
    result = validate_comment(**fields, now=now)
    if not result.ok:
        reader.fail_with(result.violations)
    return result.value
