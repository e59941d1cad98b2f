"""Message — validated, immutable chat message with a delivery state machine.

Invariants:
    - timestamp <= delivered_at <= read_at whenever those stamps exist
    - status DELIVERED requires delivered_at; status READ requires read_at and delivered_at
    - file_url / file_name / file_size are required together for IMAGE and FILE messages
    - TEXT content is non-empty; content never exceeds 10000 chars

State machine:
    SENDING -> SENT | FAILED
    SENDING | SENT -> DELIVERED -> READ
    SENDING | SENT -> READ            (delivered_at backfilled with the same instant)
    READ, FAILED are terminal — a resend creates a new Message
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from campus.core.documents import FieldReader, format_datetime
from campus.core.domain_types import Collection, MessageStatus, MessageType
from campus.core.validation import (
    ValidationResult,
    as_utc,
    check_not_future,
    check_required_id,
    strip_optional,
    utc_now,
)

MAX_CONTENT_LENGTH = 10_000
_FILE_TYPES = (MessageType.IMAGE, MessageType.FILE)
_TERMINAL = (MessageStatus.READ, MessageStatus.FAILED)


@dataclass(frozen=True)
class Message:
    id: str
    chat_id: str
    sender_id: str
    content: str
    type: MessageType
    status: MessageStatus
    timestamp: datetime
    read_at: datetime | None = None
    delivered_at: datetime | None = None
    file_url: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    reply_to_message_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_read(self) -> bool:
        return self.status is MessageStatus.READ

    @property
    def is_delivered(self) -> bool:
        return self.status in (MessageStatus.DELIVERED, MessageStatus.READ)

    @property
    def has_failed(self) -> bool:
        return self.status is MessageStatus.FAILED

    @property
    def has_file(self) -> bool:
        return self.type in _FILE_TYPES

    def is_sent_by(self, user_id: str) -> bool:
        return self.sender_id == user_id

    @property
    def content_preview(self) -> str:
        if self.type is MessageType.IMAGE:
            return "Image"
        if self.type is MessageType.FILE:
            return self.file_name or "File"
        if self.type is MessageType.TEXT and len(self.content) > 50:
            return self.content[:47] + "..."
        return self.content

    def matches_search(self, query: str) -> bool:
        q = query.strip().lower()
        return q in self.content.lower() or q in (self.file_name or "").lower()

    # ─── Mutators ────────────────────────────────────────────────

    def mark_as_sent(self) -> "Message":
        if self.status is not MessageStatus.SENDING:
            return self
        return replace(self, status=MessageStatus.SENT)

    def mark_as_delivered(self, now: datetime | None = None) -> "Message":
        if self.status in (MessageStatus.DELIVERED, *_TERMINAL):
            return self
        stamp = max(as_utc(now or utc_now()), self.timestamp)
        return replace(self, status=MessageStatus.DELIVERED, delivered_at=stamp)

    def mark_as_read(self, now: datetime | None = None) -> "Message":
        """Mark read; an undelivered message gets delivered_at == read_at."""
        if self.status in _TERMINAL:
            return self
        floor = self.delivered_at or self.timestamp
        stamp = max(as_utc(now or utc_now()), floor)
        return replace(
            self,
            status=MessageStatus.READ,
            read_at=stamp,
            delivered_at=self.delivered_at or stamp,
        )

    def mark_as_failed(self) -> "Message":
        if self.status is not MessageStatus.SENDING:
            return self
        return replace(self, status=MessageStatus.FAILED)

    def update_status(self, status: MessageStatus, now: datetime | None = None) -> "Message":
        if status is MessageStatus.SENT:
            return self.mark_as_sent()
        if status is MessageStatus.DELIVERED:
            return self.mark_as_delivered(now)
        if status is MessageStatus.READ:
            return self.mark_as_read(now)
        if status is MessageStatus.FAILED:
            return self.mark_as_failed()
        return self


def _check_file_fields(
    errors: list[str], message_type: MessageType | None,
    file_url: str | None, file_name: str | None, file_size: int | None,
) -> None:
    if message_type in _FILE_TYPES:
        if not (file_url or "").strip():
            errors.append("File URL is required for file/image messages")
        if not (file_name or "").strip():
            errors.append("File name is required for file/image messages")
        if file_size is None or file_size <= 0:
            errors.append("Valid file size is required for file/image messages")
    elif message_type is not None and any(
        v is not None for v in (file_url, file_name, file_size)
    ):
        errors.append("Only file/image messages can carry file attachments")


def _check_status_stamps(
    errors: list[str], status: MessageStatus | None, timestamp: datetime,
    delivered_at: datetime | None, read_at: datetime | None,
) -> None:
    if read_at is not None and as_utc(read_at) < as_utc(timestamp):
        errors.append("Read timestamp cannot be before message timestamp")
    if delivered_at is not None and as_utc(delivered_at) < as_utc(timestamp):
        errors.append("Delivered timestamp cannot be before message timestamp")
    if read_at is not None and delivered_at is not None and as_utc(read_at) < as_utc(delivered_at):
        errors.append("Read timestamp cannot be before delivered timestamp")
    if status is MessageStatus.READ and read_at is None:
        errors.append("Read messages must have a read timestamp")
    if status is MessageStatus.READ and delivered_at is None:
        errors.append("Read messages must have a delivered timestamp")
    if status is MessageStatus.DELIVERED and delivered_at is None:
        errors.append("Delivered messages must have a delivered timestamp")


def validate_message(
    *,
    id: str,
    chat_id: str,
    sender_id: str,
    content: str,
    type: MessageType | str,
    status: MessageStatus | str,
    timestamp: datetime,
    read_at: datetime | None = None,
    delivered_at: datetime | None = None,
    file_url: str | None = None,
    file_name: str | None = None,
    file_size: int | None = None,
    reply_to_message_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> ValidationResult[Message]:
    now = now or utc_now()
    errors: list[str] = []

    check_required_id(errors, id, "Message ID")
    check_required_id(errors, chat_id, "Chat ID")
    check_required_id(errors, sender_id, "Sender ID")

    try:
        message_type = MessageType(type)
    except ValueError:
        errors.append(f"Invalid message type: {type}")
        message_type = None
    try:
        message_status = MessageStatus(status)
    except ValueError:
        errors.append(f"Invalid message status: {status}")
        message_status = None

    if message_type is MessageType.TEXT and not content.strip():
        errors.append("Text message content cannot be empty")
    if len(content.strip()) > MAX_CONTENT_LENGTH:
        errors.append(f"Message content cannot exceed {MAX_CONTENT_LENGTH} characters")

    _check_file_fields(errors, message_type, file_url, file_name, file_size)
    check_not_future(errors, timestamp, "Message timestamp", now)
    _check_status_stamps(errors, message_status, timestamp, delivered_at, read_at)

    if errors:
        return ValidationResult.failure(errors)

    return ValidationResult.success(Message(
        id=id.strip(),
        chat_id=chat_id.strip(),
        sender_id=sender_id.strip(),
        content=content.strip(),
        type=message_type,
        status=message_status,
        timestamp=as_utc(timestamp),
        read_at=as_utc(read_at) if read_at is not None else None,
        delivered_at=as_utc(delivered_at) if delivered_at is not None else None,
        file_url=strip_optional(file_url),
        file_name=strip_optional(file_name),
        file_size=file_size,
        reply_to_message_id=strip_optional(reply_to_message_id),
        metadata=dict(metadata or {}),
    ))


def message_to_document(message: Message) -> dict:
    return {
        "chatId": message.chat_id,
        "senderId": message.sender_id,
        "content": message.content,
        "type": message.type.value,
        "status": message.status.value,
        "timestamp": format_datetime(message.timestamp),
        "readAt": format_datetime(message.read_at),
        "deliveredAt": format_datetime(message.delivered_at),
        "fileUrl": message.file_url,
        "fileName": message.file_name,
        "fileSize": message.file_size,
        "replyToMessageId": message.reply_to_message_id,
        "metadata": dict(message.metadata),
    }


def message_from_document(
    document_id: str, data: dict, now: datetime | None = None,
) -> Message:
    reader = FieldReader(Collection.MESSAGES.value, document_id, data)
    fields = dict(
        id=document_id,
        chat_id=reader.string("chatId"),
        sender_id=reader.string("senderId"),
        content=reader.string("content", default=""),
        type=reader.enum("type", MessageType),
        status=reader.enum("status", MessageStatus),
        timestamp=reader.timestamp("timestamp"),
        read_at=reader.optional_timestamp("readAt"),
        delivered_at=reader.optional_timestamp("deliveredAt"),
        file_url=reader.optional_string("fileUrl"),
        file_name=reader.optional_string("fileName"),
        file_size=reader.optional_integer("fileSize"),
        reply_to_message_id=reader.optional_string("replyToMessageId"),
        metadata=reader.mapping("metadata"),
    )
    reader.fail_if_problems()
    result = validate_message(**fields, now=now)
    if not result.ok:
        reader.fail_with(result.violations)
    return result.value
