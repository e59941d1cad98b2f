"""Chat — validated, immutable conversation with per-participant read state.

Invariants:
    - participant_ids unique, 1..1000; DIRECT has exactly 2, GROUP has at least 3
    - last_message_* fields are all present or all absent; the sender is a participant
    - unread_counts / last_read_timestamps keys are participants; counts >= 0
    - created_by, when present, is a participant
    - Mutators purge per-participant state when a participant leaves

Design Decisions:
    - remove_participant refuses to break the chat shape (direct chats, groups at 3)
      rather than producing a value the validator would reject
    - A departing last-message sender clears the whole last-message block
      (all-or-none rule) instead of leaving a dangling sender id
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from campus.core.documents import FieldReader, format_datetime
from campus.core.domain_types import ChatType, Collection
from campus.core.validation import (
    ValidationResult,
    as_utc,
    check_not_future,
    check_required_id,
    check_text_length,
    is_in_future,
    strip_optional,
    utc_now,
)

MAX_PARTICIPANTS = 1000
MIN_GROUP_PARTICIPANTS = 3
DIRECT_PARTICIPANTS = 2


@dataclass(frozen=True)
class Chat:
    id: str
    title: str
    type: ChatType
    participant_ids: tuple[str, ...]
    created_at: datetime
    updated_at: datetime
    last_message_id: str | None = None
    last_message_content: str | None = None
    last_message_timestamp: datetime | None = None
    last_message_sender_id: str | None = None
    created_by: str | None = None
    image_url: str | None = None
    unread_counts: dict[str, int] = field(default_factory=dict)
    last_read_timestamps: dict[str, datetime] = field(default_factory=dict)
    is_active: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participant_ids

    def get_unread_count(self, user_id: str) -> int:
        return self.unread_counts.get(user_id, 0)

    def has_unread_messages(self, user_id: str) -> bool:
        return self.get_unread_count(user_id) > 0

    @property
    def total_unread_count(self) -> int:
        return sum(self.unread_counts.values())

    @property
    def has_last_message(self) -> bool:
        return self.last_message_id is not None

    def matches_search(self, query: str) -> bool:
        q = query.strip().lower()
        return q in self.title.lower() or q in (self.last_message_content or "").lower()

    def can_add_participants(self, user_id: str) -> bool:
        return self.type is not ChatType.DIRECT and self.has_participant(user_id)

    def can_remove_participants(self, user_id: str) -> bool:
        return self.created_by == user_id or (
            self.type is ChatType.GROUP and self.has_participant(user_id)
        )

    # ─── Mutators ────────────────────────────────────────────────

    def _touched(self, now: datetime | None) -> datetime:
        return max(as_utc(now or utc_now()), self.updated_at)

    def update_last_message(
        self, *, message_id: str, content: str, timestamp: datetime,
        sender_id: str, now: datetime | None = None,
    ) -> "Chat":
        """Record the latest message. No-op unless the sender participates."""
        if sender_id not in self.participant_ids or not message_id.strip():
            return self
        if is_in_future(timestamp, now or utc_now()):
            return self
        return replace(
            self,
            last_message_id=message_id.strip(),
            last_message_content=content.strip(),
            last_message_timestamp=as_utc(timestamp),
            last_message_sender_id=sender_id,
            updated_at=self._touched(now),
        )

    def add_participant(self, user_id: str, now: datetime | None = None) -> "Chat":
        if (
            not user_id.strip()
            or user_id in self.participant_ids
            or self.type is ChatType.DIRECT
            or len(self.participant_ids) >= MAX_PARTICIPANTS
        ):
            return self
        return replace(
            self,
            participant_ids=self.participant_ids + (user_id,),
            updated_at=self._touched(now),
        )

    def remove_participant(self, user_id: str, now: datetime | None = None) -> "Chat":
        if user_id not in self.participant_ids or self.type is ChatType.DIRECT:
            return self
        remaining = tuple(p for p in self.participant_ids if p != user_id)
        if not remaining:
            return self
        if self.type is ChatType.GROUP and len(remaining) < MIN_GROUP_PARTICIPANTS:
            return self
        changes: dict[str, Any] = {
            "participant_ids": remaining,
            "unread_counts": {k: v for k, v in self.unread_counts.items() if k != user_id},
            "last_read_timestamps": {
                k: v for k, v in self.last_read_timestamps.items() if k != user_id
            },
            "updated_at": self._touched(now),
        }
        if self.created_by == user_id:
            changes["created_by"] = None
        if self.last_message_sender_id == user_id:
            changes.update(
                last_message_id=None,
                last_message_content=None,
                last_message_timestamp=None,
                last_message_sender_id=None,
            )
        return replace(self, **changes)

    def update_unread_count(self, user_id: str, count: int) -> "Chat":
        """Set a participant's unread count; zero or less drops the entry."""
        if user_id not in self.participant_ids:
            return self
        counts = dict(self.unread_counts)
        if count <= 0:
            counts.pop(user_id, None)
        else:
            counts[user_id] = count
        return replace(self, unread_counts=counts)

    def increment_unread_count(self, user_id: str) -> "Chat":
        return self.update_unread_count(user_id, self.get_unread_count(user_id) + 1)

    def clear_unread_count(self, user_id: str) -> "Chat":
        return self.update_unread_count(user_id, 0)

    def update_last_read_timestamp(
        self, user_id: str, timestamp: datetime, now: datetime | None = None,
    ) -> "Chat":
        if user_id not in self.participant_ids:
            return self
        if is_in_future(timestamp, now or utc_now()):
            return self
        stamps = dict(self.last_read_timestamps)
        stamps[user_id] = as_utc(timestamp)
        return replace(self, last_read_timestamps=stamps)

    def mark_as_read(self, user_id: str, now: datetime | None = None) -> "Chat":
        """Stamp last read = now and zero the participant's unread count."""
        now = as_utc(now or utc_now())
        return self.update_last_read_timestamp(user_id, now, now).clear_unread_count(user_id)

    def archive(self, now: datetime | None = None) -> "Chat":
        if not self.is_active:
            return self
        return replace(self, is_active=False, updated_at=self._touched(now))

    def unarchive(self, now: datetime | None = None) -> "Chat":
        if self.is_active:
            return self
        return replace(self, is_active=True, updated_at=self._touched(now))


def _check_participants(
    errors: list[str], chat_type: ChatType | None, participant_ids: list[str],
) -> None:
    if not participant_ids:
        errors.append("Chat must have at least one participant")
    if len(participant_ids) > MAX_PARTICIPANTS:
        errors.append(f"Chat cannot have more than {MAX_PARTICIPANTS} participants")
    if any(not p for p in participant_ids):
        errors.append("Participant IDs cannot be empty")
    if len(set(participant_ids)) != len(participant_ids):
        errors.append("Duplicate participants are not allowed")
    if chat_type is ChatType.DIRECT and len(participant_ids) != DIRECT_PARTICIPANTS:
        errors.append("Direct chats must have exactly 2 participants")
    if chat_type is ChatType.GROUP and len(participant_ids) < MIN_GROUP_PARTICIPANTS:
        errors.append("Group chats must have at least 3 participants")


def _check_last_message(
    errors: list[str], participants: set[str], now: datetime,
    message_id: str | None, content: str | None,
    timestamp: datetime | None, sender_id: str | None,
) -> None:
    present = [v is not None for v in (message_id, content, timestamp, sender_id)]
    if any(present) and not all(present):
        errors.append(
            "Last message id, content, timestamp and sender must be provided together",
        )
    if sender_id is not None and sender_id.strip() not in participants:
        errors.append("Last message sender must be a participant in the chat")
    check_not_future(errors, timestamp, "Last message timestamp", now)


def _check_read_state(
    errors: list[str], participants: set[str], now: datetime,
    unread_counts: dict[str, int], last_read_timestamps: dict[str, datetime],
) -> None:
    if any(user_id not in participants for user_id in unread_counts):
        errors.append("Unread count user must be a participant in the chat")
    if any(count < 0 for count in unread_counts.values()):
        errors.append("Unread count cannot be negative")
    if any(user_id not in participants for user_id in last_read_timestamps):
        errors.append("Last read timestamp user must be a participant in the chat")
    if any(is_in_future(ts, now) for ts in last_read_timestamps.values()):
        errors.append("Last read timestamp cannot be in the future")


def validate_chat(
    *,
    id: str,
    title: str,
    type: ChatType | str,
    participant_ids: tuple[str, ...] | list[str],
    created_at: datetime,
    updated_at: datetime,
    last_message_id: str | None = None,
    last_message_content: str | None = None,
    last_message_timestamp: datetime | None = None,
    last_message_sender_id: str | None = None,
    created_by: str | None = None,
    image_url: str | None = None,
    unread_counts: dict[str, int] | None = None,
    last_read_timestamps: dict[str, datetime] | None = None,
    is_active: bool = True,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> ValidationResult[Chat]:
    now = now or utc_now()
    errors: list[str] = []
    participant_list = [p.strip() for p in participant_ids]
    participants = set(participant_list)
    unread_counts = dict(unread_counts or {})
    last_read_timestamps = dict(last_read_timestamps or {})

    check_required_id(errors, id, "Chat ID")
    check_text_length(errors, title, "Chat title", max_length=100)
    try:
        chat_type = ChatType(type)
    except ValueError:
        errors.append(f"Invalid chat type: {type}")
        chat_type = None

    _check_participants(errors, chat_type, participant_list)

    check_not_future(errors, created_at, "Created timestamp", now)
    if as_utc(updated_at) < as_utc(created_at):
        errors.append("Updated timestamp cannot be before created timestamp")
    check_not_future(errors, updated_at, "Updated timestamp", now)

    _check_last_message(
        errors, participants, now, last_message_id, last_message_content,
        last_message_timestamp, last_message_sender_id,
    )
    _check_read_state(errors, participants, now, unread_counts, last_read_timestamps)

    if created_by is not None and created_by.strip() not in participants:
        errors.append("Chat creator must be a participant in the chat")

    if errors:
        return ValidationResult.failure(errors)

    return ValidationResult.success(Chat(
        id=id.strip(),
        title=title.strip(),
        type=chat_type,
        participant_ids=tuple(participant_list),
        created_at=as_utc(created_at),
        updated_at=as_utc(updated_at),
        last_message_id=strip_optional(last_message_id),
        last_message_content=strip_optional(last_message_content),
        last_message_timestamp=(
            as_utc(last_message_timestamp) if last_message_timestamp else None
        ),
        last_message_sender_id=strip_optional(last_message_sender_id),
        created_by=strip_optional(created_by),
        image_url=strip_optional(image_url),
        unread_counts=unread_counts,
        last_read_timestamps={k: as_utc(v) for k, v in last_read_timestamps.items()},
        is_active=is_active,
        metadata=dict(metadata or {}),
    ))


def chat_to_document(chat: Chat) -> dict:
    return {
        "title": chat.title,
        "type": chat.type.value,
        "participantIds": list(chat.participant_ids),
        "lastMessageId": chat.last_message_id,
        "lastMessageContent": chat.last_message_content,
        "lastMessageTimestamp": format_datetime(chat.last_message_timestamp),
        "lastMessageSenderId": chat.last_message_sender_id,
        "createdAt": format_datetime(chat.created_at),
        "updatedAt": format_datetime(chat.updated_at),
        "createdBy": chat.created_by,
        "imageUrl": chat.image_url,
        "unreadCounts": dict(chat.unread_counts),
        "lastReadTimestamps": {
            k: format_datetime(v) for k, v in chat.last_read_timestamps.items()
        },
        "isActive": chat.is_active,
        "metadata": dict(chat.metadata),
    }


def chat_from_document(document_id: str, data: dict, now: datetime | None = None) -> Chat:
    reader = FieldReader(Collection.CHATS.value, document_id, data)
    fields = dict(
        id=document_id,
        title=reader.string("title"),
        type=reader.enum("type", ChatType),
        participant_ids=reader.string_list("participantIds"),
        created_at=reader.timestamp("createdAt"),
        updated_at=reader.timestamp("updatedAt"),
        last_message_id=reader.optional_string("lastMessageId"),
        last_message_content=reader.optional_string("lastMessageContent"),
        last_message_timestamp=reader.optional_timestamp("lastMessageTimestamp"),
        last_message_sender_id=reader.optional_string("lastMessageSenderId"),
        created_by=reader.optional_string("createdBy"),
        image_url=reader.optional_string("imageUrl"),
        unread_counts=reader.int_map("unreadCounts"),
        last_read_timestamps=reader.timestamp_map("lastReadTimestamps"),
        is_active=reader.boolean("isActive", default=True),
        metadata=reader.mapping("metadata"),
    )
    reader.fail_if_problems()
    result = validate_chat(**fields, now=now)
    if not result.ok:
        reader.fail_with(result.violations)
    return result.value
