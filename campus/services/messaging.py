"""Messaging — chats, message delivery, and read receipts over the document store.

Invariants:
    - A message is stored only if its sender participates in the chat
    - Sending a message updates the chat's last-message summary and bumps the
      unread count of every other participant in the same transaction
    - Marking a chat read zeroes the reader's unread count and moves every
      message from others to READ in one transaction
    - Only members may add participants; the creator or group members may remove them
    - Search never fails on a corrupt record: it is logged and left out
"""

import logging
from collections.abc import Callable
from datetime import datetime

from campus.core.chat import Chat, chat_from_document, chat_to_document
from campus.core.documents import DocumentKey
from campus.core.domain_types import ChatType, Collection, MessageStatus, MessageType
from campus.core.errors import (
    DocumentDecodeError,
    EntityValidationError,
    ResourceNotFoundError,
    WriteConflictError,
)
from campus.core.message import Message, message_from_document, message_to_document
from campus.core.pagination import Page, PageCursor, clamp_limit
from campus.core.repository_protocols import DocumentStore, Snapshot
from campus.core.validation import utc_now
from campus.infrastructure.retry_policy import RetryPolicy
from campus.services.course_catalog import decode_documents

logger = logging.getLogger(__name__)


def chat_key(chat_id: str) -> DocumentKey:
    return DocumentKey.of(Collection.CHATS, chat_id)


def message_key(message_id: str) -> DocumentKey:
    return DocumentKey.of(Collection.MESSAGES, message_id)


def _contended(attempts: int) -> WriteConflictError:
    return WriteConflictError(f"Chat update still conflicting after {attempts} attempts")


class Messaging:
    """Chat and message operations."""

    def __init__(
        self,
        store: DocumentStore,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()
        self.clock = clock

    def _chat_from(self, snapshot: Snapshot, chat_id: str) -> Chat:
        data = snapshot[chat_key(chat_id)]
        if data is None:
            raise ResourceNotFoundError("Chat", chat_id)
        return chat_from_document(chat_id, data, self.clock())

    async def create_chat(self, chat: Chat) -> Chat:
        key = chat_key(chat.id)

        def insert(snapshot: Snapshot):
            if snapshot[key] is not None:
                raise WriteConflictError(f"Chat '{chat.id}' already exists")
            return chat, {key: chat_to_document(chat)}

        return await self.store.transaction([key], insert)

    async def get_chat(self, chat_id: str) -> Chat:
        data = await self.store.get(chat_key(chat_id))
        if data is None:
            raise ResourceNotFoundError("Chat", chat_id)
        return chat_from_document(chat_id, data, self.clock())

    async def get_user_chats(self, user_id: str) -> list[Chat]:
        documents = await self.store.query(
            Collection.CHATS.value, array_contains=("participantIds", user_id),
        )
        chats, _ = decode_documents(documents, chat_from_document, self.clock())
        return [c for c in chats if c.is_active]

    async def send_message(self, message: Message) -> Message:
        """Store the message as SENT and fold it into the chat summary."""
        keys = (chat_key(message.chat_id), message_key(message.id))

        def deliver(snapshot: Snapshot):
            now = self.clock()
            chat = self._chat_from(snapshot, message.chat_id)
            if not chat.has_participant(message.sender_id):
                raise EntityValidationError(
                    "Message", ("Sender is not a participant of this chat",),
                )
            if snapshot[keys[1]] is not None:
                raise WriteConflictError(f"Message '{message.id}' already exists")
            sent = message.mark_as_sent()
            chat = chat.update_last_message(
                message_id=sent.id,
                content=sent.content_preview,
                timestamp=sent.timestamp,
                sender_id=sent.sender_id,
                now=now,
            )
            for participant in chat.participant_ids:
                if participant != sent.sender_id:
                    chat = chat.increment_unread_count(participant)
            return sent, {keys[0]: chat_to_document(chat), keys[1]: message_to_document(sent)}

        sent = await self.retry_policy.run(
            lambda: self.store.transaction(keys, deliver), on_exhausted=_contended,
        )
        logger.info(f"Message {sent.id} sent to chat {sent.chat_id}")
        return sent

    async def list_messages(
        self, chat_id: str, *, limit: int | None = None, cursor: str | None = None,
    ) -> Page[Message]:
        """Messages of a chat, newest first."""
        limit = clamp_limit(limit, 50, 200)
        documents = await self.store.query(
            Collection.MESSAGES.value,
            equals={"chatId": chat_id},
            limit=limit,
            start_after=PageCursor.decode(cursor) if cursor else None,
        )
        messages, skipped = decode_documents(documents, message_from_document, self.clock())
        next_cursor = None
        if len(documents) == limit:
            next_cursor = PageCursor(documents[-1].sort_key, documents[-1].key.id).encode()
        return Page(items=tuple(messages), next_cursor=next_cursor, skipped=skipped)

    async def mark_chat_read(self, chat_id: str, user_id: str) -> Chat:
        """Reader catches up: unread count cleared, incoming messages marked READ."""

        async def attempt() -> Chat:
            pending = await self.store.query(
                Collection.MESSAGES.value, equals={"chatId": chat_id},
            )
            unread_keys = [
                d.key for d in pending
                if d.data.get("senderId") != user_id
                and d.data.get("status") not in (
                    MessageStatus.READ.value, MessageStatus.FAILED.value,
                )
            ]
            keys = [chat_key(chat_id), *unread_keys]

            def catch_up(snapshot: Snapshot):
                now = self.clock()
                chat = self._chat_from(snapshot, chat_id)
                if not chat.has_participant(user_id):
                    raise EntityValidationError(
                        "Chat", ("Only participants can mark a chat as read",),
                    )
                chat = chat.mark_as_read(user_id, now)
                writes = {keys[0]: chat_to_document(chat)}
                for key in unread_keys:
                    data = snapshot[key]
                    if data is None:
                        continue
                    try:
                        message = message_from_document(key.id, data, now)
                    except DocumentDecodeError as e:
                        logger.warning(
                            f"Leaving corrupt message {key} unread: {'; '.join(e.reasons)}",
                            extra={"collection": key.collection, "document_key": str(key)},
                        )
                        continue
                    writes[key] = message_to_document(message.mark_as_read(now))
                return chat, writes

            return await self.store.transaction(keys, catch_up)

        return await self.retry_policy.run(attempt, on_exhausted=_contended)

    async def update_message_status(
        self, message_id: str, status: MessageStatus,
    ) -> Message:
        key = message_key(message_id)

        def transition(snapshot: Snapshot):
            data = snapshot[key]
            if data is None:
                raise ResourceNotFoundError("Message", message_id)
            now = self.clock()
            updated = message_from_document(message_id, data, now).update_status(status, now)
            return updated, {key: message_to_document(updated)}

        return await self.retry_policy.run(
            lambda: self.store.transaction([key], transition), on_exhausted=_contended,
        )

    # ─── Participants ────────────────────────────────────────────

    async def add_participant(self, chat_id: str, actor_id: str, user_id: str) -> Chat:
        """Members of a group chat may invite others; direct chats never grow."""
        return await self._change_participants(
            chat_id, actor_id, lambda chat: chat.can_add_participants(actor_id),
            lambda chat, now: chat.add_participant(user_id, now),
            "Only group members can add participants",
        )

    async def remove_participant(self, chat_id: str, actor_id: str, user_id: str) -> Chat:
        return await self._change_participants(
            chat_id, actor_id, lambda chat: chat.can_remove_participants(actor_id),
            lambda chat, now: chat.remove_participant(user_id, now),
            "Only the creator or group members can remove participants",
        )

    async def _change_participants(self, chat_id, actor_id, allowed, change, refusal) -> Chat:
        key = chat_key(chat_id)

        def apply(snapshot: Snapshot):
            now = self.clock()
            chat = self._chat_from(snapshot, chat_id)
            if not allowed(chat):
                raise EntityValidationError("Chat", (refusal,))
            updated = change(chat, now)
            if updated is chat:
                return chat, {}
            return updated, {key: chat_to_document(updated)}

        chat = await self.retry_policy.run(
            lambda: self.store.transaction([key], apply), on_exhausted=_contended,
        )
        logger.info(f"Participants of chat {chat_id} changed by {actor_id}")
        return chat

    # ─── Search ──────────────────────────────────────────────────

    async def search_chats(
        self, user_id: str, query: str, *, chat_type: ChatType | None = None,
        include_archived: bool = False, limit: int = 20,
    ) -> list[Chat]:
        """Title hits first, then last-message hits; most recently active first within each."""
        if not query.strip():
            return []
        documents = await self.store.query(
            Collection.CHATS.value, array_contains=("participantIds", user_id),
        )
        chats, _ = decode_documents(documents, chat_from_document, self.clock())
        q = query.strip().lower()
        matches = [
            c for c in chats
            if (include_archived or c.is_active)
            and (chat_type is None or c.type is chat_type)
            and c.matches_search(query)
        ]
        matches.sort(key=lambda c: c.updated_at, reverse=True)
        matches.sort(key=lambda c: q not in c.title.lower())
        return matches[:limit]

    async def search_messages(
        self, chat_id: str, query: str, *, message_type: MessageType | None = None,
        limit: int = 50,
    ) -> list[Message]:
        """Messages of one chat whose content or file name match, newest first."""
        if not query.strip():
            return []
        documents = await self.store.query(
            Collection.MESSAGES.value, equals={"chatId": chat_id},
        )
        messages, _ = decode_documents(documents, message_from_document, self.clock())
        return [
            m for m in messages
            if (message_type is None or m.type is message_type) and m.matches_search(query)
        ][:limit]
