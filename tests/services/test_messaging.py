"""Messaging — chat summaries, unread counts, and read receipts."""

import logging
from datetime import timedelta

import pytest

from campus.core.chat import validate_chat
from campus.core.domain_types import ChatType, MessageStatus, MessageType
from campus.core.errors import EntityValidationError, ResourceNotFoundError
from campus.core.message import validate_message
from campus.services.messaging import message_key
from tests.factories import EARLIER, NOW


def _chat(chat_id="chat-1", participants=("a", "b", "c"), **overrides):
    fields = dict(
        id=chat_id, title="Study group", type=ChatType.GROUP,
        participant_ids=participants, created_at=EARLIER, updated_at=EARLIER,
    )
    fields.update(overrides)
    return validate_chat(**fields, now=NOW).unwrap("Chat")


def _message(message_id, sender="a", minutes=0, content="hi all"):
    return validate_message(
        id=message_id, chat_id="chat-1", sender_id=sender, content=content,
        type=MessageType.TEXT, status=MessageStatus.SENDING,
        timestamp=EARLIER + timedelta(minutes=minutes), now=NOW,
    ).unwrap("Message")


async def test_send_message_updates_summary_and_unread(messaging):
    await messaging.create_chat(_chat())

    sent = await messaging.send_message(_message("m1"))

    assert sent.status is MessageStatus.SENT
    chat = await messaging.get_chat("chat-1")
    assert chat.last_message_id == "m1"
    assert chat.last_message_sender_id == "a"
    assert chat.unread_counts == {"b": 1, "c": 1}
    assert chat.updated_at == NOW


async def test_outsider_cannot_send(messaging):
    await messaging.create_chat(_chat())
    with pytest.raises(EntityValidationError):
        await messaging.send_message(_message("m1", sender="z"))


async def test_send_to_missing_chat(messaging):
    with pytest.raises(ResourceNotFoundError):
        await messaging.send_message(_message("m1"))


async def test_mark_chat_read_reads_incoming_only(messaging):
    await messaging.create_chat(_chat())
    await messaging.send_message(_message("m1", sender="a", minutes=1))
    await messaging.send_message(_message("m2", sender="b", minutes=2))
    await messaging.send_message(_message("m3", sender="a", minutes=3))

    chat = await messaging.mark_chat_read("chat-1", "b")

    assert chat.get_unread_count("b") == 0
    assert chat.get_unread_count("c") == 3
    assert chat.last_read_timestamps["b"] == NOW
    statuses = {m.id: m.status for m in (await messaging.list_messages("chat-1")).items}
    assert statuses == {
        "m1": MessageStatus.READ, "m2": MessageStatus.SENT, "m3": MessageStatus.READ,
    }


async def test_only_participants_mark_read(messaging):
    await messaging.create_chat(_chat())
    with pytest.raises(EntityValidationError):
        await messaging.mark_chat_read("chat-1", "z")


async def test_list_messages_pages_newest_first(messaging):
    await messaging.create_chat(_chat())
    for i in range(3):
        await messaging.send_message(_message(f"m{i}", minutes=i))

    first = await messaging.list_messages("chat-1", limit=2)
    second = await messaging.list_messages("chat-1", limit=2, cursor=first.next_cursor)

    assert [m.id for m in first.items] == ["m2", "m1"]
    assert [m.id for m in second.items] == ["m0"]
    assert second.next_cursor is None


async def test_user_chats_exclude_archived(messaging):
    await messaging.create_chat(_chat("chat-1"))
    await messaging.create_chat(_chat("chat-2", is_active=False))
    await messaging.create_chat(_chat("chat-3", participants=("x", "y"), type=ChatType.DIRECT))

    assert [c.id for c in await messaging.get_user_chats("a")] == ["chat-1"]


async def test_update_message_status_follows_state_machine(messaging):
    await messaging.create_chat(_chat())
    await messaging.send_message(_message("m1"))

    delivered = await messaging.update_message_status("m1", MessageStatus.DELIVERED)
    failed = await messaging.update_message_status("m1", MessageStatus.FAILED)

    assert delivered.status is MessageStatus.DELIVERED
    assert delivered.delivered_at == NOW
    assert failed.status is MessageStatus.DELIVERED
    with pytest.raises(ResourceNotFoundError):
        await messaging.update_message_status("nope", MessageStatus.READ)


async def test_mark_chat_read_leaves_corrupt_message_alone(store, messaging, caplog):
    await messaging.create_chat(_chat())
    await messaging.send_message(_message("m1", sender="a", minutes=1))
    await messaging.send_message(_message("m2", sender="a", minutes=2))
    await store.put(message_key("m2"), {
        **await store.get(message_key("m2")), "timestamp": "garbage",
    })

    with caplog.at_level(logging.WARNING, logger="campus.services.messaging"):
        chat = await messaging.mark_chat_read("chat-1", "b")

    assert chat.get_unread_count("b") == 0
    assert (await store.get(message_key("m1")))["status"] == MessageStatus.READ.value
    assert (await store.get(message_key("m2")))["status"] == MessageStatus.SENT.value
    assert "messages/m2" in caplog.text


# ─── Participants ────────────────────────────────────────────────

async def test_members_add_and_remove_participants(messaging):
    await messaging.create_chat(_chat(created_by="a"))

    grown = await messaging.add_participant("chat-1", "b", "d")
    shrunk = await messaging.remove_participant("chat-1", "a", "c")

    assert grown.participant_ids == ("a", "b", "c", "d")
    assert shrunk.participant_ids == ("a", "b", "d")
    assert (await messaging.get_chat("chat-1")).participant_ids == ("a", "b", "d")


async def test_outsiders_cannot_change_participants(messaging):
    await messaging.create_chat(_chat())
    with pytest.raises(EntityValidationError):
        await messaging.add_participant("chat-1", "z", "d")
    with pytest.raises(EntityValidationError):
        await messaging.remove_participant("chat-1", "z", "c")


async def test_direct_chats_do_not_grow(messaging):
    await messaging.create_chat(_chat(participants=("a", "b"), type=ChatType.DIRECT))
    with pytest.raises(EntityValidationError):
        await messaging.add_participant("chat-1", "a", "c")


# ─── Search ──────────────────────────────────────────────────────

async def test_search_chats_prefers_title_hits(messaging):
    await messaging.create_chat(_chat("chat-1", title="Weekend plans"))
    await messaging.create_chat(_chat("chat-2", title="Physics lab"))
    await messaging.create_chat(_chat("chat-3", title="Physics archive", is_active=False))
    await messaging.send_message(validate_message(
        id="m1", chat_id="chat-1", sender_id="a", content="physics homework?",
        type=MessageType.TEXT, status=MessageStatus.SENDING, timestamp=EARLIER, now=NOW,
    ).unwrap("Message"))

    found = await messaging.search_chats("a", "physics")
    with_archived = await messaging.search_chats("a", "physics", include_archived=True)

    assert [c.id for c in found] == ["chat-2", "chat-1"]
    assert {c.id for c in with_archived} == {"chat-1", "chat-2", "chat-3"}
    assert await messaging.search_chats("z", "physics") == []
    assert await messaging.search_chats("a", "physics", chat_type=ChatType.DIRECT) == []


async def test_search_messages_within_one_chat(messaging):
    await messaging.create_chat(_chat())
    await messaging.send_message(_message("m1", minutes=1, content="Exam on Monday"))
    await messaging.send_message(_message("m2", minutes=2, content="see you"))
    await messaging.send_message(_message("m3", minutes=3, content="exam moved"))

    assert [m.id for m in await messaging.search_messages("chat-1", "EXAM")] == ["m3", "m1"]
    assert await messaging.search_messages("chat-1", "") == []
    assert await messaging.search_messages(
        "chat-1", "exam", message_type=MessageType.IMAGE,
    ) == []
