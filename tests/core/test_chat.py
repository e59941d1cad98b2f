"""Chat — participant shape rules, read state, and mutators that keep them valid.

Tests cover:
    - DIRECT needs exactly 2 participants, GROUP at least 3
    - last message block is all-or-none and its sender participates
    - remove_participant refuses to break the shape and purges the leaver's state
    - Unread counts never go negative; zero drops the entry
"""

from datetime import timedelta

from campus.core.chat import chat_from_document, chat_to_document, validate_chat
from campus.core.domain_types import ChatType
from tests.factories import EARLIER, NOW


def _chat(**overrides):
    fields = dict(
        id="chat-1", title="Study group", type=ChatType.GROUP,
        participant_ids=["a", "b", "c", "d"], created_at=EARLIER, updated_at=EARLIER,
        created_by="a",
    )
    fields.update(overrides)
    return validate_chat(**fields, now=NOW)


def test_direct_chat_needs_two_participants():
    result = _chat(type=ChatType.DIRECT, participant_ids=["a", "b", "c"])
    assert result.violations == ("Direct chats must have exactly 2 participants",)


def test_group_chat_needs_three_participants():
    result = _chat(participant_ids=["a", "b"])
    assert result.violations == ("Group chats must have at least 3 participants",)


def test_participants_are_compared_after_trimming():
    result = _chat(type=ChatType.DIRECT, participant_ids=["u1", "u1 "], created_by="u1")
    assert result.violations == ("Duplicate participants are not allowed",)


def test_blank_participant_is_rejected():
    result = _chat(participant_ids=["a", "b", "  "])
    assert "Participant IDs cannot be empty" in result.violations


def test_partial_last_message_block_is_rejected():
    result = _chat(last_message_id="m1", last_message_content="hi")
    assert result.violations == (
        "Last message id, content, timestamp and sender must be provided together",
    )


def test_read_state_keys_must_be_participants():
    result = _chat(unread_counts={"z": 1, "a": -1})
    assert result.violations == (
        "Unread count user must be a participant in the chat",
        "Unread count cannot be negative",
    )


def test_creator_must_participate():
    assert _chat(created_by="z").violations == ("Chat creator must be a participant in the chat",)


def test_update_last_message_ignores_outsiders():
    chat = _chat().value
    assert chat.update_last_message(
        message_id="m1", content="hi", timestamp=NOW, sender_id="z", now=NOW,
    ) is chat
    updated = chat.update_last_message(
        message_id="m1", content=" hi ", timestamp=NOW, sender_id="b", now=NOW,
    )
    assert updated.last_message_content == "hi"
    assert updated.updated_at == NOW


def test_add_participant_rules():
    group = _chat().value
    assert group.add_participant("e", NOW).participant_ids[-1] == "e"
    assert group.add_participant("a", NOW) is group
    direct = _chat(type=ChatType.DIRECT, participant_ids=["a", "b"]).value
    assert direct.add_participant("c", NOW) is direct


def test_remove_participant_purges_leaver_state():
    chat = _chat(
        unread_counts={"b": 2, "c": 1},
        last_read_timestamps={"b": EARLIER},
        last_message_id="m1", last_message_content="hi",
        last_message_timestamp=EARLIER, last_message_sender_id="b",
        created_by="b",
    ).value
    left = chat.remove_participant("b", NOW)
    assert left.participant_ids == ("a", "c", "d")
    assert left.unread_counts == {"c": 1}
    assert left.last_read_timestamps == {}
    assert left.created_by is None
    assert left.last_message_id is None and left.last_message_sender_id is None
    fields = {k: getattr(left, k) for k in left.__dataclass_fields__}
    assert validate_chat(**fields, now=NOW).ok


def test_remove_participant_keeps_group_at_three():
    chat = _chat(participant_ids=["a", "b", "c"]).value
    assert chat.remove_participant("c", NOW) is chat


def test_remove_participant_never_touches_direct_chats():
    chat = _chat(type=ChatType.DIRECT, participant_ids=["a", "b"]).value
    assert chat.remove_participant("b", NOW) is chat


def test_unread_counts():
    chat = _chat().value
    bumped = chat.increment_unread_count("b").increment_unread_count("b")
    assert bumped.get_unread_count("b") == 2
    assert bumped.update_unread_count("b", -3).unread_counts == {}
    assert chat.increment_unread_count("z") is chat


def test_mark_as_read_stamps_and_clears():
    chat = _chat(unread_counts={"b": 4}).value
    read = chat.mark_as_read("b", NOW)
    assert read.get_unread_count("b") == 0
    assert read.last_read_timestamps["b"] == NOW


def test_future_read_timestamp_is_ignored():
    chat = _chat().value
    assert chat.update_last_read_timestamp("b", NOW + timedelta(hours=1), NOW) is chat


def test_archive_round_trip():
    chat = _chat().value
    assert not chat.archive(NOW).is_active
    assert chat.archive(NOW).unarchive(NOW).is_active


def test_document_round_trip():
    chat = _chat(unread_counts={"b": 1}, last_read_timestamps={"c": EARLIER}).value
    assert chat_from_document(chat.id, chat_to_document(chat), NOW) == chat
