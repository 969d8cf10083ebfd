"""Tests for the backend payload parser."""

from datetime import datetime, timezone

from crm_inbox.api.models import EPOCH, is_group_identifier
from crm_inbox.api.parser import (
    digits_only,
    normalize_tags,
    parse_timestamp,
    parse_message,
    parse_conversation,
    parse_channel_account,
    parse_group,
)


def _make_raw_conversation(**overrides):
    raw = {
        "id": "conv1",
        "contactId": "contact1",
        "status": "ACTIVE",
        "lastMessageAt": "2024-03-01T10:00:00.000Z",
        "isRead": True,
        "contact": {
            "id": "contact1",
            "name": "Sara",
            "phone": "201234567890",
            "tags": "vip, booked",
            "branch": {"id": "b1", "name": "Cairo"},
        },
        "assignedTo": {"id": "u1", "name": "Omar", "email": "omar@example.com"},
        "messages": [
            {
                "id": "m9",
                "content": "see you",
                "direction": "INCOMING",
                "status": "READ",
                "createdAt": "2024-03-01T10:00:00Z",
                "whatsappAccountId": "acc1",
            }
        ],
    }
    raw.update(overrides)
    return raw


def test_digits_only():
    assert digits_only("+20 (123) 456-7890") == "201234567890"
    assert digits_only(None) == ""


def test_normalize_tags_variants():
    assert normalize_tags(["a", " b ", ""]) == frozenset({"a", "b"})
    assert normalize_tags("a, b,,c") == frozenset({"a", "b", "c"})
    assert normalize_tags(None) == frozenset()


def test_parse_timestamp():
    ts = parse_timestamp("2024-03-01T10:00:00Z")
    assert ts == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


def test_parse_timestamp_naive_is_utc():
    assert parse_timestamp("2024-03-01T10:00:00").tzinfo is not None


def test_parse_timestamp_garbage_is_epoch():
    assert parse_timestamp("not a date") == EPOCH
    assert parse_timestamp(None) == EPOCH


def test_parse_message_metadata():
    message = parse_message({
        "id": "m1",
        "content": "hi @201234567890",
        "direction": "OUTGOING",
        "status": "DELIVERED",
        "type": "TEXT",
        "createdAt": "2024-03-01T10:00:00Z",
        "sender": {"name": "Agent Smith"},
        "channelAccountId": "acc1",
        "quotedMessage": {"id": "m0", "content": "hello", "direction": "INCOMING"},
        "metadata": {
            "forwarded": True,
            "mentions": [{"id": "201234567890", "name": "Sara"}, {"name": "no id"}],
        },
    })
    assert message.sender_name == "Agent Smith"
    assert message.channel_account_id == "acc1"
    assert message.forwarded is True
    assert message.quoted_message.id == "m0"
    assert message.quoted_message_id == "m0"
    assert [m.name for m in message.mentions] == ["Sara"]
    assert message.is_incoming is False


def test_parse_message_quote_by_id_only():
    message = parse_message({"id": "m2", "content": "yes", "replyToId": "m1"})
    assert message.quoted_message is None
    assert message.quoted_message_id == "m1"


def test_parse_message_media_is_not_text():
    message = parse_message({"id": "m3", "type": "image", "mediaUrl": "https://cdn/x.jpg"})
    assert message.type == "IMAGE"
    assert message.is_text is False


def test_parse_conversation():
    conversation = parse_conversation(_make_raw_conversation())
    assert conversation.id == "conv1"
    assert conversation.contact_id == "contact1"
    assert conversation.contact.tags == frozenset({"vip", "booked"})
    assert conversation.contact.branch_id == "b1"
    assert conversation.assigned_to.name == "Omar"
    assert conversation.preview.id == "m9"
    assert conversation.channel_account_id == "acc1"
    assert conversation.lead_status == "Booked"
    assert conversation.platform == "whatsapp"


def test_parse_conversation_unread_is_new_lead():
    raw = _make_raw_conversation(isRead=False)
    raw["contact"]["tags"] = []
    assert parse_conversation(raw).lead_status == "New"


def test_parse_conversation_branch_from_conversation():
    raw = _make_raw_conversation(branch="b7")
    del raw["contact"]["branch"]
    assert parse_conversation(raw).contact.branch_id == "b7"


def test_group_detection():
    assert is_group_identifier("120363025@g.us")
    assert is_group_identifier("1203630251234567890")
    assert not is_group_identifier("201234567890")
    assert not is_group_identifier("")


def test_parse_channel_account():
    account = parse_channel_account({"id": "acc1", "name": "Main", "status": "connected"})
    assert account.is_connected


def test_parse_group():
    group = parse_group({
        "participantsCount": 2,
        "participants": [
            {"id": "201111111111@c.us", "phone": "201111111111", "isAdmin": True},
            {"id": "202222222222@c.us"},
        ],
    })
    assert group.participants_count == 2
    assert group.participants[0].is_admin is True
    assert group.participants[1].phone == "202222222222"


def test_parse_group_missing():
    assert parse_group(None).participants == []


def test_parse_message_ignores_non_dict_metadata():
    message = parse_message({"id": "m1", "content": "hi", "metadata": "oops"})
    assert message.mentions == []
    assert message.forwarded is False
