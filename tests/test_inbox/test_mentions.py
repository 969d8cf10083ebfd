"""Tests for mention resolution."""

from datetime import datetime, timezone

from crm_inbox.api.models import Contact, Conversation, Mention
from crm_inbox.inbox.mentions import MentionSegment, render_mentions, resolve_mentions


def _make_conversation(phone, name, tags=frozenset()):
    return Conversation(
        id=f"conv-{phone}",
        contact=Contact(id=f"k-{phone}", name=name, phone=phone, tags=tags),
        status="ACTIVE",
        last_message_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )


def test_plain_text_returned_unchanged():
    assert resolve_mentions("hello there") == "hello there"
    assert resolve_mentions("") == ""


def test_explicit_mention_name_wins():
    segments = resolve_mentions(
        "hi @201234567890 welcome",
        explicit_mentions=[Mention(id="201234567890@c.us", name="Sara")],
        conversations=[_make_conversation("201234567890", "Someone Else")],
    )
    assert segments == ["hi ", MentionSegment(phone="201234567890", name="Sara"), " welcome"]


def test_conversation_contact_lends_name():
    text = render_mentions(
        "ping @201234567890",
        conversations=[_make_conversation("+20 123 456 7890", "Sara")],
    )
    assert text == "ping @Sara"


def test_country_code_difference_still_matches():
    text = render_mentions("@201234567890", conversations=[_make_conversation("1234567890", "Sara")])
    assert text == "@Sara"


def test_bare_number_with_domain():
    segments = resolve_mentions("cc 201234567890@c.us")
    assert segments == ["cc ", MentionSegment(phone="201234567890")]


def test_unresolved_mention_keeps_number():
    assert render_mentions("hey @201234567890") == "hey @201234567890"


def test_group_contacts_do_not_lend_names():
    group = _make_conversation("201234567890", "Family", tags=frozenset({"whatsapp-group"}))
    assert render_mentions("@201234567890", conversations=[group]) == "@201234567890"


def test_explicit_mention_without_name_falls_through():
    text = render_mentions(
        "@201234567890",
        explicit_mentions=[Mention(id="201234567890", name="  ")],
        conversations=[_make_conversation("201234567890", "Sara")],
    )
    assert text == "@Sara"


def test_short_numbers_are_not_mentions():
    assert resolve_mentions("call @12345") == "call @12345"


def test_segments_render_in_token_order():
    segments = resolve_mentions(
        "hello @201234567890 how are you",
        explicit_mentions=[Mention(id="201234567890", name="Sara")],
    )
    assert [str(s) for s in segments] == ["hello ", "@Sara", " how are you"]
    assert render_mentions("hello @201234567890 how are you") == "hello @201234567890 how are you"


def test_long_group_identifier_does_not_lend_name():
    group = _make_conversation("9201234567890123", "Family")
    assert render_mentions("@201234567890", conversations=[group]) == "@201234567890"
