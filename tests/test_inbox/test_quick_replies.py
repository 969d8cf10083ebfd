"""Tests for quick-reply matching."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from crm_inbox.api.models import Contact, Conversation, Message, Template
from crm_inbox.exceptions import APITransportError
from crm_inbox.inbox.quick_replies import QuickReplyMatcher, last_inbound_text


def _make_message(id, content, direction="INCOMING", type="TEXT", account="acc1", media_url=None):
    return Message(
        id=id,
        content=content,
        direction=direction,
        status="READ",
        type=type,
        created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
        media_url=media_url,
        channel_account_id=account,
    )


@pytest.fixture
def conversation():
    return Conversation(
        id="c1",
        contact=Contact(id="k1", name="Sara", phone="201234567890"),
        status="ACTIVE",
        last_message_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def api():
    mock = MagicMock()
    mock.match_templates = AsyncMock(return_value=[Template(id="t1", name="Refund", content="We can help")])
    return mock


def test_last_inbound_text_skips_media_and_outgoing():
    messages = [
        _make_message("m1", "need a refund"),
        _make_message("m2", "", type="IMAGE", media_url="https://cdn/x.jpg"),
        _make_message("m3", "on it", direction="OUTGOING"),
    ]
    assert last_inbound_text(messages).id == "m1"


def test_evaluate_uses_trimmed_text_and_channel(api, conversation):
    matcher = QuickReplyMatcher(api)
    result = asyncio.run(matcher.evaluate(conversation, [_make_message("m1", "  need a refund ")]))
    api.match_templates.assert_awaited_once_with("acc1", "need a refund")
    assert [t.id for t in result] == ["t1"]


def test_outbound_only_thread_has_no_suggestions(api, conversation):
    matcher = QuickReplyMatcher(api)
    result = asyncio.run(matcher.evaluate(conversation, [_make_message("m1", "hello", direction="OUTGOING")]))
    assert result == []
    api.match_templates.assert_not_awaited()


def test_no_channel_identity_skips_lookup(api, conversation):
    matcher = QuickReplyMatcher(api)
    result = asyncio.run(matcher.evaluate(conversation, [_make_message("m1", "refund", account=None)]))
    assert result == []
    api.match_templates.assert_not_awaited()


def test_same_message_is_not_fetched_twice(api, conversation):
    matcher = QuickReplyMatcher(api)
    messages = [_make_message("m1", "refund")]

    async def run():
        await matcher.evaluate(conversation, messages)
        await matcher.evaluate(conversation, messages)

    asyncio.run(run())
    assert api.match_templates.await_count == 1


def test_clear_suppresses_answered_message(api, conversation):
    matcher = QuickReplyMatcher(api)
    messages = [_make_message("m1", "refund")]

    async def run():
        await matcher.evaluate(conversation, messages)
        matcher.clear()
        after_send = await matcher.evaluate(conversation, messages)
        after_new = await matcher.evaluate(conversation, messages + [_make_message("m2", "another refund")])
        return after_send, after_new

    after_send, after_new = asyncio.run(run())
    assert after_send == []
    assert [t.id for t in after_new] == ["t1"]


def test_lookup_failure_keeps_list(api, conversation):
    api.match_templates.side_effect = APITransportError("down")
    matcher = QuickReplyMatcher(api)
    result = asyncio.run(matcher.evaluate(conversation, [_make_message("m1", "refund")]))
    assert result == []


def test_lookup_failure_for_new_message_drops_old_suggestions(api, conversation):
    matcher = QuickReplyMatcher(api)

    async def run():
        await matcher.evaluate(conversation, [_make_message("m1", "refund")])
        api.match_templates.side_effect = APITransportError("down")
        return await matcher.evaluate(
            conversation, [_make_message("m1", "refund"), _make_message("m2", "opening hours?")]
        )

    assert asyncio.run(run()) == []
    assert matcher.suggestions == []
