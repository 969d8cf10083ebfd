"""Tests for bot-flow trigger matching and the suggestion cool-down."""

import pytest

from crm_inbox.api.models import BotFlow
from crm_inbox.inbox.triggers import FlowSuggester, evaluate


@pytest.fixture
def flows():
    return [
        BotFlow(id="f1", name="Refunds", trigger="refund"),
        BotFlow(id="f2", name="Greeting", trigger="hi"),
        BotFlow(id="f3", name="Disabled", trigger="thanks", is_active=False),
    ]


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_newest_matching_message_decides(flows):
    flow = evaluate(["hi", "need a refund", "ok thanks"], flows)
    assert flow.id == "f1"


def test_match_is_case_insensitive(flows):
    assert evaluate(["I want a REFUND"], flows).id == "f1"


def test_outside_lookback_is_ignored(flows):
    assert evaluate(["refund", "a", "b", "c"], flows) is None


def test_inactive_flows_never_match(flows):
    assert evaluate(["thanks"], flows) is None


def test_table_order_breaks_ties_within_a_message(flows):
    assert evaluate(["hi, I need a refund"], flows).id == "f1"


def test_empty_inputs(flows):
    assert evaluate([], flows) is None
    assert evaluate(["refund"], []) is None


def test_dismiss_snoozes_then_reappears(flows):
    clock = FakeClock()
    suggester = FlowSuggester(cooldown=10.0, clock=clock)
    assert suggester.update(["need a refund"], flows).id == "f1"

    suggester.dismiss()
    assert suggester.update(["need a refund"], flows) is None

    clock.now += 9.9
    assert suggester.suggestion is None

    clock.now += 0.2
    assert suggester.suggestion.id == "f1"


def test_accept_clears_candidate(flows):
    suggester = FlowSuggester(clock=FakeClock())
    suggester.update(["refund"], flows)
    suggester.accept()
    assert suggester.suggestion is None


def test_reset_clears_snooze(flows):
    suggester = FlowSuggester(clock=FakeClock())
    suggester.update(["refund"], flows)
    suggester.dismiss()
    suggester.reset()
    suggester.update(["refund"], flows)
    assert suggester.suggestion.id == "f1"
