"""Match recent thread text against bot-flow triggers."""

from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

from crm_inbox.api.models import BotFlow, Message

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK = 3
DEFAULT_COOLDOWN = 10.0


def _text_of(message: Message | str) -> str:
    return message if isinstance(message, str) else (message.content or "")


def evaluate(
    recent_messages: Sequence[Message | str],
    flows: Sequence[BotFlow],
    lookback: int = DEFAULT_LOOKBACK,
) -> BotFlow | None:
    """Return the flow triggered by the newest matching message, if any.

    Only the last ``lookback`` messages are considered, newest first; the
    first message that contains any active trigger decides, and within it
    the first flow in table order wins.
    """
    active = [f for f in flows if f.is_active and f.trigger]
    if not active or not recent_messages:
        return None
    for message in reversed(recent_messages[-lookback:]):
        text = _text_of(message).lower()
        for flow in active:
            if flow.trigger.lower() in text:
                return flow
    return None


class FlowSuggester:
    """Holds the current bot-flow suggestion and its dismissal cool-down.

    Dismissing hides the suggestion for ``cooldown`` seconds; afterwards it
    shows again if the thread still triggers it.
    """

    def __init__(
        self,
        cooldown: float = DEFAULT_COOLDOWN,
        lookback: int = DEFAULT_LOOKBACK,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cooldown = cooldown
        self.lookback = lookback
        self._clock = clock
        self._candidate: BotFlow | None = None
        self._snoozed_until: float | None = None

    @property
    def snoozed(self) -> bool:
        if self._snoozed_until is None:
            return False
        if self._clock() >= self._snoozed_until:
            self._snoozed_until = None
            return False
        return True

    @property
    def suggestion(self) -> BotFlow | None:
        """The flow to show, or None while nothing matches or it is snoozed."""
        if self._candidate is None or self.snoozed:
            return None
        return self._candidate

    def update(self, messages: Sequence[Message], flows: Sequence[BotFlow]) -> BotFlow | None:
        candidate = evaluate(messages, flows, self.lookback)
        if candidate is not None and (self._candidate is None or candidate.id != self._candidate.id):
            logger.debug(f"Trigger '{candidate.trigger}' matched flow {candidate.name}")
        self._candidate = candidate
        return self.suggestion

    def dismiss(self) -> None:
        self._snoozed_until = self._clock() + self.cooldown

    def accept(self) -> None:
        self._candidate = None

    def reset(self) -> None:
        self._candidate = None
        self._snoozed_until = None
