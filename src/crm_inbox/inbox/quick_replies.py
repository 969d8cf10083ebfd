"""Quick-reply suggestions for the last inbound message."""

from __future__ import annotations

import logging
from typing import Sequence

from crm_inbox.api.client import InboxAPIClient
from crm_inbox.api.models import Conversation, Message, Template
from crm_inbox.exceptions import APIError

logger = logging.getLogger(__name__)


def last_inbound_text(messages: Sequence[Message]) -> Message | None:
    """Newest incoming plain-text message with a non-blank body."""
    for message in reversed(messages):
        if message.is_incoming and message.is_text and message.content.strip():
            return message
    return None


def thread_channel_account(messages: Sequence[Message], preferred: Message | None = None) -> str | None:
    """Channel identity of ``preferred``, else of the newest message carrying one."""
    if preferred is not None and preferred.channel_account_id:
        return preferred.channel_account_id
    for message in reversed(messages):
        if message.channel_account_id:
            return message.channel_account_id
    return None


class QuickReplyMatcher:
    """Fetches server-ranked templates for the latest inbound text.

    The result for a given (message, channel) pair is remembered, so the
    evaluation that follows every thread refresh only hits the backend when
    a new inbound message arrives.
    """

    def __init__(self, api: InboxAPIClient):
        self._api = api
        self.suggestions: list[Template] = []
        self._key: tuple[str, str, str] | None = None
        self._answered: str | None = None

    async def evaluate(self, conversation: Conversation, messages: Sequence[Message]) -> list[Template]:
        trigger = last_inbound_text(messages)
        if trigger is None or trigger.id == self._answered:
            self.suggestions = []
            self._key = None
            return self.suggestions
        account_id = thread_channel_account(messages, trigger)
        if not account_id:
            logger.debug(f"No channel identity for conversation {conversation.id}, no quick replies")
            self.suggestions = []
            self._key = None
            return self.suggestions

        key = (conversation.id, trigger.id, account_id)
        if key == self._key:
            return self.suggestions

        text = trigger.content.strip()
        try:
            templates = await self._api.match_templates(account_id, text)
        except APIError as e:
            logger.warning(f"Quick-reply lookup failed for conversation {conversation.id}: {e}")
            # Templates ranked for an older message do not apply to this one.
            self.suggestions = []
            self._key = None
            return self.suggestions
        self.suggestions = templates
        self._key = key
        return self.suggestions

    def clear(self) -> None:
        """Empty the list after a send; the answered message stays quiet."""
        if self._key is not None:
            self._answered = self._key[1]
        self.suggestions = []
        self._key = None

    def reset(self) -> None:
        self.suggestions = []
        self._key = None
        self._answered = None
