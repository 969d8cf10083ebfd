"""Message thread of the open conversation, refreshed wholesale from the server."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Sequence
from uuid import uuid4

from crm_inbox.api.client import InboxAPIClient
from crm_inbox.api.models import OUTGOING, TEXT, Message
from crm_inbox.exceptions import APIError, ComposeValidationError

logger = logging.getLogger(__name__)

QUOTE_PLACEHOLDER = "Original message not loaded"


class ThreadReconciler:
    """Owns the ordered message list of the currently open conversation.

    Every fetch is tagged with the conversation and switch generation it
    was issued for; a response that lands after the user moved on is
    discarded instead of overwriting the new conversation's thread.
    """

    def __init__(self, api: InboxAPIClient):
        self._api = api
        self.conversation_id: str | None = None
        self.messages: list[Message] = []
        self._server_messages: list[Message] = []
        self._pending: list[Message] = []
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def switch(self, conversation_id: str | None) -> None:
        """Synchronously clear the visible thread and retarget it."""
        self._generation += 1
        self.conversation_id = conversation_id
        self.messages = []
        self._server_messages = []
        self._pending = []

    async def load(self, conversation_id: str) -> list[Message] | None:
        """Open ``conversation_id`` (clearing first if it changed) and fetch it."""
        if conversation_id != self.conversation_id:
            self.switch(conversation_id)
        return await self._fetch(raise_errors=True)

    async def refresh(self) -> list[Message] | None:
        """Scheduled re-fetch; failures keep the current thread.

        Returns the new list, or None when nothing is open, the fetch
        failed or the response was stale.
        """
        if self.conversation_id is None:
            return None
        return await self._fetch(raise_errors=False)

    def push_pending(self, content: str, media_url: str | None = None, type: str | None = None) -> Message:
        """Show an unconfirmed outgoing echo at the tail until the send completes."""
        echo = Message(
            id=f"local-{uuid4().hex}",
            content=content,
            direction=OUTGOING,
            status="SENT",
            type=type or TEXT,
            created_at=datetime.now(timezone.utc),
            media_url=media_url,
            is_local=True,
        )
        self._pending.append(echo)
        self._publish()
        return echo

    def drop_pending(self, echo: Message) -> None:
        self._pending = [m for m in self._pending if m.id != echo.id]
        self._publish()

    def find(self, message_id: str | None) -> Message | None:
        if not message_id:
            return None
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def quoted(self, message: Message) -> Message | None:
        """The message ``message`` replies to, or a placeholder if not loaded."""
        if message.quoted_message is not None:
            return message.quoted_message
        if not message.quoted_message_id:
            return None
        found = self.find(message.quoted_message_id)
        if found is not None:
            return found
        return Message(
            id=message.quoted_message_id,
            content=QUOTE_PLACEHOLDER,
            direction=message.direction,
            status="SENT",
            type=TEXT,
            created_at=message.created_at,
        )

    def latest_channel_account(self) -> str | None:
        for message in reversed(self.messages):
            if message.channel_account_id:
                return message.channel_account_id
        return None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _fetch(self, raise_errors: bool) -> list[Message] | None:
        issued_for = self.conversation_id
        generation = self._generation
        try:
            fetched = await self._api.list_messages(issued_for)
        except APIError as e:
            if raise_errors and generation == self._generation:
                raise
            logger.warning(f"Thread refresh for {issued_for} failed: {e}")
            return None

        if generation != self._generation:
            logger.debug(f"Discarding stale thread response for {issued_for}")
            return None
        self._server_messages = fetched
        self._publish()
        return self.messages

    def _publish(self) -> None:
        self.messages = self._server_messages + self._pending


def format_transcript(messages: Sequence[Message]) -> str:
    """Plain-text export of a thread, one line per message."""
    confirmed = [m for m in messages if not m.is_local]
    if not confirmed:
        raise ComposeValidationError("No messages to export")
    return "\n".join(
        f"[{m.created_at.strftime('%Y-%m-%d %H:%M:%S')}] {m.direction}: {m.content}"
        for m in confirmed
    )
