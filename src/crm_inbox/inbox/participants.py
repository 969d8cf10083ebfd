"""Lazy group-member lookup for group conversations."""

from __future__ import annotations

import logging
from typing import Sequence

from crm_inbox.api.client import InboxAPIClient
from crm_inbox.api.models import Conversation, Message, Participant, is_group_identifier
from crm_inbox.exceptions import APIError

logger = logging.getLogger(__name__)


class ParticipantResolver:
    """Fetches and caches the member list of the open group conversation.

    The cache holds one conversation at a time; asking for a different
    conversation, or calling ``invalidate``, drops it.
    """

    def __init__(self, api: InboxAPIClient):
        self._api = api
        self._conversation_id: str | None = None
        self._participants: list[Participant] | None = None
        self._generation = 0

    def invalidate(self) -> None:
        self._generation += 1
        self._conversation_id = None
        self._participants = None

    def cached(self, conversation_id: str) -> list[Participant] | None:
        if conversation_id == self._conversation_id:
            return self._participants
        return None

    async def resolve(
        self,
        conversation: Conversation,
        messages: Sequence[Message] = (),
    ) -> list[Participant]:
        """Members of ``conversation``; empty for non-groups or when unresolvable."""
        if not is_group_identifier(conversation.contact.phone):
            return []
        if conversation.id != self._conversation_id:
            self.invalidate()
            self._conversation_id = conversation.id
        elif self._participants is not None:
            return self._participants

        generation = self._generation
        try:
            account_id = await self._channel_account(conversation, messages)
            if not account_id:
                logger.info(f"No connected channel for group {conversation.contact.phone}")
                return []
            group = await self._api.get_group(account_id, conversation.contact.phone)
        except APIError as e:
            logger.warning(f"Group member lookup failed for {conversation.id}: {e}")
            return []

        if generation != self._generation:
            logger.debug(f"Discarding stale member list for {conversation.id}")
            return []
        self._participants = group.participants
        return self._participants

    async def _channel_account(self, conversation: Conversation, messages: Sequence[Message]) -> str | None:
        if conversation.channel_account_id:
            return conversation.channel_account_id
        if conversation.preview is not None and conversation.preview.channel_account_id:
            return conversation.preview.channel_account_id
        for message in reversed(messages):
            if message.channel_account_id:
                return message.channel_account_id
        return await self._api.first_connected_account()
