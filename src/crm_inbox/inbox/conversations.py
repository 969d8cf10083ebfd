"""Deduplicated, recency-ordered view of the inbox conversation list."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Iterable

from crm_inbox.api.client import InboxAPIClient
from crm_inbox.api.models import Conversation
from crm_inbox.api.parser import digits_only
from crm_inbox.exceptions import APIError

logger = logging.getLogger(__name__)

SelectionListener = Callable[[Conversation], None]

FILTER_KINDS = ("all", "unread", "groups")


def dedupe(conversations: Iterable[Conversation]) -> list[Conversation]:
    """Keep one entry per id; the last occurrence's fields win."""
    by_id: dict[str, Conversation] = {}
    for conversation in conversations:
        by_id[conversation.id] = conversation
    return list(by_id.values())


def sort_by_recency(conversations: Iterable[Conversation]) -> list[Conversation]:
    return sorted(conversations, key=lambda c: c.last_message_at, reverse=True)


class ConversationStore:
    """Owns the conversation list fed by the recurring list poll.

    ``refresh`` replaces the list with the server's view, except that a
    local ``touch`` stays in force until the server reports a timestamp at
    least as new, so a poll racing ahead of a send does not push the
    conversation back down.
    """

    def __init__(self, api: InboxAPIClient):
        self._api = api
        self.conversations: list[Conversation] = []
        self.branch_id: str | None = None
        self._touched: dict[str, datetime] = {}
        self._pending_id: str | None = None
        self._pending_phone: str | None = None
        self._listeners: list[SelectionListener] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def on_select(self, listener: SelectionListener) -> None:
        self._listeners.append(listener)

    def request_selection(self, conversation_id: str | None = None, phone: str | None = None) -> None:
        """Remember a deep-link target to select once a refresh contains it."""
        self._pending_id = conversation_id or None
        self._pending_phone = digits_only(phone) or None
        if self.conversations:
            self._resolve_pending()

    @property
    def has_pending_selection(self) -> bool:
        return bool(self._pending_id or self._pending_phone)

    async def refresh(self, branch_id: str | None = None) -> list[Conversation]:
        """Fetch the list; on transport failure keep the current one."""
        if branch_id is not None:
            self.branch_id = branch_id or None
        try:
            fetched = await self._api.list_conversations(self.branch_id)
        except APIError as e:
            logger.warning(f"Conversation list refresh failed, keeping {len(self.conversations)} cached: {e}")
            return self.conversations
        self.apply(fetched)
        return self.conversations

    def apply(self, fetched: Iterable[Conversation]) -> bool:
        """Merge a poll result; returns True when the held list changed."""
        merged = [self._overlay_touch(c) for c in dedupe(fetched)]
        merged = sort_by_recency(merged)
        changed = merged != self.conversations
        if changed:
            self.conversations = merged
        else:
            logger.debug("Conversation list unchanged")
        self._resolve_pending()
        return changed

    def touch(self, conversation_id: str, when: datetime | None = None) -> None:
        """Bump a conversation's ordering timestamp after a local send."""
        when = when or datetime.now(timezone.utc)
        self._touched[conversation_id] = when
        updated = []
        for conversation in self.conversations:
            if conversation.id == conversation_id and conversation.last_message_at < when:
                conversation = replace(conversation, last_message_at=when)
            updated.append(conversation)
        self.conversations = sort_by_recency(updated)

    def get(self, conversation_id: str | None) -> Conversation | None:
        if not conversation_id:
            return None
        for conversation in self.conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def find_by_phone(self, phone: str) -> Conversation | None:
        wanted = digits_only(phone)
        if not wanted:
            return None
        for conversation in self.conversations:
            if digits_only(conversation.contact.phone) == wanted:
                return conversation
        return None

    def filter(
        self,
        query: str = "",
        kind: str = "all",
        branch_id: str | None = None,
    ) -> list[Conversation]:
        """Client-side search over the held list, order preserved."""
        if kind not in FILTER_KINDS:
            raise ValueError(f"Unknown filter kind '{kind}', expected one of {FILTER_KINDS}")
        needle = query.strip().lower()
        results = []
        for conversation in self.conversations:
            contact = conversation.contact
            if needle and needle not in contact.name.lower() and needle not in contact.phone:
                continue
            if branch_id and branch_id != "all" and contact.branch_id != branch_id:
                continue
            if kind == "unread" and conversation.is_read:
                continue
            if kind == "groups" and not contact.is_group:
                continue
            results.append(conversation)
        return results

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _overlay_touch(self, conversation: Conversation) -> Conversation:
        touched = self._touched.get(conversation.id)
        if touched is None:
            return conversation
        if conversation.last_message_at >= touched:
            del self._touched[conversation.id]
            return conversation
        return replace(conversation, last_message_at=touched)

    def _resolve_pending(self) -> None:
        if not self.has_pending_selection:
            return
        target = self.get(self._pending_id) if self._pending_id else None
        if target is None and self._pending_phone:
            target = self.find_by_phone(self._pending_phone)
        if target is None:
            return
        self._pending_id = None
        self._pending_phone = None
        logger.info(f"Selecting deep-linked conversation {target.id}")
        for listener in self._listeners:
            listener(target)
