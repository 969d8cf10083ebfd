"""The live inbox: one object owning selection, polling and user actions.

``InboxSession`` is the single place where the conversation list, the open
thread, the staged reply, the suggestion state and the two refresh loops
meet. Components never mutate each other's state; the session calls their
documented operations in response to three kinds of events:

- a poll succeeded (list or thread),
- a conversation was selected (by the operator or by a deep link),
- a send succeeded.

User-initiated failures become ``Notice`` entries; background failures are
only logged.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Coroutine

from crm_inbox.api.client import InboxAPIClient
from crm_inbox.api.models import BotFlow, Conversation, Message, Participant, Template
from crm_inbox.config import Settings
from crm_inbox.exceptions import APIError, ComposeValidationError, SendError, UploadError
from crm_inbox.inbox.composer import Composer, SendOptions, SendResult
from crm_inbox.inbox.conversations import ConversationStore
from crm_inbox.inbox.mentions import Segment, resolve_mentions
from crm_inbox.inbox.participants import ParticipantResolver
from crm_inbox.inbox.poller import Poller
from crm_inbox.inbox.quick_replies import QuickReplyMatcher
from crm_inbox.inbox.templates import NO_ORDER, render_template, template_variables
from crm_inbox.inbox.thread import ThreadReconciler, format_transcript
from crm_inbox.inbox.triggers import FlowSuggester

logger = logging.getLogger(__name__)

FLOW_START_TEXT = "🤖 Starting automated flow: {name}..."


@dataclass
class Notice:
    """A user-visible message produced by an operator action."""

    level: str  # "info" | "warning" | "error"
    text: str


class InboxSession:
    """Drives the inbox against the backend.

    Args:
        api: Backend client.
        settings: Timing settings; defaults to the client's.
        clock: Monotonic clock for the suggestion cool-down.
    """

    def __init__(
        self,
        api: InboxAPIClient,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._api = api
        self.settings = settings or api.settings
        self.conversations = ConversationStore(api)
        self.thread = ThreadReconciler(api)
        self.quick_replies = QuickReplyMatcher(api)
        self.composer = Composer(api, self.conversations, self.thread, self.quick_replies)
        self.participants = ParticipantResolver(api)
        self.flows = FlowSuggester(
            cooldown=self.settings.suggestion_cooldown,
            lookback=self.settings.trigger_lookback,
            clock=clock,
        )
        self.bot_flows: list[BotFlow] = []
        self.selected_id: str | None = None
        self.last_order_id = NO_ORDER
        self.company_name = self.settings.company_name
        self.notices: list[Notice] = []

        self._selected_snapshot: Conversation | None = None
        self._tasks: set[asyncio.Task] = set()
        self._list_poller = Poller(
            "conversations", self.settings.conversation_poll_interval, self.poll_conversations
        )
        self._thread_poller = Poller("thread", self.settings.thread_poll_interval, self.poll_thread)
        self.conversations.on_select(self._on_deep_link)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        branch_id: str | None = None,
        conversation_id: str | None = None,
        phone: str | None = None,
    ) -> None:
        """Initial fetch, then start the conversation-list poll."""
        if conversation_id or phone:
            self.conversations.request_selection(conversation_id, phone)
        await self.refresh_bot_flows()
        await self._load_company_name()
        await self.conversations.refresh(branch_id or "")
        self._list_poller.start()

    async def close(self) -> None:
        await self._list_poller.stop()
        await self._thread_poller.stop()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @property
    def selected(self) -> Conversation | None:
        return self.conversations.get(self.selected_id) or self._selected_snapshot

    @property
    def messages(self) -> list[Message]:
        return self.thread.messages

    @property
    def suggestion(self) -> BotFlow | None:
        return self.flows.suggestion

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_conversations(self) -> None:
        await self.conversations.refresh()

    async def poll_thread(self) -> None:
        generation = self.thread.generation
        if await self.thread.refresh() is None:
            return
        await self._after_thread_reload(generation)

    async def set_branch(self, branch_id: str | None) -> list[Conversation]:
        return await self.conversations.refresh(branch_id or "")

    async def refresh_bot_flows(self) -> list[BotFlow]:
        try:
            self.bot_flows = await self._api.list_bot_flows()
        except APIError as e:
            logger.warning(f"Bot flow refresh failed, keeping {len(self.bot_flows)}: {e}")
        return self.bot_flows

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def select(self, conversation_id: str | None) -> None:
        """Open a conversation (or close the current one with None)."""
        self._switch(conversation_id)
        if conversation_id:
            await self._open(self.thread.generation)

    def _switch(self, conversation_id: str | None) -> None:
        # Everything tied to the previous conversation goes before any await.
        self.selected_id = conversation_id
        self._selected_snapshot = self.conversations.get(conversation_id)
        self.thread.switch(conversation_id)
        self.flows.reset()
        self.quick_replies.reset()
        self.participants.invalidate()
        self.composer.reset()
        self.last_order_id = NO_ORDER
        if conversation_id:
            self._thread_poller.restart()
            logger.info(f"Opened conversation {conversation_id}")
        else:
            self._thread_poller.cancel()

    async def _open(self, generation: int) -> None:
        conversation_id = self.selected_id
        try:
            await self.thread.load(conversation_id)
        except APIError as e:
            logger.warning(f"Loading thread {conversation_id} failed: {e}")
        if generation != self.thread.generation:
            return

        # New triggers defined elsewhere apply from the next open onwards.
        await self.refresh_bot_flows()
        conversation = self.selected
        if conversation is not None:
            try:
                order_id = await self._api.latest_booking_number(conversation.contact_id)
            except APIError as e:
                logger.warning(f"Last order lookup failed for {conversation.contact_id}: {e}")
                order_id = None
            if generation != self.thread.generation:
                return
            self.last_order_id = order_id or NO_ORDER
            await self.participants.resolve(conversation, self.thread.messages)
        await self._after_thread_reload(generation)

    def _on_deep_link(self, conversation: Conversation) -> None:
        self._switch(conversation.id)
        self._spawn(self._open(self.thread.generation))

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _after_thread_reload(self, generation: int) -> None:
        """Re-derive suggestions from the thread as it is now."""
        if generation != self.thread.generation:
            return
        messages = self.thread.messages
        self.flows.update(messages, self.bot_flows)
        conversation = self.selected
        if conversation is None:
            return
        await self.quick_replies.evaluate(conversation, messages)
        if generation != self.thread.generation:
            self.quick_replies.reset()

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------

    def render(self, message: Message) -> str | list[Segment]:
        """Message body with mention tokens resolved to names."""
        return resolve_mentions(message.content, message.mentions, self.conversations.conversations)

    def quoted(self, message: Message) -> Message | None:
        return self.thread.quoted(message)

    async def group_members(self) -> list[Participant]:
        conversation = self.selected
        if conversation is None:
            return []
        return await self.participants.resolve(conversation, self.thread.messages)

    def export_transcript(self) -> str | None:
        try:
            return format_transcript(self.thread.messages)
        except ComposeValidationError as e:
            self._notify("warning", str(e))
            return None

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def stage_reply(self, message: Message) -> None:
        self.composer.stage_reply(message)

    def clear_reply(self) -> None:
        self.composer.clear_reply()

    async def send(
        self,
        content: str | None = None,
        media_url: str | None = None,
        options: SendOptions | None = None,
    ) -> SendResult | None:
        """Send from the composer; None when it failed (a notice says why)."""
        return await self._dispatch(
            self.composer.send(self.selected, content, media_url, options),
            "Failed to send message",
        )

    async def send_quick_reply(self, template: Template) -> SendResult | None:
        return await self.send(template.content)

    async def forward(self, message: Message, target_conversation_id: str) -> SendResult | None:
        return await self._dispatch(
            self.composer.forward(message, target_conversation_id),
            "Failed to forward message",
        )

    async def send_location(self, latitude: float, longitude: float) -> SendResult | None:
        return await self._dispatch(
            self.composer.send_location(latitude, longitude, self.selected),
            "Failed to send location",
        )

    async def send_attachment(
        self,
        filename: str,
        data: bytes,
        content_type: str,
        caption: str = "",
    ) -> SendResult | None:
        return await self._dispatch(
            self.composer.send_attachment(filename, data, content_type, caption, self.selected),
            "Failed to send attachment",
        )

    async def accept_suggestion(self, flow: BotFlow | None = None) -> bool:
        """Start a suggested flow in the open conversation."""
        flow = flow or self.flows.suggestion
        conversation = self.selected
        if flow is None or conversation is None:
            return False
        if await self.send(FLOW_START_TEXT.format(name=flow.name)) is None:
            return False
        try:
            await self._api.track_flow_interaction(
                flow.id,
                conversation.contact_id,
                "TRIGGERED",
                step_index=0,
                metadata={"source": "ai_suggestion"},
            )
        except APIError as e:
            logger.warning(f"Tracking flow {flow.id} failed: {e}")
        self.flows.accept()
        logger.info(f"Started flow {flow.name} for contact {conversation.contact_id}")
        self._notify("info", f"Flow started: {flow.name}")
        return True

    def dismiss_suggestion(self) -> None:
        self.flows.dismiss()

    async def list_templates(self) -> list[Template]:
        try:
            return await self._api.list_approved_templates()
        except APIError as e:
            logger.error(f"Template list failed: {e}")
            self._notify("error", "Failed to load templates")
            return []

    def use_template(self, template: Template) -> str:
        """Fill the draft from ``template`` with contact and order variables."""
        conversation = self.selected
        variables = template_variables(
            conversation.contact if conversation else None,
            company_name=self.company_name,
            order_id=self.last_order_id,
        )
        self.composer.draft = render_template(template.content, variables)
        return self.composer.draft

    async def resolve(self) -> bool:
        conversation = self.selected
        if conversation is None:
            return False
        try:
            await self._api.update_conversation(conversation.id, status="RESOLVED")
        except APIError as e:
            logger.error(f"Resolving {conversation.id} failed: {e}")
            self._notify("error", "Failed to resolve conversation")
            return False
        self._notify("info", "Conversation resolved")
        await self.select(None)
        await self.conversations.refresh()
        return True

    async def block(self) -> bool:
        """Tag the contact as blocked and archive the conversation."""
        conversation = self.selected
        if conversation is None:
            return False
        contact = conversation.contact
        if "blocked" not in contact.tags:
            try:
                await self._api.update_contact(
                    contact.id,
                    name=contact.name,
                    phone=contact.phone,
                    email=contact.email,
                    notes=contact.notes,
                    tags=sorted(contact.tags | {"blocked"}),
                )
            except APIError as e:
                logger.warning(f"Tagging {contact.id} as blocked failed: {e}")
        try:
            await self._api.update_conversation(
                conversation.id, status="RESOLVED", isBlocked=True, isArchived=True
            )
        except APIError as e:
            logger.error(f"Blocking {conversation.id} failed: {e}")
            self._notify("error", "Failed to block contact")
            return False
        self._notify("info", "Contact blocked")
        await self.select(None)
        await self.conversations.refresh()
        return True

    async def start_private_chat(self, phone: str) -> str | None:
        """Open (or create) a one-to-one conversation with a group member."""
        try:
            conversation_id = await self._api.create_conversation(phone)
        except APIError as e:
            logger.error(f"Creating private chat with {phone} failed: {e}")
            self._notify("error", "Failed to start private chat")
            return None
        self.conversations.request_selection(conversation_id=conversation_id)
        await self.conversations.refresh()
        return conversation_id

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _load_company_name(self) -> None:
        if self.company_name:
            return
        try:
            settings = await self._api.get_settings()
        except APIError as e:
            logger.warning(f"Could not load company settings: {e}")
            return
        self.company_name = settings.get("companyName") or ""

    async def _dispatch(self, action: Awaitable[SendResult], failure_text: str) -> SendResult | None:
        generation = self.thread.generation
        try:
            result = await action
        except ComposeValidationError as e:
            self._notify("warning", str(e))
            return None
        except UploadError as e:
            logger.error(f"Upload failed: {e}")
            self._notify("error", "Failed to upload file")
            return None
        except SendError as e:
            logger.error(f"Send failed: {e}")
            self._notify("error", failure_text)
            return None
        await self._after_thread_reload(generation)
        return result

    def _notify(self, level: str, text: str) -> None:
        self.notices.append(Notice(level=level, text=text))
