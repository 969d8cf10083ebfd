"""Build and submit outbound messages, then sync local ordering."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from crm_inbox.api.client import InboxAPIClient
from crm_inbox.api.models import LOCATION, Conversation, Message, OutboundMessage
from crm_inbox.exceptions import APIError, ComposeValidationError, SendError
from crm_inbox.inbox.conversations import ConversationStore
from crm_inbox.inbox.quick_replies import QuickReplyMatcher
from crm_inbox.inbox.thread import ThreadReconciler

logger = logging.getLogger(__name__)

MAPS_URL = "https://www.google.com/maps?q={lat},{lng}"


@dataclass
class SendOptions:
    """Optional knobs for a send.

    ``reply_to_id`` defaults to the staged reply; ``target_conversation_id``
    sends somewhere other than the open conversation (forwarding).
    """

    reply_to_id: str | None = None
    forwarded: bool = False
    message_type: str | None = None
    target_conversation_id: str | None = None


@dataclass
class SendResult:
    conversation_id: str
    channel_account_id: str | None = None
    reply_to_id: str | None = None
    forwarded: bool = False
    data: dict = field(default_factory=dict)


class Composer:
    """Owns the draft and the staged reply, and dispatches sends."""

    def __init__(
        self,
        api: InboxAPIClient,
        conversations: ConversationStore,
        thread: ThreadReconciler,
        quick_replies: QuickReplyMatcher | None = None,
    ):
        self._api = api
        self._conversations = conversations
        self._thread = thread
        self._quick_replies = quick_replies
        self.draft = ""
        self.staged_reply: Message | None = None
        self._staged_reply_conversation: str | None = None

    # ------------------------------------------------------------------
    # Reply staging
    # ------------------------------------------------------------------

    def stage_reply(self, message: Message) -> None:
        self.staged_reply = message
        self._staged_reply_conversation = self._thread.conversation_id

    def clear_reply(self) -> None:
        self.staged_reply = None
        self._staged_reply_conversation = None

    def reset(self) -> None:
        """Forget reply context when the open conversation changes."""
        self.clear_reply()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(
        self,
        conversation: Conversation | None = None,
        content: str | None = None,
        media_url: str | None = None,
        options: SendOptions | None = None,
    ) -> SendResult:
        """Send ``content`` (default: the draft) and/or ``media_url``.

        Raises ComposeValidationError before any request when there is
        nothing to send or nowhere to send it, and SendError when the
        backend does not accept the message. The draft survives failures.
        """
        options = options or SendOptions()
        text = self.draft if content is None else content
        if not text.strip() and not media_url:
            raise ComposeValidationError("Message is empty")

        target_id = (
            options.target_conversation_id
            or (conversation.id if conversation is not None else None)
            or self._thread.conversation_id
        )
        if not target_id:
            raise ComposeValidationError("No conversation selected")
        target = self._conversations.get(target_id)
        if target is None and conversation is not None and conversation.id == target_id:
            target = conversation

        reply_to_id = options.reply_to_id
        if (
            reply_to_id is None
            and not options.forwarded
            and self.staged_reply is not None
            and self._staged_reply_conversation == target_id
        ):
            reply_to_id = self.staged_reply.id

        account_id = await self.resolve_channel_account(target_id, target)
        outbound = OutboundMessage(
            conversation_id=target_id,
            content=text,
            media_url=media_url,
            channel_account_id=account_id,
            reply_to_id=reply_to_id,
            forwarded=options.forwarded,
            type=options.message_type,
        )

        is_open = target_id == self._thread.conversation_id
        echo = self._thread.push_pending(text, media_url, options.message_type) if is_open else None
        try:
            data = await self._api.send_message(outbound)
        except APIError as e:
            raise SendError(f"Failed to send message to {target_id}: {e}") from e
        finally:
            if echo is not None:
                self._thread.drop_pending(echo)

        logger.info(
            f"Sent message to conversation {target_id}"
            f"{' (forwarded)' if options.forwarded else ''}"
            f"{f' replying to {reply_to_id}' if reply_to_id else ''}"
        )
        if not media_url:
            self.draft = ""
        self.clear_reply()
        if self._quick_replies is not None:
            self._quick_replies.clear()
        self._conversations.touch(target_id)
        if is_open and self._thread.conversation_id == target_id:
            await self._thread.refresh()

        return SendResult(
            conversation_id=target_id,
            channel_account_id=account_id,
            reply_to_id=reply_to_id,
            forwarded=options.forwarded,
            data=data,
        )

    async def forward(self, message: Message, target_conversation_id: str) -> SendResult:
        """Re-send ``message`` into another conversation, flagged as forwarded."""
        return await self.send(
            content=message.content,
            media_url=message.media_url,
            options=SendOptions(
                forwarded=True,
                message_type=message.type if message.type == LOCATION else None,
                target_conversation_id=target_conversation_id,
            ),
        )

    async def send_location(
        self,
        latitude: float,
        longitude: float,
        conversation: Conversation | None = None,
    ) -> SendResult:
        link = MAPS_URL.format(lat=latitude, lng=longitude)
        return await self.send(
            conversation, content=link, options=SendOptions(message_type=LOCATION)
        )

    async def send_attachment(
        self,
        filename: str,
        data: bytes,
        content_type: str,
        caption: str = "",
        conversation: Conversation | None = None,
    ) -> SendResult:
        """Upload a file (voice note, image, document) and send its URL."""
        if conversation is None and self._thread.conversation_id is None:
            raise ComposeValidationError("No conversation selected")
        url = await self._api.upload(filename, data, content_type)
        return await self.send(conversation, content=caption, media_url=url)

    async def resolve_channel_account(
        self,
        conversation_id: str,
        conversation: Conversation | None = None,
    ) -> str | None:
        """Channel identity for delivery: conversation, then thread, then first connected."""
        if conversation is not None:
            if conversation.channel_account_id:
                return conversation.channel_account_id
            if conversation.preview is not None and conversation.preview.channel_account_id:
                return conversation.preview.channel_account_id
        if conversation_id == self._thread.conversation_id:
            account_id = self._thread.latest_channel_account()
            if account_id:
                return account_id
        try:
            return await self._api.first_connected_account()
        except APIError as e:
            logger.warning(f"Could not list channel accounts, sending without one: {e}")
            return None
