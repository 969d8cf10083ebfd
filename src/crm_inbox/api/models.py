"""Data models for the CRM inbox API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

INCOMING = "INCOMING"
OUTGOING = "OUTGOING"

TEXT = "TEXT"
IMAGE = "IMAGE"
AUDIO = "AUDIO"
VIDEO = "VIDEO"
DOCUMENT = "DOCUMENT"
LOCATION = "LOCATION"

CONNECTED = "CONNECTED"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

GROUP_SUFFIX = "@g.us"
# Longest plain E.164 number; anything longer is a group/broadcast id.
MAX_PHONE_LENGTH = 15


def is_group_identifier(phone: str | None) -> bool:
    """True for contact identifiers that point at a WhatsApp group."""
    if not phone:
        return False
    return GROUP_SUFFIX in phone or len(phone) > MAX_PHONE_LENGTH


@dataclass(frozen=True)
class Mention:
    """An explicit ``{id, name}`` mention carried in message metadata."""

    id: str
    name: str = ""


@dataclass
class Message:
    """A single message in a conversation thread."""

    id: str
    content: str
    direction: str  # "INCOMING" | "OUTGOING"
    status: str  # "SENT" | "DELIVERED" | "READ" | "FAILED"
    type: str  # "TEXT" | "IMAGE" | "AUDIO" | "VIDEO" | "DOCUMENT" | "LOCATION"
    created_at: datetime
    media_url: str | None = None
    sender_name: str | None = None
    channel_account_id: str | None = None
    quoted_message_id: str | None = None
    quoted_message: Message | None = None
    forwarded: bool = False
    mentions: list[Mention] = field(default_factory=list)
    is_local: bool = False  # pending echo, not yet confirmed by the server

    @property
    def is_incoming(self) -> bool:
        return self.direction == INCOMING

    @property
    def is_text(self) -> bool:
        return self.type == TEXT and not self.media_url


@dataclass
class Contact:
    """The contact (person or group) a conversation is held with."""

    id: str
    name: str
    phone: str
    tags: frozenset[str] = frozenset()
    email: str | None = None
    notes: str | None = None
    external_id: str | None = None
    branch_id: str | None = None
    branch_name: str | None = None

    @property
    def is_group(self) -> bool:
        return (
            is_group_identifier(self.phone)
            or "whatsapp-group" in self.tags
            or "group" in self.tags
        )


@dataclass
class Agent:
    id: str
    name: str


@dataclass
class Conversation:
    """A conversation row as listed in the inbox."""

    id: str
    contact: Contact
    status: str  # "ACTIVE" | "RESOLVED" | "PENDING"
    last_message_at: datetime
    is_read: bool = True
    is_blocked: bool = False
    assigned_to: Agent | None = None
    channel_account_id: str | None = None
    preview: Message | None = None
    platform: str = "whatsapp"
    lead_status: str = "In Progress"

    @property
    def contact_id(self) -> str:
        return self.contact.id


@dataclass
class BotFlow:
    id: str
    name: str
    trigger: str
    is_active: bool = True


@dataclass
class Template:
    """A reply template (quick reply or approved template)."""

    id: str
    name: str
    content: str
    variables: list[str] = field(default_factory=list)


@dataclass
class ChannelAccount:
    """A connected messaging account used to send and receive."""

    id: str
    name: str
    status: str
    phone: str | None = None

    @property
    def is_connected(self) -> bool:
        return self.status == CONNECTED


@dataclass
class Participant:
    id: str
    phone: str
    is_admin: bool = False
    is_super_admin: bool = False


@dataclass
class GroupInfo:
    participants_count: int
    participants: list[Participant] = field(default_factory=list)


@dataclass
class OutboundMessage:
    """Body of ``POST /messages``."""

    conversation_id: str
    content: str
    media_url: str | None = None
    channel_account_id: str | None = None
    reply_to_id: str | None = None
    forwarded: bool = False
    type: str | None = None

    def to_payload(self) -> dict:
        payload: dict = {
            "conversationId": self.conversation_id,
            "content": self.content,
            "direction": OUTGOING,
        }
        if self.media_url:
            payload["mediaUrl"] = self.media_url
        if self.channel_account_id:
            payload["channelAccountId"] = self.channel_account_id
        if self.reply_to_id:
            payload["replyToId"] = self.reply_to_id
        if self.forwarded:
            payload["forwarded"] = True
        if self.type:
            payload["type"] = self.type
        return payload
