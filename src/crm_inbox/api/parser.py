"""Parse CRM backend payloads into typed inbox records.

Pure functions, no network calls. Every representation quirk of the
backend (tags as list or delimited string, legacy account keys, nested or
flat branch references) is settled here so the engine only sees one shape.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

import dateutil.parser as parser

from crm_inbox.api.models import (
    EPOCH,
    TEXT,
    Agent,
    BotFlow,
    ChannelAccount,
    Contact,
    Conversation,
    GroupInfo,
    Mention,
    Message,
    Participant,
    Template,
)

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")
_ACCOUNT_KEYS = ("channelAccountId", "whatsappAccountId", "accountId")


def digits_only(raw: str | None) -> str:
    """Strip everything but digits from a phone-like string."""
    return _NON_DIGITS.sub("", raw or "")


def normalize_tags(raw) -> frozenset[str]:
    """Normalize tags arriving as a list, a comma-delimited string or nothing."""
    if not raw:
        return frozenset()
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, (list, tuple, set, frozenset)):
        items = [str(item) for item in raw if item is not None]
    else:
        items = [str(raw)]
    return frozenset(item.strip() for item in items if item.strip())


def parse_timestamp(raw) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are UTC, bad ones the epoch."""
    if isinstance(raw, datetime):
        value = raw
    elif not raw:
        return EPOCH
    else:
        try:
            value = parser.isoparse(str(raw))
        except (ValueError, OverflowError):
            logger.debug(f"Unparseable timestamp {raw!r}, using epoch")
            return EPOCH
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _account_id(raw: dict) -> str | None:
    for key in _ACCOUNT_KEYS:
        if raw.get(key):
            return str(raw[key])
    return None


def parse_message(raw: dict, depth: int = 0) -> Message:
    """Build a Message from a ``/messages`` item or a conversation preview."""
    metadata = raw.get("metadata") if isinstance(raw.get("metadata"), dict) else {}
    sender = raw.get("sender") or {}

    quoted = None
    quoted_raw = raw.get("quotedMessage")
    # One level of nesting is all the thread view renders.
    if isinstance(quoted_raw, dict) and quoted_raw.get("id") and depth == 0:
        quoted = parse_message(quoted_raw, depth=1)
    quoted_id = raw.get("quotedMessageId") or raw.get("replyToId") or (quoted.id if quoted else None)

    mentions = []
    for item in metadata.get("mentions") or []:
        if isinstance(item, dict) and item.get("id"):
            mentions.append(Mention(id=str(item["id"]), name=str(item.get("name") or "")))

    return Message(
        id=str(raw.get("id", "")),
        content=raw.get("content") or "",
        direction=(raw.get("direction") or "INCOMING").upper(),
        status=(raw.get("status") or "SENT").upper(),
        type=(raw.get("type") or TEXT).upper(),
        created_at=parse_timestamp(raw.get("createdAt")),
        media_url=raw.get("mediaUrl") or None,
        sender_name=sender.get("name") or sender.get("username") or None,
        channel_account_id=_account_id(raw),
        quoted_message_id=str(quoted_id) if quoted_id else None,
        quoted_message=quoted,
        forwarded=bool(metadata.get("forwarded") or raw.get("forwarded")),
        mentions=mentions,
    )


def parse_contact(raw: dict) -> Contact:
    branch = raw.get("branch") if isinstance(raw.get("branch"), dict) else {}
    return Contact(
        id=str(raw.get("id", "")),
        name=raw.get("name") or raw.get("phone") or "",
        phone=raw.get("phone") or "",
        tags=normalize_tags(raw.get("tags")),
        email=raw.get("email") or None,
        notes=raw.get("notes") or None,
        external_id=raw.get("externalId") or None,
        branch_id=branch.get("id") or raw.get("branchId") or None,
        branch_name=branch.get("name") or None,
    )


def _lead_status(contact: Contact, status: str, is_read: bool) -> str:
    if "booked" in contact.tags:
        return "Booked"
    if not is_read or status == "PENDING":
        return "New"
    return "In Progress"


def _platform(contact: Contact) -> str:
    for platform in ("facebook", "instagram"):
        if platform in contact.tags:
            return platform
    return "whatsapp"


def parse_conversation(raw: dict) -> Conversation:
    """Build a Conversation from a ``/conversations`` item."""
    contact_raw = dict(raw.get("contact") or {})
    contact_raw.setdefault("id", raw.get("contactId", ""))
    # Conversation-level branch wins only when the contact has none.
    if not contact_raw.get("branch") and not contact_raw.get("branchId"):
        branch = raw.get("branch")
        if isinstance(branch, dict):
            contact_raw["branch"] = branch
        elif branch:
            contact_raw["branchId"] = branch
    contact = parse_contact(contact_raw)

    previews = raw.get("messages") or []
    preview = parse_message(previews[0]) if previews else None

    assigned = raw.get("assignedTo")
    agent = None
    if isinstance(assigned, dict) and assigned.get("id"):
        agent = Agent(id=str(assigned["id"]), name=assigned.get("name") or "")

    status = (raw.get("status") or "ACTIVE").upper()
    is_read = bool(raw.get("isRead", True))
    return Conversation(
        id=str(raw.get("id", "")),
        contact=contact,
        status=status,
        last_message_at=parse_timestamp(raw.get("lastMessageAt")),
        is_read=is_read,
        is_blocked=bool(raw.get("isBlocked", False)),
        assigned_to=agent,
        channel_account_id=_account_id(raw) or (preview.channel_account_id if preview else None),
        preview=preview,
        platform=_platform(contact),
        lead_status=_lead_status(contact, status, is_read),
    )


def parse_bot_flow(raw: dict) -> BotFlow:
    return BotFlow(
        id=str(raw.get("id", "")),
        name=raw.get("name") or "",
        trigger=raw.get("trigger") or "",
        is_active=bool(raw.get("isActive", False)),
    )


def parse_template(raw: dict) -> Template:
    return Template(
        id=str(raw.get("id", "")),
        name=raw.get("name") or "",
        content=raw.get("content") or "",
        variables=list(raw.get("variables") or []),
    )


def parse_channel_account(raw: dict) -> ChannelAccount:
    return ChannelAccount(
        id=str(raw.get("id", "")),
        name=raw.get("name") or "",
        status=(raw.get("status") or "DISCONNECTED").upper(),
        phone=raw.get("phone") or raw.get("connectedPhone") or None,
    )


def parse_participant(raw: dict) -> Participant:
    participant_id = str(raw.get("id", ""))
    phone = raw.get("phone") or digits_only(participant_id.split("@")[0])
    return Participant(
        id=participant_id,
        phone=phone,
        is_admin=bool(raw.get("isAdmin") or raw.get("admin")),
        is_super_admin=bool(raw.get("isSuperAdmin")),
    )


def parse_group(raw: dict | None) -> GroupInfo:
    raw = raw or {}
    participants = [parse_participant(p) for p in raw.get("participants") or [] if isinstance(p, dict)]
    return GroupInfo(
        participants_count=int(raw.get("participantsCount") or len(participants)),
        participants=participants,
    )
