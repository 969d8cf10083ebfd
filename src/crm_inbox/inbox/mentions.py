"""Resolve phone-number mention tokens in message bodies to display names."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from crm_inbox.api.models import GROUP_SUFFIX, MAX_PHONE_LENGTH, Contact, Conversation, Mention
from crm_inbox.api.parser import digits_only

_DOMAIN = r"@(?:g\.us|c\.us|s\.whatsapp\.net|lid)"

# "@<10+ digits>" with an optional domain, or bare "<10+ digits>" with a domain.
MENTION_PATTERN = re.compile(
    rf"@(\d{{10,}})(?:{_DOMAIN})?|(?<![\d@])(\d{{10,}}){_DOMAIN}"
)

# Shorter numbers would match unrelated contacts on substring.
MIN_MATCH_DIGITS = 7


@dataclass(frozen=True)
class MentionSegment:
    """A resolved mention inside a message body."""

    phone: str
    name: str | None = None

    def __str__(self) -> str:
        return f"@{self.name or self.phone}"


Segment = str | MentionSegment


def _phones_match(key: str, phone_digits: str) -> bool:
    if not key or not phone_digits:
        return False
    if min(len(key), len(phone_digits)) < MIN_MATCH_DIGITS:
        return key == phone_digits
    return key in phone_digits or phone_digits in key


def _is_group_contact(contact: Contact) -> bool:
    # Length is counted on digits; formatted numbers carry spaces and dashes.
    return (
        GROUP_SUFFIX in contact.phone
        or len(digits_only(contact.phone)) > MAX_PHONE_LENGTH
        or "whatsapp-group" in contact.tags
        or "group" in contact.tags
    )


def lookup_name(
    key: str,
    explicit_mentions: Iterable[Mention] = (),
    conversations: Iterable[Conversation] = (),
) -> str | None:
    """Find a display name for a canonical phone key.

    Explicit mentions win when they carry a non-empty name; otherwise the
    first known conversation whose contact phone matches (either way round,
    tolerating country-code differences) lends its contact name.
    """
    for mention in explicit_mentions:
        if digits_only(mention.id.split("@")[0]) == key and mention.name.strip():
            return mention.name.strip()
    for conversation in conversations:
        contact = conversation.contact
        if _is_group_contact(contact):
            continue
        if _phones_match(key, digits_only(contact.phone)) and contact.name:
            return contact.name
    return None


def resolve_mentions(
    text: str,
    explicit_mentions: Sequence[Mention] | None = None,
    conversations: Sequence[Conversation] = (),
) -> str | list[Segment]:
    """Split ``text`` into literal and mention segments.

    Returns ``text`` itself when it holds no mention token.
    """
    if not text:
        return text
    matches = list(MENTION_PATTERN.finditer(text))
    if not matches:
        return text

    explicit = explicit_mentions or []
    segments: list[Segment] = []
    cursor = 0
    for match in matches:
        if match.start() > cursor:
            segments.append(text[cursor:match.start()])
        key = digits_only(match.group(1) or match.group(2))
        segments.append(MentionSegment(phone=key, name=lookup_name(key, explicit, conversations)))
        cursor = match.end()
    if cursor < len(text):
        segments.append(text[cursor:])
    return segments


def render_mentions(
    text: str,
    explicit_mentions: Sequence[Mention] | None = None,
    conversations: Sequence[Conversation] = (),
) -> str:
    """Plain-text rendering of ``resolve_mentions``."""
    resolved = resolve_mentions(text, explicit_mentions, conversations)
    if isinstance(resolved, str):
        return resolved
    return "".join(str(segment) for segment in resolved)
