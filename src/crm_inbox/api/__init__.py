"""CRM backend API client and records."""

from crm_inbox.api.client import InboxAPIClient
from crm_inbox.api.models import (
    BotFlow,
    ChannelAccount,
    Contact,
    Conversation,
    GroupInfo,
    Mention,
    Message,
    OutboundMessage,
    Participant,
    Template,
    is_group_identifier,
)
from crm_inbox.api.parser import digits_only, normalize_tags, parse_conversation, parse_message

__all__ = [
    "InboxAPIClient",
    "BotFlow",
    "ChannelAccount",
    "Contact",
    "Conversation",
    "GroupInfo",
    "Mention",
    "Message",
    "OutboundMessage",
    "Participant",
    "Template",
    "is_group_identifier",
    "digits_only",
    "normalize_tags",
    "parse_conversation",
    "parse_message",
]
