"""Live conversation engine: list and thread sync, suggestions, sending."""

from crm_inbox.inbox.composer import Composer, SendOptions, SendResult
from crm_inbox.inbox.conversations import ConversationStore
from crm_inbox.inbox.mentions import MentionSegment, render_mentions, resolve_mentions
from crm_inbox.inbox.participants import ParticipantResolver
from crm_inbox.inbox.poller import Poller
from crm_inbox.inbox.quick_replies import QuickReplyMatcher
from crm_inbox.inbox.session import InboxSession, Notice
from crm_inbox.inbox.templates import render_template, template_variables
from crm_inbox.inbox.thread import ThreadReconciler, format_transcript
from crm_inbox.inbox.triggers import FlowSuggester, evaluate

__all__ = [
    "Composer",
    "SendOptions",
    "SendResult",
    "ConversationStore",
    "MentionSegment",
    "render_mentions",
    "resolve_mentions",
    "ParticipantResolver",
    "Poller",
    "QuickReplyMatcher",
    "InboxSession",
    "Notice",
    "render_template",
    "template_variables",
    "ThreadReconciler",
    "format_transcript",
    "FlowSuggester",
    "evaluate",
]
