"""Environment-driven settings for the inbox engine."""

from __future__ import annotations

import os
from dataclasses import dataclass

from crm_inbox.exceptions import ConfigError

DEFAULT_API_URL = "http://localhost:3000/api"


def _as_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value.strip())
    except ValueError:
        return default


def _as_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Connection and timing settings.

    Intervals and the cool-down are in seconds.
    """

    api_base_url: str = DEFAULT_API_URL
    api_token: str = ""
    request_timeout: float = 10.0
    conversation_poll_interval: float = 5.0
    thread_poll_interval: float = 3.0
    suggestion_cooldown: float = 10.0
    trigger_lookback: int = 3
    company_name: str = ""

    def __post_init__(self) -> None:
        for name in ("request_timeout", "conversation_poll_interval", "thread_poll_interval"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.suggestion_cooldown < 0:
            raise ConfigError("suggestion_cooldown cannot be negative")
        if self.trigger_lookback < 1:
            raise ConfigError("trigger_lookback must be at least 1")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(
            api_base_url=env.get("CRM_INBOX_API_URL", DEFAULT_API_URL).rstrip("/"),
            api_token=env.get("CRM_INBOX_API_TOKEN", ""),
            request_timeout=_as_float(env.get("CRM_INBOX_REQUEST_TIMEOUT"), 10.0),
            conversation_poll_interval=_as_float(
                env.get("CRM_INBOX_CONVERSATION_POLL_SECONDS"), 5.0
            ),
            thread_poll_interval=_as_float(env.get("CRM_INBOX_THREAD_POLL_SECONDS"), 3.0),
            suggestion_cooldown=_as_float(
                env.get("CRM_INBOX_SUGGESTION_COOLDOWN_SECONDS"), 10.0
            ),
            trigger_lookback=_as_int(env.get("CRM_INBOX_TRIGGER_LOOKBACK"), 3),
            company_name=env.get("CRM_INBOX_COMPANY_NAME", ""),
        )
