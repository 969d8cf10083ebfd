"""Unified exception hierarchy for crm-inbox."""


class InboxError(Exception):
    """Base exception for all crm-inbox errors."""


class ConfigError(InboxError):
    """Invalid or inconsistent settings."""


# Backend API
class APIError(InboxError):
    """Base exception for CRM backend calls."""


class APITransportError(APIError):
    """Network failure or timeout talking to the backend."""


class APIResponseError(APIError):
    """Backend answered with an error status, bad JSON or ``success: false``."""

    def __init__(self, message: str, status_code: int | None = None, server_error: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.server_error = server_error


# Composer
class ComposeValidationError(InboxError):
    """Input rejected before any request was issued."""


class SendError(InboxError):
    """The backend did not accept an outbound message."""


class UploadError(InboxError):
    """Attachment upload failed."""
