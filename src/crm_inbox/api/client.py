"""Async client for the CRM backend endpoints the inbox consumes."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from crm_inbox.api.models import (
    BotFlow,
    ChannelAccount,
    Conversation,
    GroupInfo,
    Message,
    OutboundMessage,
    Template,
)
from crm_inbox.api.parser import (
    parse_bot_flow,
    parse_channel_account,
    parse_conversation,
    parse_group,
    parse_message,
    parse_template,
)
from crm_inbox.config import Settings
from crm_inbox.exceptions import APIResponseError, APITransportError, SendError, UploadError

logger = logging.getLogger(__name__)


class InboxAPIClient:
    """Async wrapper around the CRM backend's JSON API.

    Args:
        settings: Base URL, token and timeout. Defaults to ``Settings.from_env()``.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or Settings.from_env()
        headers = {"Accept": "application/json", "User-Agent": "crm-inbox/1.0"}
        if self.settings.api_token:
            headers["Authorization"] = f"Bearer {self.settings.api_token}"
        self._client = httpx.AsyncClient(
            base_url=self.settings.api_base_url,
            timeout=self.settings.request_timeout,
            headers=headers,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> InboxAPIClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Conversations and messages
    # ------------------------------------------------------------------

    async def list_conversations(self, branch_id: str | None = None) -> list[Conversation]:
        params = {"branchId": branch_id} if branch_id else None
        data = await self._request("GET", "/conversations", params=params)
        return [parse_conversation(c) for c in data.get("conversations") or []]

    async def list_messages(self, conversation_id: str) -> list[Message]:
        data = await self._request(
            "GET", "/messages", params={"conversationId": conversation_id}
        )
        return [parse_message(m) for m in data.get("messages") or []]

    async def send_message(self, outbound: OutboundMessage) -> dict:
        """Submit an outbound message. Raises SendError when not accepted."""
        try:
            data = await self._request("POST", "/messages", json=outbound.to_payload())
        except APIResponseError as e:
            raise SendError(e.server_error or str(e)) from e
        return data.get("data") or {}

    async def update_conversation(self, conversation_id: str, **fields: Any) -> dict:
        data = await self._request("PUT", f"/conversations/{conversation_id}", json=fields)
        return data.get("data") or {}

    async def create_conversation(self, phone: str) -> str:
        """Find or open a private conversation with ``phone``; returns its id."""
        data = await self._request("POST", "/conversations", json={"phone": phone})
        conversation = data.get("data") or {}
        if not conversation.get("id"):
            raise APIResponseError("Backend returned no conversation id")
        return str(conversation["id"])

    async def update_contact(self, contact_id: str, **fields: Any) -> dict:
        data = await self._request("PUT", f"/contacts/{contact_id}", json=fields)
        return data.get("data") or {}

    async def latest_booking_number(self, contact_id: str) -> str | None:
        data = await self._request("GET", "/bookings", params={"contactId": contact_id})
        for booking in data.get("data") or []:
            # The endpoint may ignore the filter; only trust this contact's rows.
            if booking.get("contactId") == contact_id and booking.get("bookingNumber"):
                return str(booking["bookingNumber"])
        return None

    async def get_settings(self) -> dict:
        data = await self._request("GET", "/settings")
        return data.get("settings") or {}

    # ------------------------------------------------------------------
    # Automation and templates
    # ------------------------------------------------------------------

    async def list_bot_flows(self) -> list[BotFlow]:
        data = await self._request("GET", "/bot-flows")
        return [parse_bot_flow(f) for f in data.get("data") or []]

    async def track_flow_interaction(
        self,
        flow_id: str,
        contact_id: str,
        action: str,
        step_index: int = 0,
        metadata: dict | None = None,
    ) -> None:
        await self._request(
            "POST",
            "/bot-flows/track",
            json={
                "flowId": flow_id,
                "contactId": contact_id,
                "action": action,
                "stepIndex": step_index,
                "metadata": metadata or {},
            },
        )

    async def match_templates(self, channel_account_id: str, trigger: str) -> list[Template]:
        """Server-side quick-reply ranking for ``trigger`` on one channel."""
        data = await self._request(
            "GET",
            "/templates",
            params={"channelAccountId": channel_account_id, "trigger": trigger},
        )
        return [parse_template(t) for t in data.get("data") or []]

    async def list_approved_templates(self) -> list[Template]:
        data = await self._request("GET", "/templates", params={"status": "APPROVED"})
        return [parse_template(t) for t in data.get("data") or []]

    # ------------------------------------------------------------------
    # Channel accounts and groups
    # ------------------------------------------------------------------

    async def list_channel_accounts(self) -> list[ChannelAccount]:
        data = await self._request("GET", "/channel-accounts")
        items = data.get("accounts") or data.get("data") or []
        return [parse_channel_account(a) for a in items]

    async def first_connected_account(self) -> str | None:
        for account in await self.list_channel_accounts():
            if account.is_connected:
                return account.id
        return None

    async def get_group(self, account_id: str, group_id: str) -> GroupInfo:
        data = await self._request(
            "GET", "/group", params={"accountId": account_id, "groupId": group_id}
        )
        return parse_group(data.get("group"))

    async def upload(self, filename: str, content: bytes, content_type: str) -> str:
        """Upload a file and return its public URL."""
        try:
            data = await self._request(
                "POST", "/upload", files={"file": (filename, content, content_type)}
            )
        except APIResponseError as e:
            raise UploadError(e.server_error or str(e)) from e
        except APITransportError as e:
            raise UploadError(f"Upload failed: {e}") from e
        if not data.get("url"):
            raise UploadError("Upload response carried no url")
        return str(data["url"])

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise APITransportError(f"{method} {path} failed: {e}") from e

        try:
            data = response.json() if response.content else {}
        except ValueError as e:
            raise APIResponseError(
                f"{method} {path} returned invalid JSON", status_code=response.status_code
            ) from e
        if not isinstance(data, dict):
            data = {"data": data, "success": True}

        if response.is_error or data.get("success") is False:
            server_error = data.get("error")
            raise APIResponseError(
                f"{method} {path} failed with HTTP {response.status_code}: "
                f"{server_error or 'unknown error'}",
                status_code=response.status_code,
                server_error=server_error,
            )
        return data
