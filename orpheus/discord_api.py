"""
Outbound calls to Discord's interaction callback and webhook endpoints.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import discord
import httpx

from .exceptions import APIError
from .types import MessagePayload
from .utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_API_BASE = "https://discord.com/api/v10"


class DiscordInteractionClient:
    """Thin wrapper over the three endpoints the response lifecycle needs."""

    def __init__(self, http: httpx.AsyncClient, api_base: str = DEFAULT_API_BASE):
        self.http = http
        self.api_base = api_base.rstrip("/")

    def callback_url(self, interaction_id: str, token: str) -> str:
        return f"{self.api_base}/interactions/{interaction_id}/{token}/callback"

    def original_message_url(self, application_id: str, token: str) -> str:
        return f"{self.api_base}/webhooks/{application_id}/{token}/messages/@original"

    async def send_callback(
        self,
        interaction_id: str,
        token: str,
        response_type: discord.InteractionResponseType,
        data: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> None:
        body: Dict[str, Any] = {"type": response_type.value}
        if data is not None:
            body["data"] = data
        kwargs: Dict[str, Any] = {"json": body}
        if timeout is not None:
            kwargs["timeout"] = timeout
        response = await self.http.post(self.callback_url(interaction_id, token), **kwargs)
        self._raise_for_status(response, "interaction callback")

    async def edit_original(self, application_id: str, token: str, payload: MessagePayload) -> None:
        response = await self.http.patch(
            self.original_message_url(application_id, token),
            **payload.to_request_kwargs(),
        )
        self._raise_for_status(response, "edit original")

    async def bulk_overwrite_commands(
        self, application_id: str, bot_token: str, commands: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        try:
            response = await self.http.put(
                f"{self.api_base}/applications/{application_id}/commands",
                json=commands,
                headers={"Authorization": f"Bot {bot_token}"},
            )
        except httpx.HTTPError as e:
            raise APIError(f"Discord command registration unreachable: {e}") from e
        self._raise_for_status(response, "command registration")
        return response.json()

    @staticmethod
    def _raise_for_status(response: httpx.Response, what: str) -> None:
        if response.is_success:
            return
        snippet = response.text[:300]
        raise APIError(f"Discord {what} failed with HTTP {response.status_code}: {snippet}")
