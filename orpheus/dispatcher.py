"""
Command Dispatcher: interaction -> handler -> executed response variant.

Routing is a plain lookup (commands by name, components by ``custom_id``).
Handlers return one of the closed set of response variants in ``types``; the
dispatcher turns it into the HTTP answer for Discord's inbound request,
running the acknowledge-then-complete protocol for deferred work.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import discord

from .commands import COMMANDS, COMPONENTS, Handler
from .exceptions import AcknowledgeError, DispatchTypeError, NotRegisteredError, UpstreamEmptyError
from .logger import log_interaction
from .services import Services
from .types import (
    DeferredThenComplete,
    ImmediateMessage,
    Interaction,
    InteractionResponse,
    Pong,
    UpdateMessage,
    message,
)
from .utils.logging import get_logger

logger = get_logger(__name__)

UNKNOWN_COMMAND = "Unknown command."
HANDLER_FAILED = "Sorry, something went wrong while handling that command."


@dataclass(frozen=True)
class DispatchResult:
    """HTTP status and JSON body (``None`` for an empty response)."""

    status: int
    body: Optional[Dict[str, Any]] = None


class CommandDispatcher:
    def __init__(
        self,
        services: Services,
        commands: Optional[Mapping[str, Handler]] = None,
        components: Optional[Mapping[str, Handler]] = None,
    ):
        self.services = services
        self.commands = dict(COMMANDS if commands is None else commands)
        self.components = dict(COMPONENTS if components is None else components)

    def _handler_for(self, interaction: Interaction) -> Optional[Handler]:
        if interaction.type is discord.InteractionType.application_command:
            return self.commands.get(interaction.command_name or "")
        return self.components.get(interaction.custom_id or "")

    async def route(self, interaction: Interaction) -> InteractionResponse:
        """Pick and invoke the handler. Unknown names answer privately instead of failing."""
        handler = self._handler_for(interaction)
        if handler is None:
            log_interaction(interaction, "unknown", success=False)
            return message(UNKNOWN_COMMAND, ephemeral=True)

        try:
            return await handler(interaction, self.services)
        except (NotRegisteredError, UpstreamEmptyError) as e:
            return message(str(e), ephemeral=True)
        except Exception as e:
            logger.error(
                f"✖ Handler for {interaction.command_name or interaction.custom_id} failed: {e}",
                exc_info=True,
                extra={"subsys": "dispatch", "interaction_id": interaction.id},
            )
            return message(HANDLER_FAILED, ephemeral=True)

    async def dispatch(self, interaction: Interaction) -> DispatchResult:
        if interaction.type is discord.InteractionType.ping:
            return await self.execute(interaction, Pong())

        if interaction.type not in (
            discord.InteractionType.application_command,
            discord.InteractionType.component,
        ):
            logger.warning(
                f"⚠ Unsupported interaction type {interaction.type}",
                extra={"subsys": "dispatch", "interaction_id": interaction.id},
            )
            return DispatchResult(400, {"error": "unsupported interaction type"})

        log_interaction(interaction, "received")
        response = await self.route(interaction)
        return await self.execute(interaction, response)

    async def execute(self, interaction: Interaction, response: InteractionResponse) -> DispatchResult:
        if isinstance(response, Pong):
            return DispatchResult(200, {"type": discord.InteractionResponseType.pong.value})

        if isinstance(response, ImmediateMessage):
            return DispatchResult(
                200,
                {
                    "type": discord.InteractionResponseType.channel_message.value,
                    "data": response.payload.to_dict(),
                },
            )

        if isinstance(response, UpdateMessage):
            return DispatchResult(
                200,
                {
                    "type": discord.InteractionResponseType.message_update.value,
                    "data": response.payload.to_dict(),
                },
            )

        if isinstance(response, DeferredThenComplete):
            try:
                await self.services.deferred.run(interaction, response)
            except AcknowledgeError as e:
                # The token is tied to this request; nothing left to answer with
                log_interaction(interaction, "acknowledge_failed", {"error": str(e)}, success=False)
                return DispatchResult(500, None)
            # Already answered through the callback endpoint
            return DispatchResult(204, None)

        raise DispatchTypeError(f"Handler returned unsupported response {type(response).__name__}")
