"""/ping: round-trip latency measured from the interaction's snowflake."""
from __future__ import annotations

from datetime import datetime, timezone

import discord

from ..services import Services
from ..types import ImmediateMessage, Interaction, message


async def handle_ping(interaction: Interaction, services: Services) -> ImmediateMessage:
    created = discord.utils.snowflake_time(int(interaction.id))
    latency_ms = max(0, int((datetime.now(timezone.utc) - created).total_seconds() * 1000))
    return message(f"🏓 Pong! Latency is {latency_ms}ms.")
