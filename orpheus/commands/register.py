"""/register: remember the caller's Last.fm username."""
from __future__ import annotations

from ..services import Services
from ..types import ImmediateMessage, Interaction, message


async def handle_register(interaction: Interaction, services: Services) -> ImmediateMessage:
    username = str(interaction.option("username") or "").strip()
    if not username:
        return message("Please provide your Last.fm username.", ephemeral=True)
    if not interaction.user_id:
        return message("Could not tell who you are; try again from a server or DM.", ephemeral=True)

    # Re-registering overwrites the previous username
    await services.users.register(interaction.user_id, username)
    return message(f"✅ Success! Your Last.fm username has been saved as `{username}`.", ephemeral=True)
