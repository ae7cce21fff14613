import logging
from typing import Optional, Dict, Any

from .types import Interaction

# Get a logger instance for this module
logger = logging.getLogger(__name__)


def log_interaction(
    interaction: Interaction,
    event: str,
    detail: Optional[Dict[str, Any]] = None,
    success: bool = True,
):
    """
    Logs a command execution with structured context.

    Args:
        interaction: The inbound interaction.
        event: A string describing the event (e.g., 'deferred', 'completed').
        detail: An optional dictionary for additional structured details.
        success: A boolean indicating if the step was successful.
    """
    guild_id = interaction.guild_id or "DM"
    command = interaction.command_name or interaction.custom_id or "?"

    level = logging.INFO if success else logging.ERROR
    status_icon = "✔" if success else "✖"

    log_message = f"{status_icon} CMD [guild: {guild_id}, user: {interaction.user_id}, cmd: {command}] {event}"

    if detail:
        detail_str = ", ".join([f"{k}: {v}" for k, v in detail.items()])
        log_message += f" ({detail_str})"

    extra_context = {
        "subsys": "command",
        "guild_id": guild_id,
        "user_id": interaction.user_id,
        "interaction_id": interaction.id,
        "event": event,
        "detail": detail or {},
    }

    logger.log(level, log_message, extra=extra_context)
