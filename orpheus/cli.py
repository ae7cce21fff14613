"""
Handles command-line interface parsing and actions.
"""
import argparse
import sys
from typing import Any, Dict

from . import __title__, __version__
from .commands import COMMAND_DEFINITIONS
from .config import load_config, validate_required_env
from .discord_api import DiscordInteractionClient
from .exceptions import ConfigurationError
from .http_client import create_http_client
from .utils.logging import get_logger


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description=f"{__title__} - Discord interactions server for Last.fm")
    parser.add_argument('--debug', action='store_true', help='Enable debug logging.')
    parser.add_argument('--config-check', action='store_true', help='Validate configuration and exit.')
    parser.add_argument('--version', action='store_true', help='Show version info and exit.')
    parser.add_argument(
        '--register-commands',
        action='store_true',
        help='Overwrite the global slash commands with the bundled definitions and exit.',
    )
    parser.add_argument('--host', default=None, help='Bind address (default: HOST or 0.0.0.0).')
    parser.add_argument('--port', type=int, default=None, help='Bind port (default: PORT or 8080).')
    return parser.parse_args(argv)


def show_version_info():
    """Display version and system information."""
    print(f"{__title__} - Version {__version__}")
    print(f"Python Version: {sys.version}")


def validate_configuration_only():
    """Validate configuration and exit."""
    logger = get_logger(__name__)
    try:
        logger.info("--- Running Configuration-Only Validation ---", extra={'subsys': 'core', 'event': 'config_check_start'})
        validate_required_env()
        config = load_config()
        logger.info("Configuration validation successful. The following settings are active:", extra={'subsys': 'core', 'event': 'config_valid_start'})

        for key, value in config.items():
            # Hide sensitive values like tokens
            if value and any(marker in key for marker in ("TOKEN", "SECRET", "API_KEY")):
                value = '********'
            logger.info(f"  • {key}: {value}", extra={'subsys': 'core', 'event': 'config_valid'})

    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}", exc_info=True, extra={'subsys': 'core', 'event': 'config_fail'})
        sys.exit(1)


async def register_commands(config: Dict[str, Any]) -> int:
    """PUT every command definition to Discord. Returns how many Discord accepted."""
    logger = get_logger(__name__)
    token = config.get("DISCORD_BOT_TOKEN")
    application_id = config.get("DISCORD_APPLICATION_ID")
    if not token or not application_id:
        raise ConfigurationError("DISCORD_BOT_TOKEN and DISCORD_APPLICATION_ID are required to register commands")

    http = create_http_client(config)
    try:
        client = DiscordInteractionClient(http, config["DISCORD_API_BASE"])
        registered = await client.bulk_overwrite_commands(application_id, token, COMMAND_DEFINITIONS)
    finally:
        await http.aclose()

    names = ", ".join(f"/{c.get('name')}" for c in registered)
    logger.info(f"✅ Registered {len(registered)} commands: {names}", extra={'subsys': 'core', 'event': 'register_commands'})
    return len(registered)
