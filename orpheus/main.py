"""
Orpheus main entry point - BOOTSTRAP ONLY
This module should contain NO business logic, only orchestration.
"""
import asyncio
import os
from typing import Any, Dict, NoReturn

from aiohttp import web

from .cli import parse_arguments, register_commands, show_version_info, validate_configuration_only
from .config import load_config, validate_required_env
from .exceptions import APIError, ConfigurationError
from .services import create_services
from .utils.logging import get_logger, init_logging, shutdown_logging_and_exit
from .web import create_app


async def build_app(config: Dict[str, Any]) -> web.Application:
    """Construct services inside the server's event loop."""
    return create_app(create_services(config))


def main(argv=None) -> NoReturn:
    """Parse the CLI, validate configuration, then serve until interrupted."""
    args = parse_arguments(argv)
    if args.debug:
        os.environ['LOG_LEVEL'] = 'DEBUG'

    init_logging()
    logger = get_logger(__name__)

    if args.version:
        show_version_info()
        shutdown_logging_and_exit(0)

    if args.config_check:
        validate_configuration_only()
        shutdown_logging_and_exit(0)

    try:
        validate_required_env()
        config = load_config()
    except ConfigurationError as e:
        logger.critical(f"Configuration error during startup: {e}", extra={'subsys': 'core', 'event': 'startup_fail'})
        shutdown_logging_and_exit(1)

    if args.register_commands:
        try:
            asyncio.run(register_commands(config))
        except (ConfigurationError, APIError) as e:
            logger.critical(f"Command registration failed: {e}", extra={'subsys': 'core', 'event': 'register_fail'})
            shutdown_logging_and_exit(1)
        shutdown_logging_and_exit(0)

    host = args.host or config["HOST"]
    port = args.port or config["PORT"]
    logger.info(f"🚀 Serving interactions on {host}:{port}", extra={'subsys': 'core', 'event': 'startup'})
    web.run_app(build_app(config), host=host, port=port, print=None)
    shutdown_logging_and_exit(0)


if __name__ == "__main__":
    main()
