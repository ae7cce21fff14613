"""Environment configuration and the command-line entry points."""

import json
import logging

import httpx
import pytest

from orpheus import cli
from orpheus.commands import COMMAND_DEFINITIONS
from orpheus.config import REQUIRED_VARS, load_config, validate_required_env
from orpheus.discord_api import DiscordInteractionClient
from orpheus.exceptions import APIError, ConfigurationError
from orpheus.http_client import create_http_client
from orpheus.utils.logging import JsonlFormatter, SensitiveDataFilter


@pytest.fixture
def clean_env(monkeypatch):
    for var in (
        *REQUIRED_VARS,
        "REDIS_URL",
        "KV_URL",
        "PORT",
        "ACK_DEADLINE_S",
        "PUBLIC_BASE_URL",
        "MUSICBRAINZ_USER_AGENT",
    ):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


def test_missing_required_vars_are_named(clean_env):
    clean_env.setenv("DISCORD_PUBLIC_KEY", "ab" * 32)

    with pytest.raises(ConfigurationError) as excinfo:
        validate_required_env()

    assert "DISCORD_APPLICATION_ID" in str(excinfo.value)
    assert "LASTFM_API_KEY" in str(excinfo.value)
    assert "DISCORD_PUBLIC_KEY" not in str(excinfo.value)


def test_defaults(clean_env):
    config = load_config()

    assert config["ACK_DEADLINE_S"] == 3.0
    assert config["PORT"] == 8080
    assert config["REDIS_URL"] is None
    assert config["MUSICBRAINZ_USER_AGENT"] is None
    assert config["PUBLIC_BASE_URL"] == "http://localhost:8080"


def test_overrides_inline_comments_and_bad_numbers(clean_env):
    clean_env.setenv("KV_URL", "redis://kv:6379/0  # shared instance")
    clean_env.setenv("PORT", "not-a-port")
    clean_env.setenv("ACK_DEADLINE_S", "2.5")
    clean_env.setenv("PUBLIC_BASE_URL", "https://bot.example/")

    config = load_config()

    assert config["REDIS_URL"] == "redis://kv:6379/0"
    assert config["PORT"] == 8080
    assert config["ACK_DEADLINE_S"] == 2.5
    assert config["PUBLIC_BASE_URL"] == "https://bot.example"


def test_cli_flags():
    args = cli.parse_arguments(["--register-commands", "--port", "9000"])

    assert args.register_commands
    assert args.port == 9000
    assert args.host is None
    assert not args.debug


@pytest.mark.asyncio
async def test_register_commands_needs_a_bot_token():
    with pytest.raises(ConfigurationError):
        await cli.register_commands({"DISCORD_APPLICATION_ID": "app-1"})


@pytest.mark.asyncio
async def test_register_commands_puts_every_definition(monkeypatch):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=json.loads(request.read()))

    monkeypatch.setattr(
        cli,
        "create_http_client",
        lambda config: create_http_client(config, transport=httpx.MockTransport(handler)),
    )

    count = await cli.register_commands(
        {"DISCORD_APPLICATION_ID": "app-1", "DISCORD_BOT_TOKEN": "bot-token", "DISCORD_API_BASE": "https://discord.test/api/v10"}
    )

    assert count == len(COMMAND_DEFINITIONS)
    assert seen[0].method == "PUT"
    assert seen[0].url.path == "/api/v10/applications/app-1/commands"
    assert seen[0].headers["Authorization"] == "Bot bot-token"


@pytest.mark.asyncio
async def test_discord_errors_surface_as_api_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(401, text="401: Unauthorized"))
    async with httpx.AsyncClient(transport=transport) as http:
        client = DiscordInteractionClient(http, "https://discord.test/api/v10")
        with pytest.raises(APIError, match="HTTP 401"):
            await client.bulk_overwrite_commands("app-1", "bad", [])


@pytest.mark.asyncio
async def test_unreachable_discord_during_registration_is_api_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = DiscordInteractionClient(http, "https://discord.test/api/v10")
        with pytest.raises(APIError, match="unreachable"):
            await client.bulk_overwrite_commands("app-1", "bot-token", [])


def test_jsonl_formatter_carries_structured_context():
    record = logging.LogRecord("orpheus.deferred", logging.INFO, __file__, 1, "completed", None, None)
    record.subsys = "command"
    record.interaction_id = "123"
    record.event = "completed"

    line = json.loads(JsonlFormatter().format(record))

    assert line["subsys"] == "command"
    assert line["interaction_id"] == "123"
    assert line["event"] == "completed"
    assert line["level"] == "INFO"


def test_sensitive_values_are_scrubbed_from_details():
    record = logging.LogRecord("orpheus", logging.INFO, __file__, 1, "token refresh", None, None)
    record.detail = {"access_token": "tkn", "nested": {"client_secret": "s"}, "user": "alice"}

    assert SensitiveDataFilter().filter(record)
    assert record.detail == {"access_token": "[REDACTED]", "nested": {"client_secret": "[REDACTED]"}, "user": "alice"}


def test_interaction_tokens_are_redacted_from_logged_urls():
    record = logging.LogRecord(
        "httpx",
        logging.INFO,
        __file__,
        1,
        'HTTP Request: %s %s "%s"',
        ("PATCH", "https://discord.com/api/v10/webhooks/42/secret-token/messages/@original", "HTTP/1.1 200 OK"),
        None,
    )

    SensitiveDataFilter().filter(record)

    message = record.getMessage()
    assert "secret-token" not in message
    assert "/webhooks/42/[REDACTED]/messages/@original" in message
