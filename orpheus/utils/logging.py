"""
Console + JSONL logging.

Every record may carry structured context through ``extra=``: ``subsys``,
``event``, ``guild_id``, ``user_id``, ``interaction_id`` and a ``detail``
dict. The Rich console shows the message with a level icon; the JSONL file
keeps the context as fields for later querying.
"""
import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional

from rich.logging import RichHandler

LEVEL_ICONS = (
    (logging.ERROR, "✖"),
    (logging.WARNING, "⚠"),
    (logging.INFO, "✔"),
)

THIRD_PARTY_LOGGERS = ("httpx", "httpcore", "aiohttp.access", "aiohttp.server", "redis", "PIL", "discord")


class LevelIconFilter(logging.Filter):
    """Adds ``record.level_icon`` for the console format string."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.level_icon = next((icon for level, icon in LEVEL_ICONS if record.levelno >= level), "ℹ")
        return True


class JsonlFormatter(logging.Formatter):
    """One JSON object per line; keys with no value are left out."""

    KEYS = (
        "ts",
        "level",
        "name",
        "subsys",
        "event",
        "guild_id",
        "user_id",
        "interaction_id",
        "msg",
        "detail",
    )

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds")
        payload: Dict[str, Any] = {
            "ts": ts,
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        for key in ("subsys", "event", "guild_id", "user_id", "interaction_id", "detail"):
            payload[key] = getattr(record, key, None)
        if record.exc_info:
            payload["detail"] = {**(payload["detail"] or {}), "exc": self.formatException(record.exc_info)}

        obj = {k: payload[k] for k in self.KEYS if payload.get(k) not in (None, {}, "")}
        return json.dumps(obj, ensure_ascii=False, default=str)


class SensitiveDataFilter(logging.Filter):
    """Scrubs secrets from structured extras and interaction tokens from URLs.

    httpx logs every request URL at INFO, and Discord's callback and webhook
    URLs embed the interaction's continuation token.
    """

    SECRET_KEYS = {
        "LASTFM_API_KEY",
        "DISCORD_BOT_TOKEN",
        "SPOTIFY_CLIENT_SECRET",
        "authorization",
        "api_key",
        "token",
        "access_token",
        "client_secret",
    }
    _TOKEN_IN_URL = re.compile(r"(/(?:interactions|webhooks)/[^/\s]+/)[^/\s\"]+")
    _API_KEY_PARAM = re.compile(r"(api_key=)[^&\s\"]+")

    def filter(self, record: logging.LogRecord) -> bool:
        for value in list(record.__dict__.values()):
            if isinstance(value, dict):
                self._scrub_dict_inplace(value)

        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # Malformed format args; let the handler report it
            return True
        redacted = self._API_KEY_PARAM.sub(r"\1[REDACTED]", self._TOKEN_IN_URL.sub(r"\1[REDACTED]", message))
        if redacted != message:
            record.msg, record.args = redacted, None
        return True

    def _scrub_dict_inplace(self, obj: Dict[str, Any]) -> None:
        for k in list(obj.keys()):
            v = obj[k]
            if isinstance(v, dict):
                self._scrub_dict_inplace(v)
            elif isinstance(v, str) and (k in self.SECRET_KEYS or k.lower() in self.SECRET_KEYS):
                obj[k] = "[REDACTED]"


def init_logging(level: Optional[str] = None, jsonl_path: Optional[str] = None) -> None:
    """Configure the Rich console sink and, unless the path is empty, the JSONL sink.

    Arguments default to ``LOG_LEVEL`` / ``LOG_JSONL_PATH``; third-party
    loggers are held at ``THIRD_PARTY_LOG_LEVEL``.
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if jsonl_path is None:
        jsonl_path = os.getenv("LOG_JSONL_PATH", "logs/orpheus.jsonl")

    scrubber = SensitiveDataFilter()
    console = RichHandler(rich_tracebacks=True, show_path=False, log_time_format="%Y-%m-%d %H:%M:%S")
    console.set_name("console")
    console.addFilter(LevelIconFilter())
    console.addFilter(scrubber)
    console.setFormatter(logging.Formatter(fmt="%(level_icon)s %(message)s"))
    handlers: List[logging.Handler] = [console]

    if jsonl_path:
        path = Path(jsonl_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        jsonl = logging.FileHandler(str(path), encoding="utf-8")
        jsonl.set_name("jsonl")
        jsonl.addFilter(scrubber)
        jsonl.setFormatter(JsonlFormatter())
        handlers.append(jsonl)

    logging.basicConfig(handlers=handlers, level=level, force=True)

    third_party_level = os.getenv("THIRD_PARTY_LOG_LEVEL", "WARNING").upper()
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    sinks = ", ".join(h.get_name() for h in handlers)
    logging.getLogger(__name__).info(f"Logging initialized ({sinks})", extra={"subsys": "logging"})


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def shutdown_logging_and_exit(exit_code: int) -> NoReturn:
    try:
        logging.getLogger(__name__).info("Shutting down", extra={"subsys": "logging"})
    finally:
        try:
            cleanup_rich_handlers()
            logging.shutdown()
        finally:
            sys.exit(exit_code)


def cleanup_rich_handlers() -> None:
    """Close Rich handlers before interpreter teardown."""
    for handler in list(logging.getLogger().handlers):
        if isinstance(handler, RichHandler):
            handler.rich_tracebacks = False
            handler.close()
