"""Configuration loading and environment setup."""
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .utils.logging import get_logger

logger = get_logger(__name__)

# Load environment variables from .env file with explicit path
load_dotenv(dotenv_path=Path.cwd() / '.env', verbose=False)

# Also try loading from the project root in case we're running from a subdirectory
load_dotenv(dotenv_path=Path(__file__).parent.parent / '.env', verbose=False)

REQUIRED_VARS = (
    "DISCORD_PUBLIC_KEY",
    "DISCORD_APPLICATION_ID",
    "LASTFM_API_KEY",
)


def validate_required_env() -> None:
    """
    Validate that all required environment variables are present.
    """
    missing_vars = [var for var in REQUIRED_VARS if not os.getenv(var)]
    if missing_vars:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing_vars)}"
        )
    for var in REQUIRED_VARS:
        logger.debug(f"✅ {var} present")


def _clean_env_value(value: Optional[str]) -> Optional[str]:
    """
    Clean environment variable value by removing inline comments.
    """
    if not value:
        return value
    # Split on # and take the first part, then strip whitespace
    return value.split('#')[0].strip()


def _safe_int(value: Optional[str], default: str, var_name: str) -> int:
    """Safely convert environment variable to int, handling malformed values."""
    try:
        clean_value = _clean_env_value(value) or default
        return int(clean_value)
    except (ValueError, AttributeError):
        logger.warning(f"⚠ Invalid {var_name} value '{value}', using default {default}")
        return int(default)


def _safe_float(value: Optional[str], default: str, var_name: str) -> float:
    """Safely convert environment variable to float, handling malformed values."""
    try:
        clean_value = _clean_env_value(value) or default
        return float(clean_value)
    except (ValueError, AttributeError):
        logger.warning(f"⚠ Invalid {var_name} value '{value}', using default {default}")
        return float(default)


def load_config() -> Dict[str, Any]:
    """
    Load configuration from environment variables.
    """
    config = {
        # DISCORD INTERACTIONS
        "DISCORD_PUBLIC_KEY": _clean_env_value(os.getenv("DISCORD_PUBLIC_KEY")),
        "DISCORD_APPLICATION_ID": _clean_env_value(os.getenv("DISCORD_APPLICATION_ID")),
        # Only needed for --register-commands; never log it
        "DISCORD_BOT_TOKEN": _clean_env_value(os.getenv("DISCORD_BOT_TOKEN")),
        "DISCORD_API_BASE": os.getenv("DISCORD_API_BASE", "https://discord.com/api/v10").rstrip("/"),

        # Deferred response timing
        "ACK_DEADLINE_S": _safe_float(os.getenv("ACK_DEADLINE_S"), "3.0", "ACK_DEADLINE_S"),
        "FOLLOWUP_TOKEN_TTL_S": _safe_int(os.getenv("FOLLOWUP_TOKEN_TTL_S"), "900", "FOLLOWUP_TOKEN_TTL_S"),

        # METADATA PROVIDERS
        "LASTFM_API_KEY": _clean_env_value(os.getenv("LASTFM_API_KEY")),
        "LASTFM_API_BASE": os.getenv("LASTFM_API_BASE", "https://ws.audioscrobbler.com/2.0/"),
        "ITUNES_SEARCH_URL": os.getenv("ITUNES_SEARCH_URL", "https://itunes.apple.com/search"),
        # MusicBrainz refuses anonymous clients; the archival provider is skipped without it
        "MUSICBRAINZ_USER_AGENT": _clean_env_value(os.getenv("MUSICBRAINZ_USER_AGENT")),
        "SPOTIFY_CLIENT_ID": _clean_env_value(os.getenv("SPOTIFY_CLIENT_ID")),
        "SPOTIFY_CLIENT_SECRET": _clean_env_value(os.getenv("SPOTIFY_CLIENT_SECRET")),

        # Cover resolution
        "LIVENESS_TIMEOUT_S": _safe_float(os.getenv("LIVENESS_TIMEOUT_S"), "2.5", "LIVENESS_TIMEOUT_S"),

        # KEY-VALUE STORE (in-memory when unset)
        "REDIS_URL": _clean_env_value(os.getenv("REDIS_URL") or os.getenv("KV_URL")),
        "LEAGUE_CACHE_TTL_S": _safe_int(os.getenv("LEAGUE_CACHE_TTL_S"), "3600", "LEAGUE_CACHE_TTL_S"),
        "PLAYLIST_CACHE_TTL_S": _safe_int(os.getenv("PLAYLIST_CACHE_TTL_S"), "300", "PLAYLIST_CACHE_TTL_S"),

        # WEB SERVER
        "HOST": os.getenv("HOST", "0.0.0.0"),
        "PORT": _safe_int(os.getenv("PORT"), "8080", "PORT"),
        "PUBLIC_BASE_URL": (os.getenv("PUBLIC_BASE_URL") or "http://localhost:8080").rstrip("/"),

        # Shared HTTP pool
        "HTTP_MAX_CONNECTIONS": _safe_int(os.getenv("HTTP_MAX_CONNECTIONS"), "32", "HTTP_MAX_CONNECTIONS"),

        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
        "LOG_JSONL_PATH": os.getenv("LOG_JSONL_PATH", "logs/orpheus.jsonl"),
    }
    return config
