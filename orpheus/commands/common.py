"""
Helpers shared by the command handlers.
"""
from __future__ import annotations

import asyncio
import re
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import discord
import httpx

from ..exceptions import NotRegisteredError
from ..http_client import fetch_bytes
from ..providers.lastfm import BRAND_COLOR, ICON_URL, PLACEHOLDER_HASH, TopAlbum
from ..services import Services
from ..types import Interaction, InteractionResponse
from ..utils.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[Interaction, Services], Awaitable[InteractionResponse]]

PERIODS = {
    "7day": "Last 7 Days",
    "1month": "Last Month",
    "3month": "Last 3 Months",
    "6month": "Last 6 Months",
    "12month": "Last Year",
    "overall": "All Time",
}
DEFAULT_PERIOD = "7day"

DEFAULT_SIZE = "3x3"
MAX_GRID = 10
_SIZE_RE = re.compile(r"^\s*(\d{1,2})\s*x\s*(\d{1,2})\s*$")


def not_registered_message(command: str) -> str:
    return (
        "You haven't registered your Last.fm username yet! Use the `/register` command first, "
        f"or provide a username directly with `/{command} user: <username>`."
    )


async def resolve_username(interaction: Interaction, services: Services, option: str = "user") -> Optional[str]:
    """Explicit option first, then the invoking user's registration."""
    explicit = interaction.option(option)
    if explicit:
        return str(explicit).strip()
    return await services.users.lookup(interaction.user_id)


async def require_username(
    interaction: Interaction, services: Services, command: str, option: str = "user"
) -> str:
    """Like ``resolve_username`` but raises ``NotRegisteredError`` when nobody is known."""
    username = await resolve_username(interaction, services, option)
    if not username:
        raise NotRegisteredError(not_registered_message(command))
    return username


def parse_period(value: Optional[str]) -> str:
    return value if value in PERIODS else DEFAULT_PERIOD


def parse_size(value: Optional[str]) -> Optional[Tuple[int, int]]:
    """``"4x5"`` -> ``(4, 5)``; ``None`` when malformed or outside 1..10."""
    match = _SIZE_RE.match(value or DEFAULT_SIZE)
    if not match:
        return None
    width, height = int(match.group(1)), int(match.group(2))
    if not (1 <= width <= MAX_GRID and 1 <= height <= MAX_GRID):
        return None
    return width, height


def lastfm_embed(title: str, artist: str, image_url: Optional[str] = None, footer: Optional[str] = None) -> discord.Embed:
    embed = discord.Embed(title=title, description=f"*by **{artist}***", color=BRAND_COLOR)
    if image_url:
        embed.set_image(url=image_url)
    if footer:
        embed.set_footer(text=footer, icon_url=ICON_URL)
    return embed


async def _fetch_tile(services: Services, url: Optional[str]) -> Optional[bytes]:
    if not url or PLACEHOLDER_HASH in url:
        return None
    try:
        return await fetch_bytes(services.http, url)
    except httpx.HTTPError as e:
        logger.debug(f"Chart tile fetch failed for {url}: {e}", extra={"subsys": "render"})
        return None


async def fetch_album_tiles(services: Services, albums: Sequence[TopAlbum]) -> List[Optional[bytes]]:
    """Cover bytes per album, ``None`` where the art is missing or unreachable."""
    return list(
        await asyncio.gather(*(_fetch_tile(services, a.images.pick("extralarge", "large")) for a in albums))
    )
