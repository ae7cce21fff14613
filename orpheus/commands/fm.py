"""/fm: now-playing card tinted with the album art's dominant colour."""
from __future__ import annotations

import asyncio
from functools import partial
from typing import Optional

import discord
import httpx

from ..deferred import DeferredTask
from ..exceptions import APIError, UpstreamEmptyError
from ..http_client import fetch_bytes
from ..providers.lastfm import BRAND_COLOR, ICON_URL
from ..render import dominant_color
from ..services import Services
from ..types import DeferredThenComplete, Interaction, InteractionResponse, MessagePayload
from ..utils.logging import get_logger
from .common import require_username

logger = get_logger(__name__)

# Discord rejects empty field names
BLANK = "\u200b"


def format_duration(ms: int) -> str:
    minutes, seconds = divmod(ms // 1000, 60)
    return f"{minutes}:{seconds:02d}"


async def _accent_color(services: Services, image_url: Optional[str]) -> Optional[int]:
    if not image_url:
        return None
    try:
        data = await fetch_bytes(services.http, image_url)
    except httpx.HTTPError as e:
        logger.debug(f"Could not fetch art for colour sampling: {e}", extra={"subsys": "fm"})
        return None
    return await asyncio.to_thread(dominant_color, data)


async def _duration(services: Services, artist: str, track: str) -> Optional[int]:
    try:
        return await services.lastfm.track_duration_ms(artist, track)
    except APIError as e:
        logger.debug(f"track.getInfo failed: {e}", extra={"subsys": "fm"})
        return None


async def _fm_work(services: Services, username: str, task: DeferredTask) -> MessagePayload:
    track = await services.lastfm.recent_track(username)
    if track is None:
        raise UpstreamEmptyError(f"Could not find any recent tracks for user `{username}`.")

    thumbnail = track.images.pick("large", "medium")
    color, duration = await asyncio.gather(
        _accent_color(services, thumbnail),
        _duration(services, track.artist, track.name),
    )

    icon_url = ICON_URL
    if color is not None:
        icon_url = f"{services.config.get('PUBLIC_BASE_URL', '')}/api/recolor-icon?color={color:06x}"
    footer = f"Currently listening: {username}" if track.now_playing else f"Last scrobbled by: {username}"

    embed = discord.Embed(title=f"▶ {track.name}", color=BRAND_COLOR if color is None else color)
    if duration:
        embed.description = f"-# ⏱ ({format_duration(duration)})"
    if thumbnail:
        embed.set_thumbnail(url=thumbnail)
    embed.add_field(name=BLANK, value=f"-# **{track.artist}**", inline=True)
    embed.add_field(name=BLANK, value="●", inline=True)
    embed.add_field(name=BLANK, value=f"-# **{track.album or 'Unknown album'}**", inline=True)
    embed.set_footer(text=footer, icon_url=icon_url)
    return MessagePayload(embeds=[embed])


async def handle_fm(interaction: Interaction, services: Services) -> InteractionResponse:
    username = await require_username(interaction, services, "fm")
    return DeferredThenComplete(
        partial(_fm_work, services, username),
        error_message="An error occurred while fetching data from Last.fm.",
    )
