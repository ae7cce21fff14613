"""
/chart and /serverchart: top-album grids rendered with Pillow.
"""
from __future__ import annotations

import asyncio
from functools import partial
from typing import Dict, Iterable, List, Optional, Sequence

from ..deferred import DeferredTask
from ..exceptions import UpstreamEmptyError
from ..providers.lastfm import TopAlbum
from ..render import Labelling, render_chart
from ..services import Services
from ..types import Attachment, DeferredThenComplete, Interaction, InteractionResponse, MessagePayload, message
from ..utils.logging import get_logger
from .common import (
    PERIODS,
    fetch_album_tiles,
    parse_period,
    parse_size,
    require_username,
)

logger = get_logger(__name__)

# Albums fetched per member when building a server chart
SERVER_ALBUMS_PER_USER = 100

INVALID_SIZE = "Chart size must look like `3x3`, with each side between 1 and 10."


def aggregate_top_albums(per_user: Iterable[Sequence[TopAlbum]]) -> List[TopAlbum]:
    """Merge album lists, summing plays for the same (case-insensitive) artist/album."""
    merged: Dict[str, TopAlbum] = {}
    for albums in per_user:
        for album in albums:
            key = f"{album.artist.lower()} - {album.name.lower()}"
            seen = merged.get(key)
            if seen is None:
                merged[key] = album
            else:
                merged[key] = TopAlbum(
                    name=seen.name,
                    artist=seen.artist,
                    playcount=seen.playcount + album.playcount,
                    images=seen.images,
                )
    return sorted(merged.values(), key=lambda a: a.playcount, reverse=True)


async def _render(
    services: Services, albums: Sequence[TopAlbum], width: int, height: int, labelling: Labelling
) -> bytes:
    tiles = await fetch_album_tiles(services, albums)
    labels = [a.label for a in albums]
    return await asyncio.to_thread(render_chart, tiles, labels, width, height, labelling)


async def _chart_work(
    services: Services,
    username: str,
    width: int,
    height: int,
    period: str,
    labelling: Labelling,
    task: DeferredTask,
) -> MessagePayload:
    limit = width * height
    albums = await services.lastfm.top_albums(username, period=period, limit=limit)
    if len(albums) < limit:
        raise UpstreamEmptyError(
            f"Could not fetch {limit} albums for `{username}`. "
            "They may need to listen to more music to generate a chart for this period."
        )
    png = await _render(services, albums[:limit], width, height, labelling)
    return MessagePayload(
        content=f"-# *Top Albums ({PERIODS[period]}) - **{username}***",
        attachment=Attachment("chart.png", png),
    )


async def handle_chart(interaction: Interaction, services: Services) -> InteractionResponse:
    grid = parse_size(interaction.option("size"))
    if grid is None:
        return message(INVALID_SIZE, ephemeral=True)
    username = await require_username(interaction, services, "chart")

    width, height = grid
    return DeferredThenComplete(
        partial(
            _chart_work,
            services,
            username,
            width,
            height,
            parse_period(interaction.option("period")),
            Labelling.parse(interaction.option("labelling")),
        ),
        error_message="An error occurred while generating your chart.",
    )


async def _server_chart_work(
    services: Services,
    guild_name: str,
    size_label: str,
    width: int,
    height: int,
    period: str,
    labelling: Labelling,
    task: DeferredTask,
) -> MessagePayload:
    usernames = await services.users.usernames()
    if not usernames:
        raise UpstreamEmptyError("No users have registered their Last.fm accounts with `/register` yet.")

    results = await asyncio.gather(
        *(services.lastfm.top_albums(u, period=period, limit=SERVER_ALBUMS_PER_USER) for u in usernames),
        return_exceptions=True,
    )
    per_user = []
    for username, result in zip(usernames, results):
        if isinstance(result, BaseException):
            logger.warning(
                f"⚠ Skipping {username} in server chart: {result}",
                extra={"subsys": "chart", "event": "user_skipped"},
            )
            continue
        per_user.append(result)

    albums = aggregate_top_albums(per_user)
    if not albums:
        raise UpstreamEmptyError("Could not fetch any album data for registered users in this period.")

    limit = width * height
    top = albums[:limit]
    if len(top) < limit:
        raise UpstreamEmptyError(
            f"Not enough unique albums listened to by the server to generate a {size_label} chart. "
            f"Found {len(top)} albums."
        )

    png = await _render(services, top, width, height, labelling)
    return MessagePayload(
        content=f"-# *Server Top Albums ({PERIODS[period]}) - **{guild_name}***",
        attachment=Attachment("server-chart.png", png),
    )


def _guild_name(interaction: Interaction) -> str:
    guild: Optional[dict] = interaction.raw.get("guild")
    return (guild or {}).get("name") or "This Server"


async def handle_serverchart(interaction: Interaction, services: Services) -> InteractionResponse:
    grid = parse_size(interaction.option("size"))
    if grid is None:
        return message(INVALID_SIZE, ephemeral=True)

    width, height = grid
    return DeferredThenComplete(
        partial(
            _server_chart_work,
            services,
            _guild_name(interaction),
            f"{width}x{height}",
            width,
            height,
            parse_period(interaction.option("period")),
            Labelling.parse(interaction.option("labelling")),
        ),
        error_message="An error occurred while generating the server chart.",
    )
