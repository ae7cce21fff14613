"""
/league banned and /league find.

The server's 30 most-played artists of the last month are "banned" from the
league; ``find`` lists the tracks of a Spotify playlist by banned artists.
Both the artist list and playlist contents are cached in the KV store.
"""
from __future__ import annotations

import asyncio
from functools import partial
from typing import Dict, Iterable, List, Sequence

import discord

from ..deferred import DeferredTask
from ..exceptions import UpstreamEmptyError
from ..kv import cache_get_json, cache_set_json
from ..providers.lastfm import TopArtist
from ..providers.spotify import PlaylistTrack, extract_playlist_id
from ..services import Services
from ..types import DeferredThenComplete, Interaction, InteractionResponse, MessagePayload, message
from ..utils.logging import get_logger

logger = get_logger(__name__)

TOP_ARTISTS_CACHE_KEY = "league:server-top-artists"
PLAYLIST_CACHE_PREFIX = "league:playlist:"
BANNED_COUNT = 30
COLUMN_SIZE = 15
MAX_CONTENT = 2000
DANGER_RED = 0xED4245
EMPTY_FIELD = "\u200b"

LEAGUE_ERROR = "An error occurred while running the league command."


def aggregate_top_artists(per_user: Iterable[Sequence[TopArtist]], limit: int = BANNED_COUNT) -> List[str]:
    """Top ``limit`` artist names by summed plays; first-seen capitalisation wins."""
    totals: Dict[str, TopArtist] = {}
    for artists in per_user:
        for artist in artists:
            key = artist.name.lower()
            seen = totals.get(key)
            plays = artist.playcount + (seen.playcount if seen else 0)
            totals[key] = TopArtist(name=seen.name if seen else artist.name, playcount=plays)
    ranked = sorted(totals.values(), key=lambda a: a.playcount, reverse=True)
    return [a.name for a in ranked[:limit]]


async def server_top_artists(services: Services) -> List[str]:
    cached = await cache_get_json(services.kv, TOP_ARTISTS_CACHE_KEY)
    if cached:
        logger.debug("League artists cache hit", extra={"subsys": "league", "event": "cache_hit"})
        return list(cached)

    usernames = await services.users.usernames()
    if not usernames:
        raise UpstreamEmptyError("No users have registered with `/register`.")

    results = await asyncio.gather(
        *(services.lastfm.top_artists(u, period="1month", limit=50) for u in usernames),
        return_exceptions=True,
    )
    per_user = []
    for username, result in zip(usernames, results):
        if isinstance(result, BaseException):
            logger.warning(f"⚠ Skipping {username} in league totals: {result}", extra={"subsys": "league"})
            continue
        per_user.append(result)

    artists = aggregate_top_artists(per_user)
    if artists:
        await cache_set_json(
            services.kv, TOP_ARTISTS_CACHE_KEY, artists, int(services.config.get("LEAGUE_CACHE_TTL_S", 3600))
        )
    return artists


def banned_embed(artists: Sequence[str]) -> discord.Embed:
    embed = discord.Embed(
        title="🚫 Server League Banned Artists",
        description=(
            "The following artists have the highest scrobbles on the server this month "
            "and are banned from the league."
        ),
        color=DANGER_RED,
    )
    first, second = artists[:COLUMN_SIZE], artists[COLUMN_SIZE:BANNED_COUNT]
    first_value = "\n".join(f"{i}. {name}" for i, name in enumerate(first, start=1)) or EMPTY_FIELD
    # A single column reads better full width
    embed.add_field(name=f"Artists 1-{COLUMN_SIZE}", value=first_value, inline=bool(second))
    if second:
        second_value = "\n".join(f"{i}. {name}" for i, name in enumerate(second, start=COLUMN_SIZE + 1))
        embed.add_field(name=f"Artists {COLUMN_SIZE + 1}-{BANNED_COUNT}", value=second_value, inline=True)
    embed.set_footer(text="Based on plays from the last 30 days.")
    return embed


async def _banned_work(services: Services, task: DeferredTask) -> MessagePayload:
    artists = await server_top_artists(services)
    if not artists:
        raise UpstreamEmptyError("Could not find any top artists for the server.")
    return MessagePayload(embeds=[banned_embed(artists)])


async def _playlist_tracks(services: Services, playlist_id: str) -> List[PlaylistTrack]:
    key = f"{PLAYLIST_CACHE_PREFIX}{playlist_id}"
    cached = await cache_get_json(services.kv, key)
    if cached is not None:
        return [PlaylistTrack.from_json(t) for t in cached]
    tracks = await services.spotify.playlist_tracks(playlist_id)
    await cache_set_json(
        services.kv, key, [t.to_json() for t in tracks], int(services.config.get("PLAYLIST_CACHE_TTL_S", 300))
    )
    return tracks


def format_matches(matches: Sequence[PlaylistTrack]) -> str:
    if not matches:
        return "Found no tracks in the playlist from the server's top 30 most listened to artists this month."
    header = f"Found **{len(matches)}** tracks from the server's top artists in the playlist:\n\n"
    listing = "\n".join(
        f"{i}. **{track.name}** by {', '.join(track.artists)}" for i, track in enumerate(matches, start=1)
    )
    if len(header) + len(listing) > MAX_CONTENT:
        return header + listing[:1900] + "\n...and more."
    return header + listing


async def _find_work(services: Services, playlist_id: str, task: DeferredTask) -> MessagePayload:
    artists = await server_top_artists(services)
    if not artists:
        raise UpstreamEmptyError("Could not fetch any artist data for the server's registered users.")
    banned = {a.lower() for a in artists}

    tracks = await _playlist_tracks(services, playlist_id)
    matches = [t for t in tracks if any(a.lower() in banned for a in t.artists)]
    return MessagePayload(content=format_matches(matches))


async def handle_league(interaction: Interaction, services: Services) -> InteractionResponse:
    sub = interaction.subcommand
    if sub is None:
        return message("Pick a league subcommand: `banned` or `find`.", ephemeral=True)

    if sub.name == "banned":
        return DeferredThenComplete(partial(_banned_work, services), error_message=LEAGUE_ERROR)

    if sub.name == "find":
        playlist_id = extract_playlist_id(str(interaction.option("playlist") or ""))
        if not playlist_id:
            return message("That doesn't look like a valid Spotify playlist URL.", ephemeral=True)
        return DeferredThenComplete(partial(_find_work, services, playlist_id), error_message=LEAGUE_ERROR)

    return message(f"Unknown league subcommand `{sub.name}`.", ephemeral=True)
