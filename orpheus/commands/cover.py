"""
/cover and /rc: album art for a search query or for what a user is playing.

``/cover`` answers with an embed pointing at the art, ``/rc`` uploads the image
itself as ``cover.png``.
"""
from __future__ import annotations

from functools import partial
from typing import Optional, Tuple

from ..deferred import DeferredTask
from ..exceptions import NotRegisteredError, UpstreamEmptyError
from ..http_client import fetch_bytes
from ..resolver import ResolveMode, original_size_url
from ..services import Services
from ..types import Attachment, DeferredThenComplete, Interaction, InteractionResponse, MessagePayload
from .common import lastfm_embed, require_username

COVER_ERROR = "Sorry, an unexpected error occurred."
RC_ERROR = "An error occurred while processing your request."


async def _search(services: Services, query: str, mode: ResolveMode) -> Tuple[str, str, str]:
    result = await services.resolver.search(query, mode)
    if not result.found:
        raise UpstreamEmptyError(result.failure_message())
    return result.url, result.artist or "", result.album or query


async def _current_track(
    services: Services, username: str, mode: ResolveMode, require_now_playing: bool
) -> Tuple[str, str, str]:
    track = await services.lastfm.recent_track(username)
    if track is None:
        raise UpstreamEmptyError(
            f"Could not find any recent tracks for user `{username}`. "
            "Make sure the profile is public and the username is correct."
        )
    if require_now_playing and not track.now_playing:
        raise UpstreamEmptyError(f"`{username}` is not listening to anything right now.")

    url = await services.resolver.resolve(
        track.artist, track.album, primary_url=track.images.pick("extralarge"), mode=mode
    )
    if not url:
        raise UpstreamEmptyError(f"Could not find album art for **{track.album or track.name}** by **{track.artist}**.")
    return url, track.artist, track.album or track.name


async def _cover_search_work(services: Services, query: str, mode: ResolveMode, task: DeferredTask) -> MessagePayload:
    url, artist, album = await _search(services, query, mode)
    return MessagePayload(embeds=[lastfm_embed(album, artist, image_url=original_size_url(url))])


async def _cover_user_work(services: Services, username: str, mode: ResolveMode, task: DeferredTask) -> MessagePayload:
    url, artist, album = await _current_track(services, username, mode, require_now_playing=True)
    embed = lastfm_embed(album, artist, image_url=original_size_url(url), footer=f"Currently listening: {username}")
    return MessagePayload(embeds=[embed])


async def handle_cover(interaction: Interaction, services: Services) -> InteractionResponse:
    mode = ResolveMode.from_flag(interaction.option("hq"))
    query: Optional[str] = interaction.option("search")
    if query:
        return DeferredThenComplete(partial(_cover_search_work, services, query, mode), error_message=COVER_ERROR)

    username = await require_username(interaction, services, "cover")
    return DeferredThenComplete(partial(_cover_user_work, services, username, mode), error_message=COVER_ERROR)


async def _upload(services: Services, url: str) -> MessagePayload:
    data = await fetch_bytes(services.http, original_size_url(url))
    return MessagePayload(attachment=Attachment("cover.png", data))


async def _rc_search_work(services: Services, query: str, mode: ResolveMode, task: DeferredTask) -> MessagePayload:
    url, _, _ = await _search(services, query, mode)
    return await _upload(services, url)


async def _rc_user_work(services: Services, username: str, mode: ResolveMode, task: DeferredTask) -> MessagePayload:
    url, _, _ = await _current_track(services, username, mode, require_now_playing=False)
    return await _upload(services, url)


async def handle_rc(interaction: Interaction, services: Services) -> InteractionResponse:
    mode = ResolveMode.from_flag(interaction.option("hq"))
    query: Optional[str] = interaction.option("search")
    if query:
        return DeferredThenComplete(partial(_rc_search_work, services, query, mode), error_message=RC_ERROR)

    username = await services.users.lookup(interaction.user_id)
    if not username:
        raise NotRegisteredError(
            "Please register your Last.fm username with `/register` first, "
            "or use the `/rc search:<album name>` option."
        )
    return DeferredThenComplete(partial(_rc_user_work, services, username, mode), error_message=RC_ERROR)
