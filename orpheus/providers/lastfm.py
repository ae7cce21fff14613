"""
Last.fm web service client (ws.audioscrobbler.com/2.0).

Last.fm reports "no such user / album" as a JSON body carrying an ``error``
code, sometimes with a 200 status. Those come back as ``None`` / empty
results. Transport failures, unreadable answers, rate limiting (429) and
server errors raise ``APIError``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..exceptions import APIError
from ..utils.logging import get_logger
from .base import ProviderSource

logger = get_logger(__name__)

DEFAULT_API_BASE = "https://ws.audioscrobbler.com/2.0/"

# Grey star Last.fm serves when an album has no artwork
PLACEHOLDER_HASH = "2a96cbd8b46e442fc41c2b86b821562f"
PLACEHOLDER_URL = f"https://lastfm.freetls.fastly.net/i/u/300x300/{PLACEHOLDER_HASH}.png"

ICON_URL = "https://www.last.fm/static/images/lastfm_avatar_twitter.52a5d69a85ac.png"
BRAND_COLOR = 0xD51007


def _as_list(value: Any) -> List[Any]:
    # Single results arrive as a bare object instead of a one-element list
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _images(raw: Any) -> Dict[str, str]:
    images: Dict[str, str] = {}
    for img in _as_list(raw):
        if isinstance(img, dict) and img.get("#text"):
            images[img.get("size", "")] = img["#text"]
    return images


def _playcount(raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class ImageSet:
    """Size name -> URL, as Last.fm lists them (small ... mega)."""

    by_size: Dict[str, str] = field(default_factory=dict)

    def pick(self, *sizes: str) -> Optional[str]:
        """First present size in ``sizes``, else the largest listed image."""
        for size in sizes:
            if self.by_size.get(size):
                return self.by_size[size]
        if self.by_size:
            return list(self.by_size.values())[-1]
        return None


@dataclass(frozen=True)
class RecentTrack:
    name: str
    artist: str
    album: str
    images: ImageSet
    now_playing: bool


@dataclass(frozen=True)
class TopAlbum:
    name: str
    artist: str
    playcount: int
    images: ImageSet

    @property
    def label(self) -> str:
        return f"{self.artist} - {self.name}"


@dataclass(frozen=True)
class TopArtist:
    name: str
    playcount: int


@dataclass(frozen=True)
class AlbumMatch:
    name: str
    artist: str
    image_url: Optional[str]


class LastFmClient:
    def __init__(self, http: httpx.AsyncClient, api_key: str, api_base: str = DEFAULT_API_BASE):
        self.http = http
        self.api_key = api_key
        self.api_base = api_base

    async def _call(self, method: str, **params: Any) -> Optional[Dict[str, Any]]:
        query = {"method": method, "api_key": self.api_key, "format": "json", **params}
        try:
            response = await self.http.get(self.api_base, params=query)
        except httpx.HTTPError as e:
            raise APIError(f"Last.fm {method} unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise APIError(f"Last.fm {method} returned HTTP {response.status_code} with a non-JSON body") from e

        if response.status_code == 429 or response.is_server_error:
            raise APIError(f"Last.fm {method} unavailable (HTTP {response.status_code})")
        if isinstance(data, dict) and data.get("error"):
            logger.debug(
                f"Last.fm {method} error {data.get('error')}: {data.get('message')}",
                extra={"subsys": "lastfm", "event": "api_error"},
            )
            return None
        if not response.is_success or not isinstance(data, dict):
            raise APIError(f"Last.fm {method} failed with HTTP {response.status_code}")
        return data

    async def recent_track(self, username: str) -> Optional[RecentTrack]:
        """Most recent scrobble (or the track playing right now)."""
        data = await self._call("user.getrecenttracks", user=username, limit=1)
        tracks = _as_list(((data or {}).get("recenttracks") or {}).get("track"))
        if not tracks:
            return None
        track = tracks[0]
        return RecentTrack(
            name=track.get("name", ""),
            artist=(track.get("artist") or {}).get("#text", ""),
            album=(track.get("album") or {}).get("#text", ""),
            images=ImageSet(_images(track.get("image"))),
            now_playing=bool((track.get("@attr") or {}).get("nowplaying")),
        )

    async def top_albums(self, username: str, period: str = "7day", limit: int = 9) -> List[TopAlbum]:
        data = await self._call("user.gettopalbums", user=username, period=period, limit=limit)
        albums = _as_list(((data or {}).get("topalbums") or {}).get("album"))
        return [
            TopAlbum(
                name=a.get("name", ""),
                artist=(a.get("artist") or {}).get("name", ""),
                playcount=_playcount(a.get("playcount")),
                images=ImageSet(_images(a.get("image"))),
            )
            for a in albums
        ]

    async def top_artists(self, username: str, period: str = "1month", limit: int = 50) -> List[TopArtist]:
        data = await self._call("user.gettopartists", user=username, period=period, limit=limit)
        artists = _as_list(((data or {}).get("topartists") or {}).get("artist"))
        return [TopArtist(name=a.get("name", ""), playcount=_playcount(a.get("playcount"))) for a in artists]

    async def search_album(self, query: str) -> Optional[AlbumMatch]:
        data = await self._call("album.search", album=query, limit=1)
        matches = _as_list((((data or {}).get("results") or {}).get("albummatches") or {}).get("album"))
        if not matches:
            return None
        album = matches[0]
        return AlbumMatch(
            name=album.get("name", ""),
            artist=album.get("artist", ""),
            image_url=ImageSet(_images(album.get("image"))).pick("extralarge"),
        )

    async def album_cover(self, artist: str, album: str) -> Optional[str]:
        data = await self._call("album.getinfo", artist=artist, album=album, autocorrect=1)
        info = (data or {}).get("album") or {}
        return ImageSet(_images(info.get("image"))).pick("mega", "extralarge")

    async def track_duration_ms(self, artist: str, track: str) -> Optional[int]:
        data = await self._call("track.getInfo", artist=artist, track=track)
        duration = _playcount(((data or {}).get("track") or {}).get("duration"))
        return duration or None


class LastFmCoverProvider:
    """Primary provider: the album's own Last.fm artwork."""

    source = ProviderSource.LASTFM

    def __init__(self, client: LastFmClient):
        self.client = client

    async def find_cover(self, artist: str, album: str) -> Optional[str]:
        if not artist or not album:
            return None
        return await self.client.album_cover(artist, album)
