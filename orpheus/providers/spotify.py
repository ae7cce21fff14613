"""
Spotify Web API: client-credentials token and playlist track listing.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

import httpx

from ..exceptions import APIError, UpstreamEmptyError
from ..utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TOKEN_URL = "https://accounts.spotify.com/api/token"
DEFAULT_API_BASE = "https://api.spotify.com/v1"

_PLAYLIST_ID_RE = re.compile(r"playlist/([a-zA-Z0-9]+)")


def extract_playlist_id(url: str) -> Optional[str]:
    """Playlist id from an ``open.spotify.com/playlist/<id>`` style URL."""
    match = _PLAYLIST_ID_RE.search(url or "")
    return match.group(1) if match else None


@dataclass(frozen=True)
class PlaylistTrack:
    name: str
    artists: Tuple[str, ...]

    def to_json(self) -> dict:
        return {"name": self.name, "artists": list(self.artists)}

    @classmethod
    def from_json(cls, data: dict) -> "PlaylistTrack":
        return cls(name=data.get("name", ""), artists=tuple(data.get("artists") or ()))


class SpotifyClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        client_id: Optional[str],
        client_secret: Optional[str],
        token_url: str = DEFAULT_TOKEN_URL,
        api_base: str = DEFAULT_API_BASE,
    ):
        self.http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.api_base = api_base.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def access_token(self) -> str:
        if not self.configured:
            raise UpstreamEmptyError("Spotify API credentials are not configured on this bot.")
        try:
            response = await self.http.post(
                self.token_url,
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
            )
        except httpx.HTTPError as e:
            raise APIError(f"Spotify token request failed: {e}") from e
        if not response.is_success:
            raise APIError(f"Spotify token request failed with HTTP {response.status_code}")
        try:
            return response.json()["access_token"]
        except (ValueError, KeyError) as e:
            raise APIError("Spotify token response had no access_token") from e

    async def playlist_tracks(self, playlist_id: str) -> List[PlaylistTrack]:
        """Every track of a playlist, following ``next`` page links."""
        token = await self.access_token()
        headers = {"Authorization": f"Bearer {token}"}
        url: Optional[str] = f"{self.api_base}/playlists/{playlist_id}/tracks"
        params: Optional[dict] = {"limit": 50, "fields": "items(track(name,artists(name))),next"}

        tracks: List[PlaylistTrack] = []
        while url:
            try:
                response = await self.http.get(url, params=params, headers=headers)
            except httpx.HTTPError as e:
                raise APIError(f"Spotify playlist request failed: {e}") from e
            if response.status_code == 404:
                raise UpstreamEmptyError("Spotify playlist not found or is private.")
            if not response.is_success:
                raise APIError(f"Spotify playlist request failed with HTTP {response.status_code}")
            try:
                data = response.json()
            except ValueError as e:
                raise APIError("Spotify playlist response was not JSON") from e

            for item in data.get("items") or []:
                track = (item or {}).get("track")
                # Local files and removed tracks come back as null
                if not track:
                    continue
                tracks.append(
                    PlaylistTrack(
                        name=track.get("name", ""),
                        artists=tuple(a.get("name", "") for a in track.get("artists") or ()),
                    )
                )
            # ``next`` already carries the query string
            url, params = data.get("next"), None

        logger.debug(
            f"Fetched {len(tracks)} tracks from playlist {playlist_id}",
            extra={"subsys": "spotify", "event": "playlist"},
        )
        return tracks
