"""
MusicBrainz release search + Cover Art Archive: the archival registry.

MusicBrainz rejects anonymous clients, so the provider stays silent (returns
``None`` without I/O) unless a ``User-Agent`` is configured.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ..exceptions import APIError
from ..utils.logging import get_logger
from .base import ProviderSource

logger = get_logger(__name__)

DEFAULT_SEARCH_URL = "https://musicbrainz.org/ws/2/release/"
DEFAULT_CAA_BASE = "https://coverartarchive.org/release"


class MusicBrainzCoverProvider:
    source = ProviderSource.COVER_ART_ARCHIVE

    def __init__(
        self,
        http: httpx.AsyncClient,
        user_agent: Optional[str],
        search_url: str = DEFAULT_SEARCH_URL,
        caa_base: str = DEFAULT_CAA_BASE,
    ):
        self.http = http
        self.user_agent = user_agent
        self.search_url = search_url
        self.caa_base = caa_base.rstrip("/")

    async def _get_json(self, url: str, **kwargs: Any) -> Optional[Dict[str, Any]]:
        try:
            response = await self.http.get(url, **kwargs)
        except httpx.HTTPError as e:
            raise APIError(f"{url} unreachable: {e}") from e
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise APIError(f"{url} failed with HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"{url} returned a non-JSON body") from e

    async def release_id(self, artist: str, album: str) -> Optional[str]:
        data = await self._get_json(
            self.search_url,
            params={"query": f"release:{album} AND artist:{artist}", "fmt": "json"},
            headers={"User-Agent": self.user_agent},
        )
        releases = (data or {}).get("releases") or []
        return releases[0].get("id") if releases else None

    async def find_cover(self, artist: str, album: str) -> Optional[str]:
        if not self.user_agent:
            logger.debug("MUSICBRAINZ_USER_AGENT unset; skipping archival lookup", extra={"subsys": "resolver"})
            return None

        release = await self.release_id(artist, album)
        if not release:
            return None

        # 404 here just means nobody uploaded art for the release
        data = await self._get_json(f"{self.caa_base}/{release}")
        for image in (data or {}).get("images") or []:
            if image.get("front"):
                return image.get("image")
        return None
