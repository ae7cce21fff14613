"""
iTunes Search API: secondary catalog for album artwork.
"""
from __future__ import annotations

from typing import Optional

import httpx

from ..exceptions import APIError
from ..utils.logging import get_logger
from .base import ProviderSource

logger = get_logger(__name__)

DEFAULT_SEARCH_URL = "https://itunes.apple.com/search"


class ITunesCoverProvider:
    source = ProviderSource.ITUNES

    def __init__(self, http: httpx.AsyncClient, search_url: str = DEFAULT_SEARCH_URL):
        self.http = http
        self.search_url = search_url

    async def find_cover(self, artist: str, album: str) -> Optional[str]:
        params = {"term": f"{artist} {album}".strip(), "entity": "album", "limit": 5}
        try:
            response = await self.http.get(self.search_url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise APIError(f"iTunes search failed: {e}") from e
        except ValueError as e:
            raise APIError("iTunes search returned a non-JSON body") from e

        results = data.get("results") or []
        if not results:
            return None

        # Exact (case-insensitive) album title wins, else the catalog's top hit
        wanted = album.lower()
        best = next(
            (r for r in results if (r.get("collectionName") or "").lower() == wanted),
            results[0],
        )
        artwork = best.get("artworkUrl100")
        if not artwork:
            return None
        # 100x100 is only the thumbnail the API advertises; the CDN serves larger renditions
        return artwork.replace("100x100", "1000x1000")
