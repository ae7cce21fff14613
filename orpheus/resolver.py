"""
Cover art resolution across Last.fm, iTunes and MusicBrainz / Cover Art Archive.

Two strategies share one provider list:

* ``SEQUENTIAL`` (default): providers in precedence order, stop at the first
  candidate that passes a liveness probe. Fewest external calls.
* ``BEST`` (``hq`` option): query every provider at once, probe every
  candidate, rank the survivors. Archival art always wins; the rest are
  ordered by the pixel size embedded in the URL.

Provider failures never reach the caller: they are logged here and count as
"nothing found".
"""

from __future__ import annotations

import asyncio
import re
import unicodedata
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Optional, Sequence, Tuple

import httpx

from .exceptions import APIError
from .providers.base import CoverCandidate, CoverProvider, ProviderSource
from .providers.lastfm import PLACEHOLDER_URL, LastFmClient
from .utils.logging import get_logger

logger = get_logger(__name__)

ARCHIVAL_SCORE = 1_000_000_000
UNSCORED = 1

_DIMENSION_RE = re.compile(r"(\d{2,5})x(\d{2,5})")
_SIZE_SEGMENT_RE = re.compile(r"/\d+x\d+/")


class ResolveMode(str, Enum):
    SEQUENTIAL = "sequential"
    BEST = "best"

    @classmethod
    def from_flag(cls, high_quality: Optional[bool]) -> "ResolveMode":
        return cls.BEST if high_quality else cls.SEQUENTIAL


def score_url(url: str, source: ProviderSource) -> int:
    """Quality score: archival constant, else pixel area from a ``WxH`` token."""
    if source is ProviderSource.COVER_ART_ARCHIVE:
        return ARCHIVAL_SCORE
    match = _DIMENSION_RE.search(url)
    if not match:
        return UNSCORED
    return int(match.group(1)) * int(match.group(2))


def strip_diacritics(text: str) -> str:
    """``"Déjà Vu"`` -> ``"Deja Vu"`` (NFD, combining marks removed)."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def original_size_url(url: str) -> str:
    """Drop Last.fm's ``/300x300/`` resize segment so the CDN serves the upload as-is."""
    return _SIZE_SEGMENT_RE.sub("/", url, count=1)


@dataclass(frozen=True)
class CoverSearchResult:
    query: str
    attempted: Tuple[str, ...]
    url: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.url is not None

    def failure_message(self) -> str:
        message = f"Could not find album art for `{self.query}`."
        others = [q for q in self.attempted if q != self.query]
        if others:
            message += " (also tried " + ", ".join(f"`{q}`" for q in others) + ")"
        return message


class SourceResolver:
    """Selects one usable cover URL for an artist/album pair."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        providers: Sequence[CoverProvider],
        lastfm: LastFmClient,
        liveness_timeout: float = 2.5,
        placeholders: FrozenSet[str] = frozenset({PLACEHOLDER_URL}),
    ):
        self.http = http
        self.providers = list(providers)
        self.lastfm = lastfm
        self.liveness_timeout = liveness_timeout
        self.placeholders = placeholders

    async def is_usable(self, url: Optional[str]) -> bool:
        """HEAD probe. Fail-closed: placeholders, non-2xx, errors and timeouts are unusable."""
        if not url or url in self.placeholders:
            return False
        try:
            response = await self.http.head(url, timeout=self.liveness_timeout)
        except httpx.HTTPError as e:
            logger.debug(f"Liveness probe failed for {url}: {e!r}", extra={"subsys": "resolver", "event": "probe"})
            return False
        return response.is_success

    async def _lookup(
        self, provider: CoverProvider, artist: str, album: str, primary_url: Optional[str]
    ) -> Optional[str]:
        if provider.source is ProviderSource.LASTFM and primary_url is not None:
            return primary_url
        try:
            return await provider.find_cover(artist, album)
        except (APIError, httpx.HTTPError) as e:
            logger.warning(
                f"⚠ {provider.source.value} lookup failed for {artist} - {album}: {e}",
                extra={"subsys": "resolver", "event": "provider_error"},
            )
            return None
        except Exception as e:
            logger.error(
                f"✖ {provider.source.value} lookup crashed for {artist} - {album}: {e!r}",
                exc_info=True,
                extra={"subsys": "resolver", "event": "provider_crash"},
            )
            return None

    async def resolve_sequential(self, artist: str, album: str, primary_url: Optional[str] = None) -> Optional[str]:
        for provider in self.providers:
            url = await self._lookup(provider, artist, album, primary_url)
            if await self.is_usable(url):
                logger.debug(
                    f"Resolved {artist} - {album} via {provider.source.value}",
                    extra={"subsys": "resolver", "event": "resolved"},
                )
                return url
        logger.info(f"🔍 No usable cover for {artist} - {album}", extra={"subsys": "resolver", "event": "exhausted"})
        return None

    async def candidates(self, artist: str, album: str, primary_url: Optional[str] = None) -> List[CoverCandidate]:
        """Every usable candidate, best first."""
        lookups = await asyncio.gather(
            *(self._lookup(p, artist, album, primary_url) for p in self.providers),
            return_exceptions=True,
        )
        found: List[CoverCandidate] = []
        for provider, result in zip(self.providers, lookups):
            if isinstance(result, BaseException):
                logger.error(
                    f"✖ {provider.source.value} lookup crashed: {result!r}",
                    extra={"subsys": "resolver", "event": "provider_crash"},
                )
                continue
            if result:
                found.append(CoverCandidate(url=result, source=provider.source, score=score_url(result, provider.source)))

        probes = await asyncio.gather(*(self.is_usable(c.url) for c in found))
        usable = [c for c, ok in zip(found, probes) if ok]
        # sorted() is stable, so equal scores keep provider order
        return sorted(usable, key=lambda c: c.score, reverse=True)

    async def resolve_best(self, artist: str, album: str, primary_url: Optional[str] = None) -> Optional[str]:
        ranked = await self.candidates(artist, album, primary_url)
        if not ranked:
            logger.info(f"🔍 No usable cover for {artist} - {album}", extra={"subsys": "resolver", "event": "exhausted"})
            return None
        logger.debug(
            "Ranked covers: " + ", ".join(f"{c.source.value}={c.score}" for c in ranked),
            extra={"subsys": "resolver", "event": "ranked"},
        )
        return ranked[0].url

    async def resolve(
        self,
        artist: str,
        album: str,
        primary_url: Optional[str] = None,
        mode: ResolveMode = ResolveMode.SEQUENTIAL,
    ) -> Optional[str]:
        if mode is ResolveMode.BEST:
            return await self.resolve_best(artist, album, primary_url)
        return await self.resolve_sequential(artist, album, primary_url)

    async def search(self, query: str, mode: ResolveMode = ResolveMode.SEQUENTIAL) -> CoverSearchResult:
        """Free-text album search; retries once without diacritics."""
        attempted: List[str] = []
        for candidate_query in dict.fromkeys([query, strip_diacritics(query)]):
            attempted.append(candidate_query)
            try:
                match = await self.lastfm.search_album(candidate_query)
            except APIError as e:
                logger.warning(f"⚠ Album search failed for {candidate_query!r}: {e}", extra={"subsys": "resolver"})
                continue
            if match is None:
                continue

            url = await self.resolve(match.artist, match.name, primary_url=match.image_url, mode=mode)
            if url:
                return CoverSearchResult(
                    query=query,
                    attempted=tuple(attempted),
                    url=url,
                    artist=match.artist,
                    album=match.name,
                )

        return CoverSearchResult(query=query, attempted=tuple(attempted))
