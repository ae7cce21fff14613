"""
Base interfaces and types for cover art providers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol


class ProviderSource(str, Enum):
    """Where a candidate came from, in default precedence order."""

    LASTFM = "lastfm"  # primary metadata service
    ITUNES = "itunes"  # secondary catalog
    COVER_ART_ARCHIVE = "coverartarchive"  # archival registry


@dataclass(frozen=True)
class CoverCandidate:
    url: str
    source: ProviderSource
    score: int = 0


class CoverProvider(Protocol):
    source: ProviderSource

    async def find_cover(self, artist: str, album: str) -> Optional[str]:
        """Return a candidate URL, ``None`` when nothing matched.

        Transport failures, non-2xx answers and malformed bodies raise ``APIError``.
        """
        ...
