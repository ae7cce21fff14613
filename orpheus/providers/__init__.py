"""
Metadata and cover art providers.
"""

from .base import CoverCandidate, CoverProvider, ProviderSource
from .itunes import ITunesCoverProvider
from .lastfm import LastFmClient, LastFmCoverProvider
from .musicbrainz import MusicBrainzCoverProvider
from .spotify import SpotifyClient

__all__ = [
    "CoverCandidate",
    "CoverProvider",
    "ProviderSource",
    "ITunesCoverProvider",
    "LastFmClient",
    "LastFmCoverProvider",
    "MusicBrainzCoverProvider",
    "SpotifyClient",
]
