"""
Process-wide collaborators, built once at start-up and handed to every handler.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .deferred import DeferredResponseController, TaskSupervisor
from .discord_api import DiscordInteractionClient
from .http_client import create_http_client
from .kv import KVStore, UserRegistry, create_kv_store
from .providers import (
    ITunesCoverProvider,
    LastFmClient,
    LastFmCoverProvider,
    MusicBrainzCoverProvider,
    SpotifyClient,
)
from .resolver import SourceResolver
from .utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Services:
    config: Dict[str, Any]
    http: httpx.AsyncClient
    kv: KVStore
    users: UserRegistry
    discord: DiscordInteractionClient
    supervisor: TaskSupervisor
    deferred: DeferredResponseController
    lastfm: LastFmClient
    spotify: SpotifyClient
    resolver: SourceResolver

    async def aclose(self, drain_timeout: Optional[float] = None) -> None:
        """Let background work finish (bounded), then release connections."""
        await self.supervisor.drain(drain_timeout)
        await self.http.aclose()
        await self.kv.aclose()
        logger.info("🛑 Services closed", extra={"subsys": "core", "event": "shutdown"})


def create_services(
    config: Dict[str, Any],
    transport: Optional[httpx.AsyncBaseTransport] = None,
    kv: Optional[KVStore] = None,
) -> Services:
    """Wire every collaborator. ``transport``/``kv`` are injection points for tests."""
    http = create_http_client(config, transport=transport)
    kv = kv if kv is not None else create_kv_store(config)

    discord_client = DiscordInteractionClient(http, config.get("DISCORD_API_BASE", "https://discord.com/api/v10"))
    supervisor = TaskSupervisor()
    deferred = DeferredResponseController(
        discord_client, supervisor, ack_deadline=float(config.get("ACK_DEADLINE_S", 3.0))
    )

    lastfm_kwargs = {}
    if config.get("LASTFM_API_BASE"):
        lastfm_kwargs["api_base"] = config["LASTFM_API_BASE"]
    lastfm = LastFmClient(http, config.get("LASTFM_API_KEY") or "", **lastfm_kwargs)

    itunes_kwargs = {}
    if config.get("ITUNES_SEARCH_URL"):
        itunes_kwargs["search_url"] = config["ITUNES_SEARCH_URL"]

    # Precedence order for sequential resolution
    providers = [
        LastFmCoverProvider(lastfm),
        ITunesCoverProvider(http, **itunes_kwargs),
        MusicBrainzCoverProvider(http, config.get("MUSICBRAINZ_USER_AGENT")),
    ]
    resolver = SourceResolver(
        http,
        providers,
        lastfm,
        liveness_timeout=float(config.get("LIVENESS_TIMEOUT_S", 2.5)),
    )

    spotify = SpotifyClient(http, config.get("SPOTIFY_CLIENT_ID"), config.get("SPOTIFY_CLIENT_SECRET"))

    return Services(
        config=config,
        http=http,
        kv=kv,
        users=UserRegistry(kv),
        discord=discord_client,
        supervisor=supervisor,
        deferred=deferred,
        lastfm=lastfm,
        spotify=spotify,
        resolver=resolver,
    )
