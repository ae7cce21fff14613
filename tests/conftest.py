"""
Shared fixtures: signed interaction payloads, a scripted HTTP transport and a
fully wired ``Services`` container that never touches the network.
"""

import io
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from nacl.signing import SigningKey
from PIL import Image

from orpheus.kv import InMemoryKVStore
from orpheus.services import create_services
from orpheus.types import Interaction

DISCORD_API = "https://discord.test/api/v10"
APP_ID = "app-1"


@pytest.fixture(scope="session")
def signing_key() -> SigningKey:
    return SigningKey.generate()


@pytest.fixture
def config(signing_key) -> Dict[str, Any]:
    return {
        "DISCORD_PUBLIC_KEY": signing_key.verify_key.encode().hex(),
        "DISCORD_APPLICATION_ID": APP_ID,
        "DISCORD_API_BASE": DISCORD_API,
        "LASTFM_API_KEY": "lastfm-key",
        "MUSICBRAINZ_USER_AGENT": "OrpheusTests/1.0 (tests@example.com)",
        "SPOTIFY_CLIENT_ID": "spotify-id",
        "SPOTIFY_CLIENT_SECRET": "spotify-secret",
        "PUBLIC_BASE_URL": "https://orpheus.test",
        "ACK_DEADLINE_S": 3.0,
        "LIVENESS_TIMEOUT_S": 2.5,
        "FOLLOWUP_TOKEN_TTL_S": 5,
        "LEAGUE_CACHE_TTL_S": 3600,
        "PLAYLIST_CACHE_TTL_S": 300,
        "HTTP_MAX_CONNECTIONS": 8,
    }


def interaction_payload(
    name: Optional[str] = None,
    options: Optional[List[Dict[str, Any]]] = None,
    *,
    type: int = 2,
    custom_id: Optional[str] = None,
    user_id: str = "U1",
    guild_id: Optional[str] = "G1",
    interaction_id: str = "1100000000000000000",
    token: str = "tok-1",
) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if name is not None:
        data["name"] = name
    if options is not None:
        data["options"] = options
    if custom_id is not None:
        data["custom_id"] = custom_id
    payload: Dict[str, Any] = {
        "id": interaction_id,
        "type": type,
        "token": token,
        "application_id": APP_ID,
        "data": data,
        "member": {"user": {"id": user_id}},
    }
    if guild_id is not None:
        payload["guild_id"] = guild_id
    return payload


def make_interaction(*args, **kwargs) -> Interaction:
    return Interaction.from_payload(interaction_payload(*args, **kwargs))


def opt(name: str, value: Any, type: int = 3) -> Dict[str, Any]:
    return {"name": name, "type": type, "value": value}


def png_bytes(color=(200, 30, 30), size=(32, 32), mode="RGB") -> bytes:
    out = io.BytesIO()
    Image.new(mode, size, color).save(out, format="PNG")
    return out.getvalue()


Route = Callable[[httpx.Request], httpx.Response]


class ScriptedTransport:
    """Routes requests by (method, host, path prefix) and records every call.

    Unmatched requests answer 404 so a missing stub shows up as "not found"
    rather than as a crash.
    """

    def __init__(self) -> None:
        self.routes: List[Tuple[str, str, str, Route]] = []
        self.requests: List[httpx.Request] = []

    def add(self, method: str, host: str, path: str, route) -> "ScriptedTransport":
        if not callable(route):
            fixed = route
            route = lambda request: fixed  # noqa: E731
        self.routes.append((method.upper(), host, path, route))
        return self

    def json(self, method: str, host: str, path: str, body: Any, status: int = 200) -> "ScriptedTransport":
        return self.add(method, host, path, lambda request: httpx.Response(status, json=body))

    def lastfm(self, bodies: Dict[str, Any]) -> "ScriptedTransport":
        """Answer Last.fm calls by their ``method`` parameter; anything else is "not found"."""

        def route(request: httpx.Request) -> httpx.Response:
            body = bodies.get(request.url.params.get("method"))
            if callable(body):
                body = body(request)
            if body is None:
                return httpx.Response(200, json={"error": 6, "message": "not found"})
            return httpx.Response(200, json=body)

        return self.add("GET", "ws.audioscrobbler.com", "/2.0/", route)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, host, path, route in self.routes:
            if request.method == method and request.url.host == host and request.url.path.startswith(path):
                return route(request)
        return httpx.Response(404, json={"error": "unrouted"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: Optional[str] = None, host: Optional[str] = None) -> List[httpx.Request]:
        return [
            r
            for r in self.requests
            if (method is None or r.method == method) and (host is None or r.url.host == host)
        ]

    def discord_calls(self) -> List[Tuple[str, str]]:
        """(method, path) of every Discord API request, in order."""
        return [(r.method, r.url.path) for r in self.calls(host="discord.test")]

    def lastfm_methods(self) -> List[str]:
        return [r.url.params.get("method") for r in self.calls(host="ws.audioscrobbler.com")]


def discord_json(request: httpx.Request) -> Dict[str, Any]:
    """Decode a Discord request body, whether JSON or multipart ``payload_json``."""
    content_type = request.headers.get("content-type", "")
    body = request.read()
    if content_type.startswith("application/json"):
        return json.loads(body)
    marker = b'name="payload_json"'
    start = body.index(marker) + len(marker)
    start = body.index(b"\r\n\r\n", start) + 4
    end = body.index(b"\r\n--", start)
    return json.loads(body[start:end])


@pytest.fixture
def scripted() -> ScriptedTransport:
    transport = ScriptedTransport()
    transport.add("POST", "discord.test", "/api/v10/interactions/", httpx.Response(204))
    transport.add("PATCH", "discord.test", "/api/v10/webhooks/", httpx.Response(200, json={"id": "m1"}))
    return transport


@pytest_asyncio.fixture
async def services(config, scripted):
    built = create_services(config, transport=scripted.transport(), kv=InMemoryKVStore())
    yield built
    await built.aclose(drain_timeout=5)
