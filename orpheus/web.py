"""
aiohttp application: Discord's interactions endpoint plus two helper routes.

    POST /api/interactions   signed interaction payloads
    GET  /api/recolor-icon   Last.fm icon tinted to ?color=rrggbb
    GET  /health             liveness + background task count
"""
from __future__ import annotations

import asyncio
from typing import Optional

import httpx
from aiohttp import web
from PIL import UnidentifiedImageError

from .dispatcher import CommandDispatcher
from .http_client import fetch_bytes
from .providers.lastfm import BRAND_COLOR, ICON_URL
from .render import parse_hex_color, tint_icon
from .services import Services
from .utils.logging import get_logger
from .verify import SIGNATURE_HEADER, TIMESTAMP_HEADER, InteractionVerifier

logger = get_logger(__name__)

SERVICES_KEY = web.AppKey("services", Services)
VERIFIER_KEY = web.AppKey("verifier", InteractionVerifier)
DISPATCHER_KEY = web.AppKey("dispatcher", CommandDispatcher)

ICON_CACHE_CONTROL = "public, immutable, no-transform, s-maxage=31536000, max-age=31536000"


async def interactions(request: web.Request) -> web.Response:
    raw_body = await request.read()
    result = request.app[VERIFIER_KEY].verify(
        raw_body,
        request.headers.get(SIGNATURE_HEADER),
        request.headers.get(TIMESTAMP_HEADER),
    )
    if not result.valid or result.interaction is None:
        return web.Response(status=401, text="Invalid request signature")

    outcome = await request.app[DISPATCHER_KEY].dispatch(result.interaction)
    if outcome.body is None:
        return web.Response(status=outcome.status)
    return web.json_response(outcome.body, status=outcome.status)


async def recolor_icon(request: web.Request) -> web.Response:
    services = request.app[SERVICES_KEY]
    color = parse_hex_color(request.query.get("color"), BRAND_COLOR)
    try:
        icon = await fetch_bytes(services.http, ICON_URL)
    except httpx.HTTPError as e:
        logger.error(f"✖ Could not fetch the Last.fm icon: {e}", extra={"subsys": "web", "event": "recolor_icon"})
        return web.Response(status=502, text="Error generating image")

    try:
        png = await asyncio.to_thread(tint_icon, icon, color)
    except (UnidentifiedImageError, OSError) as e:
        logger.error(f"✖ Could not tint the Last.fm icon: {e}", extra={"subsys": "web", "event": "recolor_icon"})
        return web.Response(status=502, text="Error generating image")
    return web.Response(body=png, content_type="image/png", headers={"Cache-Control": ICON_CACHE_CONTROL})


async def health(request: web.Request) -> web.Response:
    services = request.app[SERVICES_KEY]
    return web.json_response({"status": "ok", "active_tasks": services.supervisor.active_count})


async def _close_services(app: web.Application) -> None:
    services = app[SERVICES_KEY]
    await services.aclose(drain_timeout=float(services.config.get("FOLLOWUP_TOKEN_TTL_S", 900)))


def create_app(services: Services, verifier: Optional[InteractionVerifier] = None) -> web.Application:
    app = web.Application()
    app[SERVICES_KEY] = services
    app[VERIFIER_KEY] = verifier or InteractionVerifier(services.config["DISCORD_PUBLIC_KEY"])
    app[DISPATCHER_KEY] = CommandDispatcher(services)

    app.router.add_post("/api/interactions", interactions)
    app.router.add_get("/api/recolor-icon", recolor_icon)
    app.router.add_get("/health", health)

    app.on_cleanup.append(_close_services)
    logger.debug("🌐 Web application assembled", extra={"subsys": "web"})
    return app
