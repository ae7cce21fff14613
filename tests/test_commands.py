"""
Slash command behaviour end to end: handler -> dispatcher -> Discord calls.
"""

import httpx
import pytest

from conftest import discord_json, make_interaction, opt, png_bytes
from orpheus.commands import COMMAND_DEFINITIONS, COMMANDS
from orpheus.commands import countdown, fm
from orpheus.commands.chart import INVALID_SIZE
from orpheus.commands.common import parse_period, parse_size
from orpheus.commands.fm import format_duration
from orpheus.dispatcher import CommandDispatcher
from orpheus.types import EPHEMERAL

ART = "https://lastfm.freetls.fastly.net/i/u/300x300/art.png"


def _recent(now_playing=True, image=ART):
    track = {
        "name": "Come Together",
        "artist": {"#text": "The Beatles"},
        "album": {"#text": "Abbey Road"},
        "image": [{"size": "large", "#text": image}, {"size": "extralarge", "#text": image}],
    }
    if now_playing:
        track["@attr"] = {"nowplaying": "true"}
    return {"recenttracks": {"track": [track]}}


def _albums(*entries):
    return {
        "topalbums": {
            "album": [
                {
                    "name": name,
                    "artist": {"name": artist},
                    "playcount": str(plays),
                    "image": [{"size": "extralarge", "#text": f"https://img.test/{artist}-{name}.png"}],
                }
                for artist, name, plays in entries
            ]
        }
    }


def _by_user(bodies):
    return lambda request: bodies.get(request.url.params.get("user"))


async def _run(services, interaction):
    result = await CommandDispatcher(services).dispatch(interaction)
    await services.supervisor.drain(timeout=5)
    return result


def _final_edit(scripted):
    return scripted.calls("PATCH", "discord.test")[-1]


# --- registration and helpers ------------------------------------------------


def test_every_command_has_a_definition():
    assert {d["name"] for d in COMMAND_DEFINITIONS} == set(COMMANDS)


def test_parse_size_and_period():
    assert parse_size(None) == (3, 3)
    assert parse_size("4x5") == (4, 5)
    assert parse_size("10x10") == (10, 10)
    assert parse_size("11x3") is None
    assert parse_size("0x3") is None
    assert parse_size("big") is None
    assert parse_period("overall") == "overall"
    assert parse_period("forever") == "7day"


def test_format_duration():
    assert format_duration(259000) == "4:19"
    assert format_duration(61000) == "1:01"


@pytest.mark.asyncio
async def test_register_saves_username(services):
    result = await _run(services, make_interaction("register", [opt("username", "  alice  ")]))

    assert result.body["data"]["content"] == "✅ Success! Your Last.fm username has been saved as `alice`."
    assert result.body["data"]["flags"] == EPHEMERAL
    assert await services.users.lookup("U1") == "alice"


# --- /cover and /rc ------------------------------------------------------------


@pytest.mark.asyncio
async def test_cover_for_registered_user_requires_now_playing(services, scripted):
    await services.users.register("U1", "alice")
    scripted.lastfm({"user.getrecenttracks": _recent(now_playing=False)})

    await _run(services, make_interaction("cover"))

    assert discord_json(_final_edit(scripted))["content"] == "`alice` is not listening to anything right now."


@pytest.mark.asyncio
async def test_cover_for_now_playing_track(services, scripted):
    await services.users.register("U1", "alice")
    scripted.lastfm({"user.getrecenttracks": _recent()})
    scripted.add("HEAD", "lastfm.freetls.fastly.net", "/", httpx.Response(200))

    await _run(services, make_interaction("cover"))

    embed = discord_json(_final_edit(scripted))["embeds"][0]
    assert embed["title"] == "Abbey Road"
    assert embed["image"]["url"] == "https://lastfm.freetls.fastly.net/i/u/art.png"
    assert embed["footer"]["text"] == "Currently listening: alice"


@pytest.mark.asyncio
async def test_rc_uploads_original_size_cover(services, scripted):
    await services.users.register("U1", "alice")
    scripted.lastfm({"user.getrecenttracks": _recent(now_playing=False)})
    scripted.add("HEAD", "lastfm.freetls.fastly.net", "/", httpx.Response(200))
    scripted.add("GET", "lastfm.freetls.fastly.net", "/i/u/art.png", httpx.Response(200, content=png_bytes()))

    await _run(services, make_interaction("rc"))

    edit = _final_edit(scripted)
    assert discord_json(edit)["attachments"] == [{"id": 0, "filename": "cover.png"}]
    assert b'filename="cover.png"' in edit.read()


@pytest.mark.asyncio
async def test_rc_without_registration_or_search(services, scripted):
    result = await _run(services, make_interaction("rc"))

    assert "/rc search:<album name>" in result.body["data"]["content"]
    assert scripted.requests == []


# --- /fm -------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_fm_card_uses_art_colour_and_duration(services, scripted):
    scripted.lastfm({"user.getrecenttracks": _recent(), "track.getInfo": {"track": {"duration": "259000"}}})
    scripted.add("GET", "lastfm.freetls.fastly.net", "/", httpx.Response(200, content=png_bytes((200, 30, 30))))

    await _run(services, make_interaction("fm", [opt("user", "bob")]))

    embed = discord_json(_final_edit(scripted))["embeds"][0]
    assert embed["title"] == "▶ Come Together"
    assert embed["description"] == "-# ⏱ (4:19)"
    assert embed["thumbnail"]["url"] == ART
    assert [f["value"] for f in embed["fields"]] == ["-# **The Beatles**", "●", "-# **Abbey Road**"]
    assert embed["footer"]["text"] == "Currently listening: bob"
    assert embed["footer"]["icon_url"] == f"https://orpheus.test/api/recolor-icon?color={embed['color']:06x}"


@pytest.mark.asyncio
async def test_fm_keeps_a_pure_black_accent(services, scripted, monkeypatch):
    monkeypatch.setattr(fm, "dominant_color", lambda data: 0x000000)
    scripted.lastfm({"user.getrecenttracks": _recent(), "track.getInfo": {"track": {"duration": "0"}}})
    scripted.add("GET", "lastfm.freetls.fastly.net", "/", httpx.Response(200, content=png_bytes((0, 0, 0))))

    await _run(services, make_interaction("fm", [opt("user", "bob")]))

    embed = discord_json(_final_edit(scripted))["embeds"][0]
    assert embed["footer"]["icon_url"] == "https://orpheus.test/api/recolor-icon?color=000000"
    assert embed.get("color", 0) == 0


@pytest.mark.asyncio
async def test_fm_during_lastfm_outage_shows_generic_error(services, scripted):
    scripted.add(
        "GET",
        "ws.audioscrobbler.com",
        "/",
        httpx.Response(503, json={"error": 16, "message": "There was a temporary error processing your request."}),
    )

    await _run(services, make_interaction("fm", [opt("user", "bob")]))

    assert discord_json(_final_edit(scripted))["content"] == "Sorry, an unexpected error occurred."


@pytest.mark.asyncio
async def test_fm_without_registration_is_private(services, scripted):
    result = await _run(services, make_interaction("fm"))

    assert "/fm user: <username>" in result.body["data"]["content"]
    assert result.body["data"]["flags"] == EPHEMERAL
    assert scripted.requests == []


# --- /chart and /serverchart -----------------------------------------------------


@pytest.mark.asyncio
async def test_chart_rejects_bad_size_immediately(services, scripted):
    result = await _run(services, make_interaction("chart", [opt("size", "12x12"), opt("user", "alice")]))

    assert result.body["data"]["content"] == INVALID_SIZE
    assert scripted.requests == []


@pytest.mark.asyncio
async def test_chart_uploads_png(services, scripted):
    scripted.lastfm(
        {"user.gettopalbums": _albums(("A", "One", 9), ("B", "Two", 8), ("C", "Three", 7), ("D", "Four", 6))}
    )
    scripted.add("GET", "img.test", "/", httpx.Response(200, content=png_bytes()))

    await _run(services, make_interaction("chart", [opt("user", "alice"), opt("size", "2x2"), opt("labelling", "topster")]))

    edit = _final_edit(scripted)
    body = discord_json(edit)
    assert body["content"] == "-# *Top Albums (Last 7 Days) - **alice***"
    assert body["attachments"] == [{"id": 0, "filename": "chart.png"}]
    limit = scripted.calls(host="ws.audioscrobbler.com")[0].url.params["limit"]
    assert limit == "4"


@pytest.mark.asyncio
async def test_chart_with_too_few_albums(services, scripted):
    scripted.lastfm({"user.gettopalbums": _albums(("A", "One", 9))})

    await _run(services, make_interaction("chart", [opt("user", "alice"), opt("size", "2x2")]))

    assert discord_json(_final_edit(scripted))["content"].startswith("Could not fetch 4 albums for `alice`.")


@pytest.mark.asyncio
async def test_serverchart_merges_members(services, scripted):
    await services.users.register("U1", "alice")
    await services.users.register("U2", "bob")
    scripted.lastfm(
        {
            "user.gettopalbums": _by_user(
                {
                    "alice": _albums(("Radiohead", "OK Computer", 10), ("Bjork", "Homogenic", 5)),
                    "bob": _albums(("radiohead", "ok computer", 3), ("Low", "Things We Lost", 7)),
                }
            )
        }
    )
    scripted.add("GET", "img.test", "/", httpx.Response(200, content=png_bytes()))

    await _run(services, make_interaction("serverchart", [opt("size", "1x3")]))

    body = discord_json(_final_edit(scripted))
    assert body["content"] == "-# *Server Top Albums (Last 7 Days) - **This Server***"
    assert body["attachments"] == [{"id": 0, "filename": "server-chart.png"}]


@pytest.mark.asyncio
async def test_serverchart_with_nobody_registered(services, scripted):
    await _run(services, make_interaction("serverchart"))

    assert discord_json(_final_edit(scripted))["content"] == (
        "No users have registered their Last.fm accounts with `/register` yet."
    )


@pytest.mark.asyncio
async def test_serverchart_with_too_few_unique_albums(services, scripted):
    await services.users.register("U1", "alice")
    scripted.lastfm({"user.gettopalbums": _albums(("A", "One", 1), ("B", "Two", 1))})

    await _run(services, make_interaction("serverchart", [opt("size", "3x3")]))

    assert discord_json(_final_edit(scripted))["content"] == (
        "Not enough unique albums listened to by the server to generate a 3x3 chart. Found 2 albums."
    )


# --- /countdown ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_countdown_offers_start_and_cancel(services):
    result = await _run(services, make_interaction("countdown"))

    row = result.body["data"]["components"][0]
    assert [b["custom_id"] for b in row["components"]] == [countdown.START_ID, countdown.CANCEL_ID]


@pytest.mark.asyncio
async def test_cancel_updates_the_message_in_place(services, scripted):
    result = await _run(services, make_interaction(type=3, custom_id=countdown.CANCEL_ID))

    assert result.body["type"] == 7
    assert result.body["data"]["components"] == []
    assert result.body["data"]["embeds"][0]["title"] == "Countdown Cancelled"
    assert scripted.requests == []


@pytest.mark.asyncio
async def test_start_ticks_down_then_finishes(services, scripted, monkeypatch):
    monkeypatch.setattr(countdown, "TICK_SECONDS", 0)

    result = await _run(services, make_interaction(type=3, custom_id=countdown.START_ID))

    assert result.status == 204
    ack = scripted.calls("POST", "discord.test")[0]
    assert discord_json(ack) == {"type": 6}
    edits = [discord_json(r)["embeds"][0] for r in scripted.calls("PATCH", "discord.test")]
    assert [e["description"] for e in edits] == ["**5**", "**4**", "**3**", "**2**", "**1**", "**Go!**"]
    assert edits[-1]["title"] == "Countdown Complete!"
