"""
Slash command handlers, component handlers and their registration payloads.
"""
from typing import Any, Dict, List

from .chart import handle_chart, handle_serverchart
from .common import PERIODS, Handler
from .countdown import CANCEL_ID, START_ID, handle_cancel, handle_countdown, handle_start
from .cover import handle_cover, handle_rc
from .fm import handle_fm
from .league import handle_league
from .ping import handle_ping
from .register import handle_register

# Discord application command option types
STRING = 3
BOOLEAN = 5
SUB_COMMAND = 1

COMMANDS: Dict[str, Handler] = {
    "ping": handle_ping,
    "register": handle_register,
    "cover": handle_cover,
    "rc": handle_rc,
    "fm": handle_fm,
    "chart": handle_chart,
    "serverchart": handle_serverchart,
    "league": handle_league,
    "countdown": handle_countdown,
}

COMPONENTS: Dict[str, Handler] = {
    START_ID: handle_start,
    CANCEL_ID: handle_cancel,
}


def _choices(values: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"name": label, "value": value} for value, label in values.items()]


_USER = {"name": "user", "description": "Last.fm username. Defaults to your registered one.", "type": STRING}
_HQ = {"name": "hq", "description": "Query every source and pick the highest quality art.", "type": BOOLEAN}
_SEARCH = {"name": "search", "description": "Album to search for.", "type": STRING}
_SIZE = {
    "name": "size",
    "description": "Grid size (default 3x3).",
    "type": STRING,
    "choices": [{"name": f"{n}x{n}", "value": f"{n}x{n}"} for n in range(3, 11)],
}
_PERIOD = {"name": "period", "description": "Time period (default last 7 days).", "type": STRING, "choices": _choices(PERIODS)}
_LABELLING = {
    "name": "labelling",
    "description": "How to label albums.",
    "type": STRING,
    "choices": _choices({"no_names": "No names", "under": "Names under covers", "topster": "Topster side list"}),
}

COMMAND_DEFINITIONS: List[Dict[str, Any]] = [
    {"name": "ping", "description": "Replies with Pong! to test latency."},
    {
        "name": "register",
        "description": "Register your Last.fm username with the bot.",
        "options": [{"name": "username", "description": "Your Last.fm username.", "type": STRING, "required": True}],
    },
    {
        "name": "cover",
        "description": "Album cover for your current song, or for a search.",
        "options": [_SEARCH, _USER, _HQ],
    },
    {
        "name": "rc",
        "description": "Upload the album cover as an image.",
        "options": [_SEARCH, _HQ],
    },
    {"name": "fm", "description": "Show what you (or someone) is listening to.", "options": [_USER]},
    {
        "name": "chart",
        "description": "Top albums chart for a Last.fm user.",
        "options": [_USER, _SIZE, _PERIOD, _LABELLING],
    },
    {
        "name": "serverchart",
        "description": "Top albums chart across every registered member.",
        "options": [_SIZE, _PERIOD, _LABELLING],
    },
    {
        "name": "league",
        "description": "Music league helpers.",
        "options": [
            {"name": "banned", "description": "Show the server's banned artists this month.", "type": SUB_COMMAND},
            {
                "name": "find",
                "description": "Find playlist tracks by banned artists.",
                "type": SUB_COMMAND,
                "options": [
                    {"name": "playlist", "description": "Spotify playlist URL.", "type": STRING, "required": True}
                ],
            },
        ],
    },
    {"name": "countdown", "description": "Start a 5 second countdown."},
]

__all__ = ["COMMANDS", "COMPONENTS", "COMMAND_DEFINITIONS", "Handler"]
