"""
Orpheus Discord Bot Package

A Discord bot served over the HTTP interactions endpoint, featuring:
- Last.fm now-playing, cover art and chart commands
- Multi-source cover art resolution (Last.fm, iTunes, Cover Art Archive)
- Deferred interaction responses for slow commands
- Server-wide aggregation over registered users
"""

# Package metadata
__title__ = "Orpheus"
__version__ = "1.0.0"
__description__ = "Discord interactions bot for Last.fm and album art"
__license__ = "MIT"

# Avoid importing heavy submodules at package import time to keep tests lightweight
__all__ = []


def __getattr__(name: str):
    """Lazy loader for the web application factory.

    Accessing orpheus.create_app will import aiohttp on demand, otherwise
    importing submodules like orpheus.resolver won't pull the web runtime.
    """
    if name == "create_app":
        from .web import create_app as _create_app
        return _create_app
    raise AttributeError(name)
