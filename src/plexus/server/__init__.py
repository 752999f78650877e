"""Server - aiohttp application streaming pattern runs over SSE.

Example:
    >>> from plexus.server import create_app
    >>> from aiohttp import web
    >>> web.run_app(create_app(), port=8100)
"""

from plexus.server.app import create_app, serve

__all__ = ["create_app", "serve"]
