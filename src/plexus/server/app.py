"""HTTP server - runs patterns and streams their progress as Server-Sent Events.

Routes:
    POST /api/workflows/execute              Run a pattern; the response is an SSE stream
    GET  /api/workflows/patterns             Available patterns
    GET  /api/workflows/approvals            Runs waiting for a reviewer
    POST /api/workflows/approvals/{run_id}   Approve, revise or reject a waiting run
    GET  /health                             Liveness check

Each run gets its own ProgressChannel and CancellationToken. When the
client disconnects the token is cancelled, so the run makes no further
model calls and emits nothing more.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

from aiohttp import web
from pydantic import ValidationError

from plexus.__version__ import __version__
from plexus.config import PlexusConfig, build_provider
from plexus.core.approvals import ApprovalDecision, ApprovalInbox
from plexus.core.cancellation import CancellationToken
from plexus.core.context import ExecutionContext
from plexus.core.errors import ApprovalNotPendingError
from plexus.core.patterns.registry import RunRequest, list_patterns, run_request
from plexus.core.progress import ProgressChannel
from plexus.core.store import KeyValueStore, MemoryStore
from plexus.core.wire import SSE_HEADERS, encode_event

if TYPE_CHECKING:
    from plexus.core.steps.base import ModelProvider

logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", PlexusConfig)
PROVIDER_KEY = web.AppKey("provider", object)
STORE_KEY = web.AppKey("store", object)
APPROVALS_KEY = web.AppKey("approvals", ApprovalInbox)


def create_app(
    config: PlexusConfig | None = None,
    provider: ModelProvider | None = None,
    store: KeyValueStore | None = None,
) -> web.Application:
    """Build the aiohttp application.

    Args:
        config: Server configuration; defaults to ``PlexusConfig()``.
        provider: Model provider shared by every run. When omitted, one is
            built from ``config`` and closed when the app shuts down.
        store: Key-value store for cache nodes; defaults to a MemoryStore.
    """
    config = config or PlexusConfig()
    app = web.Application()
    app[CONFIG_KEY] = config
    app[STORE_KEY] = store or MemoryStore()
    app[APPROVALS_KEY] = ApprovalInbox()

    if provider is None:
        owned = build_provider(config)
        app[PROVIDER_KEY] = owned

        async def _close_provider(_app: web.Application) -> None:
            await owned.close()

        app.on_cleanup.append(_close_provider)
    else:
        app[PROVIDER_KEY] = provider

    app.router.add_post("/api/workflows/execute", handle_execute)
    app.router.add_get("/api/workflows/patterns", handle_patterns)
    app.router.add_get("/api/workflows/approvals", handle_pending_approvals)
    app.router.add_post("/api/workflows/approvals/{run_id}", handle_approval)
    app.router.add_get("/health", handle_health)
    return app


async def handle_execute(request: web.Request) -> web.StreamResponse:
    """Handle POST /api/workflows/execute."""
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return web.json_response({"error": "Invalid JSON"}, status=400)

    try:
        run = RunRequest.model_validate(body)
    except ValidationError as e:
        details = e.errors(include_url=False, include_context=False)
        return web.json_response({"error": "Invalid request", "details": details}, status=400)

    config = request.app[CONFIG_KEY]
    channel = ProgressChannel()
    token = CancellationToken()
    context = ExecutionContext(
        provider=request.app[PROVIDER_KEY],  # type: ignore[arg-type]
        channel=channel,
        cancellation=token,
        store=request.app[STORE_KEY],  # type: ignore[arg-type]
        model=config.model,
        approvals=request.app[APPROVALS_KEY],
    )
    logger.info("[%s] run requested: pattern=%s", context.run_id, run.pattern_name)

    response = web.StreamResponse(status=200, headers={**SSE_HEADERS, "X-Run-Id": context.run_id})
    await response.prepare(request)

    task = asyncio.create_task(run_request(run, context), name=f"run-{context.run_id}")
    try:
        async for event in channel:
            await response.write(encode_event(event))
    except ConnectionResetError:
        logger.info("[%s] client disconnected, cancelling run", context.run_id)
        token.cancel()
    except asyncio.CancelledError:
        token.cancel()
        raise
    finally:
        if not task.done():
            token.cancel()
        result = await task
        logger.debug(
            "[%s] run finished: success=%s, cancelled=%s",
            context.run_id,
            result.success,
            result.cancelled,
        )

    if not token.is_cancelled:
        try:
            await response.write_eof()
        except ConnectionResetError:
            logger.debug("[%s] client gone before end of stream", context.run_id)
    return response


async def handle_patterns(request: web.Request) -> web.Response:
    """Handle GET /api/workflows/patterns."""
    return web.json_response({"patterns": list_patterns()})


async def handle_pending_approvals(request: web.Request) -> web.Response:
    """Handle GET /api/workflows/approvals."""
    return web.json_response({"pending": request.app[APPROVALS_KEY].pending()})


async def handle_approval(request: web.Request) -> web.Response:
    """Handle POST /api/workflows/approvals/{run_id}."""
    run_id = request.match_info["run_id"]
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return web.json_response({"error": "Invalid JSON"}, status=400)

    try:
        decision = ApprovalDecision.model_validate(body)
    except ValidationError as e:
        details = e.errors(include_url=False, include_context=False)
        return web.json_response({"error": "Invalid decision", "details": details}, status=400)

    try:
        request.app[APPROVALS_KEY].submit(run_id, decision)
    except ApprovalNotPendingError as e:
        return web.json_response({"error": str(e)}, status=404)

    logger.info("[%s] approval submitted: action=%s", run_id, decision.action)
    return web.json_response({"runId": run_id, "action": decision.action}, status=202)


async def handle_health(request: web.Request) -> web.Response:
    """Handle GET /health."""
    return web.json_response({"status": "ok", "version": __version__})


async def serve(
    config: PlexusConfig | None = None,
    provider: ModelProvider | None = None,
    shutdown_event: asyncio.Event | None = None,
) -> None:
    """Run the server until ``shutdown_event`` is set (or forever)."""
    config = config or PlexusConfig()
    app = create_app(config, provider)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.host, config.port)
    await site.start()
    logger.info("Plexus server listening on %s:%s", config.host, config.port)

    try:
        await (shutdown_event or asyncio.Event()).wait()
        logger.info("Plexus server shutdown requested")
    finally:
        await runner.cleanup()
