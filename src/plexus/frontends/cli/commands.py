"""CLI command definitions."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import AsyncIterator, Callable
from typing import Any

import rich_click as click

from plexus.__version__ import __version__
from plexus.config import PlexusConfig, build_provider, load_config
from plexus.core.approvals import ApprovalDecision
from plexus.core.cancellation import CancellationToken
from plexus.core.context import ExecutionContext
from plexus.core.errors import ConfigurationError, PlexusError
from plexus.core.graph.serialization import load_graph
from plexus.core.logging_config import configure_logging
from plexus.core.patterns.base import Pattern, WorkflowResult
from plexus.core.patterns.registry import PATTERNS, GraphPattern, get_pattern, list_patterns
from plexus.core.progress import EventKind, ProgressChannel, ProgressEvent
from plexus.core.store import MemoryStore
from plexus.frontends.cli.output import (
    EventPrinter,
    error_exit,
    make_console,
    output_json,
    print_patterns,
)

# Configure rich-click styling
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = "Try running '--help' for more information."
click.rich_click.ERRORS_EPILOGUE = ""
click.rich_click.MAX_WIDTH = 100

EventHandler = Callable[[ProgressEvent], None]

APPROVAL_ACTIONS = ["approve", "revise", "reject"]


def _load(ctx: click.Context, **overrides: Any) -> PlexusConfig:
    try:
        return load_config(ctx.obj.get("config_file"), **overrides)
    except ConfigurationError as e:
        error_exit(str(e))


def _event_handler(json_output: bool, verbose: bool) -> EventHandler:
    if json_output:
        return lambda event: output_json(event.to_dict(), indent=None)
    return EventPrinter(make_console(), verbose=verbose)


async def _prompt_decision() -> ApprovalDecision:
    action = await asyncio.to_thread(
        click.prompt,
        "Decision",
        type=click.Choice(APPROVAL_ACTIONS),
        default="approve",
        err=True,
    )
    feedback = await asyncio.to_thread(
        click.prompt, "Feedback", default="", show_default=False, err=True
    )
    return ApprovalDecision(action=action, feedback=feedback or None)


async def console_approvals(run_id: str) -> AsyncIterator[ApprovalDecision]:
    """Approval source that asks on the terminal."""
    yield await _prompt_decision()


async def _run_local(
    config: PlexusConfig, pattern: Pattern, input: Any, handler: EventHandler
) -> WorkflowResult:
    provider = build_provider(config)
    channel = ProgressChannel()
    context = ExecutionContext(
        provider=provider,
        channel=channel,
        cancellation=CancellationToken(),
        store=MemoryStore(),
        model=config.model,
        approvals=console_approvals,
    )
    try:
        task = asyncio.create_task(pattern.run(input, context))
        async for event in channel:
            handler(event)
        return await task
    finally:
        await provider.close()


async def _run_remote(
    server_url: str, pattern: str, input: Any, model: str | None, handler: EventHandler
) -> bool:
    from plexus.frontends.sdk import PlexusClient

    succeeded = False
    async with PlexusClient(server_url) as client:
        async for event in client.stream(pattern, input, model):
            handler(event)
            if event.payload.get("awaitingApproval"):
                decision = await _prompt_decision()
                await client.approve(event.payload["runId"], decision.action, decision.feedback)
            if event.kind.is_terminal:
                succeeded = event.kind == EventKind.COMPLETE
    return succeeded


# =========================================================================
# Root CLI
# =========================================================================
@click.group()
@click.version_option(version=__version__, prog_name="plexus")
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML config file (default: $PLEXUS_CONFIG)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Enable logging to stderr at this level",
)
@click.pass_context
def cli(ctx: click.Context, config_file: str | None, log_level: str | None) -> None:
    """Plexus - graph execution engine and orchestration patterns for LLM workflows.

    **Standalone commands** (no server required):

        plexus run        Run an orchestration pattern

        plexus graph      Run a serialized graph file

        plexus patterns   List available patterns

    **Server:**

        plexus serve      Stream runs over HTTP as Server-Sent Events
    """
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file
    if log_level:
        configure_logging(level=log_level, force=True)


@cli.command()
@click.argument("pattern", type=click.Choice(sorted(PATTERNS)))
@click.argument("input_text", metavar="INPUT")
@click.option("--model", "-m", default=None, help="Model to use (default: $PLEXUS_MODEL)")
@click.option("--base-url", default=None, help="OpenAI-compatible endpoint")
@click.option("--api-key", default=None, help="API key (default: $PLEXUS_API_KEY)")
@click.option("--server", "-s", "server_url", default=None, help="Run on a plexus server")
@click.option("--json", "-j", "json_output", is_flag=True, help="Print events as JSON lines")
@click.option("--verbose", "-v", is_flag=True, help="Show full event payloads")
@click.pass_context
def run(
    ctx: click.Context,
    pattern: str,
    input_text: str,
    model: str | None,
    base_url: str | None,
    api_key: str | None,
    server_url: str | None,
    json_output: bool,
    verbose: bool,
) -> None:
    """Run an orchestration pattern on INPUT and show its progress.

    Use `-` as INPUT to read from stdin.

    **Examples:**

        plexus run sequential "Long article text..."

        plexus run parallel "Hello, world" --json

        cat notes.txt | plexus run complex -

        plexus run retry "Write a haiku" --server http://127.0.0.1:8100

        plexus run human-in-loop "Draft a tagline"  (asks for a decision)
    """
    if input_text == "-":
        input_text = click.get_text_stream("stdin").read()
    handler = _event_handler(json_output, verbose)

    if server_url:
        try:
            ok = asyncio.run(_run_remote(server_url, pattern, input_text, model, handler))
        except PlexusError as e:
            error_exit(str(e))
        sys.exit(0 if ok else 1)

    config = _load(ctx, model=model, base_url=base_url, api_key=api_key)
    result = asyncio.run(_run_local(config, get_pattern(pattern), input_text, handler))
    sys.exit(0 if result.success else 1)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--model", "-m", default=None, help="Default model for generate and extract nodes")
@click.option("--dry-run", "-d", is_flag=True, help="Validate and show execution order only")
@click.option("--json", "-j", "json_output", is_flag=True, help="Print events as JSON lines")
@click.option("--verbose", "-v", is_flag=True, help="Show full event payloads")
@click.pass_context
def graph(
    ctx: click.Context,
    file: str,
    model: str | None,
    dry_run: bool,
    json_output: bool,
    verbose: bool,
) -> None:
    """Run a serialized graph from a JSON or YAML FILE.

    Transform and condition nodes need functions, which files cannot
    carry; graphs run from the command line should avoid them.

    **Examples:**

        plexus graph pipeline.yaml

        plexus graph pipeline.json --dry-run
    """
    try:
        loaded = load_graph(file)
    except (ConfigurationError, ValueError) as e:
        error_exit(f"Cannot load graph: {e}")

    if dry_run:
        for problem in loaded.validate():
            click.echo(f"Warning: {problem}", err=True)
        try:
            order = loaded.execution_order()
        except ConfigurationError as e:
            error_exit(str(e))
        click.echo(f"Graph '{loaded.id}' ({len(loaded)} nodes)")
        for position, node_id in enumerate(order, start=1):
            node = loaded[node_id]
            click.echo(f"  {position}. {node_id} [{node.kind.value}]")
        return

    config = _load(ctx, model=model)
    handler = _event_handler(json_output, verbose)
    result = asyncio.run(_run_local(config, GraphPattern(loaded), None, handler))
    sys.exit(0 if result.success else 1)


@cli.command()
@click.option("--json", "-j", "json_output", is_flag=True, help="Output as JSON")
def patterns(json_output: bool) -> None:
    """List available orchestration patterns."""
    available = list_patterns()
    if json_output:
        output_json(available)
    else:
        print_patterns(make_console(), available)


@cli.command()
@click.option("--host", default=None, help="Bind host (default: $PLEXUS_HOST or 127.0.0.1)")
@click.option("--port", "-p", type=int, default=None, help="Bind port (default: 8100)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the HTTP server.

    **Endpoints:**

        POST /api/workflows/execute   Run a pattern, streamed as SSE

        GET  /api/workflows/patterns  List patterns

        POST /api/workflows/approvals/ID  Answer a run waiting for a reviewer

        GET  /health                  Liveness check
    """
    from plexus.server import serve as serve_app

    config = _load(ctx, host=host, port=port)
    configure_logging()
    try:
        asyncio.run(serve_app(config))
    except KeyboardInterrupt:
        click.echo("Server stopped")
