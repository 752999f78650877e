"""CLI frontend for plexus.

Commands:
    plexus run        Run an orchestration pattern
    plexus graph      Run a serialized graph file
    plexus patterns   List available patterns
    plexus serve      Start the HTTP server

Example:
    $ plexus run sequential "Some long article text..."
    $ plexus graph pipeline.yaml --dry-run
    $ plexus serve --port 8100
"""

from plexus.frontends.cli.main import main

__all__ = ["main"]
