"""Python SDK for plexus.

Classes:
    PlexusClient: Client for a running plexus server.
    RunOutcome: Events and terminal payload of a finished run.

Example:
    >>> from plexus.frontends.sdk import PlexusClient
    >>>
    >>> async with PlexusClient("http://127.0.0.1:8100") as client:
    ...     outcome = await client.run("parallel", "Hello, world")
    ...     print(outcome.result)
"""

from plexus.frontends.sdk.client import PlexusClient, RunOutcome

__all__ = ["PlexusClient", "RunOutcome"]
