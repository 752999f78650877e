"""Exception hierarchy for graph and pattern execution.

Failures fall into a few kinds that callers handle differently:

- StepFailure: a step invocable (generation, extraction, transform) failed.
- ConfigurationError: something required was missing or malformed before
  any work could run (empty schema, unknown pattern, bad wiring).
- MalformedEventError: a progress record could not be parsed. Consumers
  skip these instead of aborting the stream.
- CancellationRequested: the consumer asked the run to stop. This is not a
  failure and is never reported as an ``error`` event.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class PlexusError(Exception):
    """Base class for all plexus errors."""

    pass


class StepFailure(PlexusError):
    """Raised when a step invocable reports failure.

    Attributes:
        step: Identifier of the failing step or node, when known.
        status_code: Upstream HTTP status, when the failure came from a provider.
        response_body: Raw upstream body, truncated by the caller if needed.
        details: Extra diagnostics reported with the error event (e.g. attempts).
    """

    def __init__(
        self,
        message: str,
        step: str | None = None,
        status_code: int | None = None,
        response_body: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.step = step
        self.status_code = status_code
        self.response_body = response_body
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"error": str(self), **self.details}
        if self.step is not None:
            data["step"] = self.step
        if self.status_code is not None:
            data["statusCode"] = self.status_code
        return data


class ConfigurationError(PlexusError):
    """Raised when required configuration is missing or invalid."""

    pass


class GraphMembershipError(ConfigurationError):
    """Raised when wiring nodes that do not belong to the same graph."""

    pass


class CyclicGraphError(ConfigurationError):
    """Raised when the executor finds a dependency cycle.

    Attributes:
        cycle: Node ids along the cycle, first id repeated at the end.
    """

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Cycle detected: {' -> '.join(self.cycle)}")


class MalformedEventError(PlexusError):
    """Raised by the strict record parser when a progress record is unreadable."""

    def __init__(self, message: str, record: str | None = None):
        super().__init__(message)
        self.record = record


class CancellationRequested(PlexusError):
    """Raised at a check point after the run's cancellation token fired."""

    pass


class ChannelClosedError(PlexusError):
    """Raised when emitting to a progress channel that was already closed."""

    pass


class ApprovalNotPendingError(PlexusError):
    """Raised when submitting a decision for a run that is not waiting for one."""

    def __init__(self, run_id: str):
        super().__init__(f"No run waiting for approval: {run_id}")
        self.run_id = run_id
