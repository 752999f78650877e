"""Step invocables: the model provider protocol and its implementations."""

from plexus.core.steps.base import (
    ExtractRequest,
    ExtractResult,
    ModelProvider,
    TextDelta,
    TextRequest,
    TextResult,
    TextStream,
    Usage,
)
from plexus.core.steps.openai_compat import OpenAICompatibleConfig, OpenAICompatibleProvider

__all__ = [
    "ExtractRequest",
    "ExtractResult",
    "ModelProvider",
    "OpenAICompatibleConfig",
    "OpenAICompatibleProvider",
    "TextDelta",
    "TextRequest",
    "TextResult",
    "TextStream",
    "Usage",
]
