"""Runtime configuration for the server and CLI.

Values resolve with priority:
1. Explicit arguments (highest)
2. Environment variables
3. YAML config file (``--config`` or ``PLEXUS_CONFIG``)
4. Defaults

Environment variables:
    PLEXUS_BASE_URL      OpenAI-compatible endpoint
    PLEXUS_API_KEY       API key (falls back to OPENAI_API_KEY)
    PLEXUS_MODEL         Default model
    PLEXUS_TIMEOUT       Read timeout in seconds
    PLEXUS_MAX_RETRIES   Provider retries on retryable HTTP statuses
    PLEXUS_HOST          Server bind host
    PLEXUS_PORT          Server bind port
    PLEXUS_CONFIG        Path to a YAML config file

Example config file:
    base_url: http://localhost:11434/v1
    model: llama3.1
    port: 8100
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from plexus.core.errors import ConfigurationError
from plexus.core.steps.openai_compat import OpenAICompatibleConfig, OpenAICompatibleProvider

logger = logging.getLogger(__name__)

_ENV_KEYS: dict[str, tuple[str, ...]] = {
    "base_url": ("PLEXUS_BASE_URL",),
    "api_key": ("PLEXUS_API_KEY", "OPENAI_API_KEY"),
    "model": ("PLEXUS_MODEL",),
    "timeout": ("PLEXUS_TIMEOUT",),
    "max_retries": ("PLEXUS_MAX_RETRIES",),
    "host": ("PLEXUS_HOST",),
    "port": ("PLEXUS_PORT",),
}


@dataclass
class PlexusConfig:
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    timeout: float = 300.0
    max_retries: int = 3
    host: str = "127.0.0.1"
    port: int = 8100

    def provider_config(self) -> OpenAICompatibleConfig:
        return OpenAICompatibleConfig(
            base_url=self.base_url,
            api_key=self.api_key,
            read_timeout=self.timeout,
            max_retries=self.max_retries,
        )


def _read_file(config_file: str | None) -> dict[str, Any]:
    path = config_file or os.environ.get("PLEXUS_CONFIG")
    if not path:
        return {}
    try:
        content = Path(path).read_text()
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found: {path}") from None
    try:
        data = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    known = {f.name for f in fields(PlexusConfig)}
    for key in data.keys() - known:
        logger.warning("Ignoring unknown config key %r in %s", key, path)
    return {k: v for k, v in data.items() if k in known}


def _coerce(name: str, value: Any, default: Any) -> Any:
    try:
        if isinstance(default, bool):
            return str(value).lower() in ("1", "true", "yes")
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from None
    return str(value)


def load_config(config_file: str | None = None, **overrides: Any) -> PlexusConfig:
    """Resolve configuration from arguments, environment, file and defaults.

    Args:
        config_file: YAML file path; ``PLEXUS_CONFIG`` is used when omitted.
        **overrides: Field values from the caller. ``None`` means unset.

    Raises:
        ConfigurationError: If the file is missing or malformed, or a value
            cannot be converted to its field's type.
    """
    unknown = overrides.keys() - {f.name for f in fields(PlexusConfig)}
    if unknown:
        raise ConfigurationError(f"Unknown config options: {', '.join(sorted(unknown))}")

    file_config = _read_file(config_file)
    defaults = PlexusConfig()
    resolved: dict[str, Any] = {}

    for f in fields(PlexusConfig):
        default = getattr(defaults, f.name)
        value = overrides.get(f.name)
        if value is None:
            value = next(
                (os.environ[key] for key in _ENV_KEYS.get(f.name, ()) if os.environ.get(key)),
                None,
            )
        if value is None:
            value = file_config.get(f.name)
        resolved[f.name] = default if value is None else _coerce(f.name, value, default)

    return PlexusConfig(**resolved)


def build_provider(config: PlexusConfig) -> OpenAICompatibleProvider:
    """Provider for ``config``; call ``connect()`` or use it as a context manager."""
    return OpenAICompatibleProvider(config.provider_config())
