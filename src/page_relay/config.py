"""Configuration for Page Relay.

Config discovery (first match wins):
  1. ``--config`` flag
  2. ``./page_relay.yaml``
  3. ``~/.config/page-relay/config.yaml``
  4. Built-in defaults

Environment variables (``OPENAI_API_KEY``, ``BASE_URL``, ``MODEL``,
``ADSENSE_CLIENT_ID``) override whatever the file says.  Configuration is
read once at startup and passed explicitly into the service.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

_logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_ADSENSE_CLIENT_ID = "ca-pub-XXXXXXXXXXXXXXXX"

# Environment variable -> config field
_ENV_OVERRIDES: dict[str, str] = {
    "OPENAI_API_KEY": "api_key",
    "BASE_URL": "base_url",
    "MODEL": "model",
    "ADSENSE_CLIENT_ID": "adsense_client_id",
}


# ---------------------------------------------------------------------------
# Config data structure
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RelayConfig:
    """Top-level config for Page Relay."""

    # Upstream provider
    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL

    # Completion parameters
    temperature: float = 0.7
    max_tokens: int = 2000

    # Retry policy: initial try plus up to ``max_retries`` retries
    max_retries: int = 3
    retry_delay_ms: int = 1000
    timeout_ms: int = 30000

    # Prompt
    adsense_client_id: str = DEFAULT_ADSENSE_CLIENT_ID

    # Server
    host: str = "127.0.0.1"
    port: int = 3000

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    @property
    def completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./page_relay.yaml"),
    Path.home() / ".config" / "page-relay" / "config.yaml",
]


def _parse_config(raw: dict[str, Any]) -> RelayConfig:
    known = {f.name for f in fields(RelayConfig)}
    values = {k: v for k, v in raw.items() if k in known and v is not None}
    unknown = sorted(set(raw) - known)
    if unknown:
        _logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
    return RelayConfig(**values)


def apply_env(
    config: RelayConfig,
    environ: Mapping[str, str] | None = None,
) -> RelayConfig:
    """Return *config* with environment overrides applied."""
    env = os.environ if environ is None else environ
    overrides = {
        name: env[var].strip()
        for var, name in _ENV_OVERRIDES.items()
        if env.get(var, "").strip()
    }
    if not overrides:
        return config
    return replace(config, **overrides)


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> RelayConfig:
    """Load configuration from YAML and the environment.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.
    environ:
        Environment mapping; defaults to ``os.environ``.

    Returns
    -------
    RelayConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            config_path = None
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        config = RelayConfig()
    else:
        _logger.info("Loading config from %s", config_path)
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(
                f"Config file {config_path} must contain a mapping, "
                f"got {type(raw).__name__}"
            )
        config = _parse_config(raw)

    config = apply_env(config, environ)
    if not config.has_api_key:
        _logger.warning(
            "API key not provided. Set OPENAI_API_KEY; page generation will fail.",
        )
    return config
