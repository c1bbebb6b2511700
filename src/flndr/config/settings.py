"""Client settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (``LND_`` for the node connection, ``FLNDR_`` for
   everything else, nested via ``__``)
2. YAML config file (``config_path`` / ``FLNDR_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from flndr.errors.lnd_errors import ConfigError
from flndr.lnd.models import BitcoinNetwork

logger = logging.getLogger(__name__)

# Placeholder values used when no node is configured
FALLBACK_REST_API_URL = "https://your-lnd-node:8080"
FALLBACK_MACAROON = "your-admin-macaroon-hex-here"

# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class LndConfig(BaseSettings):
    """LND REST connection settings.

    ``macaroon`` takes precedence over ``macaroon_path``; the file is read as
    binary and hex-encoded. ``tls_cert`` (PEM text) takes precedence over
    ``tls_cert_path``.
    """

    model_config = SettingsConfigDict(
        env_prefix="LND_",
        case_sensitive=False,
    )

    rest_api_url: str = ""
    macaroon: str = ""
    macaroon_path: str = ""
    tls_cert: str = ""
    tls_cert_path: str = ""
    network: BitcoinNetwork | None = None
    timeout: float = 30.0

    @model_validator(mode="after")
    def _load_files(self) -> Self:
        """Resolve the macaroon and TLS certificate from their file paths."""
        if not self.macaroon and self.macaroon_path:
            try:
                self.macaroon = Path(self.macaroon_path).read_bytes().hex()
            except OSError as exc:
                msg = f"Failed to read macaroon file at {self.macaroon_path}: {exc}"
                raise ConfigError(msg) from exc
        if not self.tls_cert and self.tls_cert_path:
            try:
                self.tls_cert = Path(self.tls_cert_path).read_text(encoding="utf-8")
            except OSError as exc:
                msg = f"Failed to read TLS certificate file at {self.tls_cert_path}: {exc}"
                raise ConfigError(msg) from exc
        return self

    @property
    def headers(self) -> dict[str, str]:
        """Authentication headers for REST calls and socket handshakes."""
        return {"Grpc-Metadata-macaroon": self.macaroon}


class HistoryConfig(BaseSettings):
    """Transaction history aggregation settings."""

    model_config = SettingsConfigDict(
        env_prefix="FLNDR_HISTORY__",
        case_sensitive=False,
    )

    default_limit: int = 25
    min_batch_size: int = 100
    fetch_all_min_batch_size: int = 1000
    max_iterations: int = Field(
        default=5,
        ge=1,
        description="Ceiling on successive batch fetches per source",
    )


class StreamingConfig(BaseSettings):
    """Push subscription settings."""

    model_config = SettingsConfigDict(
        env_prefix="FLNDR_STREAMING__",
        case_sensitive=False,
    )

    auto_reconnect: bool = True
    max_retries: int = 5
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    jitter: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Fraction of each backoff delay randomised away",
    )


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level client configuration.

    Loads settings from environment variables (``FLNDR_`` prefix), an
    optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLNDR_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    config_path: str = ""

    lnd: LndConfig = Field(default_factory=LndConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


def load_lnd_config() -> LndConfig:
    """Load the node connection from the environment.

    Raises:
        ConfigError: If the REST URL or both macaroon sources are missing,
            or a configured file cannot be read.
    """
    config = LndConfig()
    if not config.rest_api_url:
        msg = "LND_REST_API_URL environment variable is required"
        raise ConfigError(msg)
    if not config.macaroon:
        msg = "Either LND_MACAROON or LND_MACAROON_PATH environment variable is required"
        raise ConfigError(msg)
    return config


def load_lnd_config_with_fallback(
    *,
    warn: bool = True,
    network: BitcoinNetwork | None = None,
) -> LndConfig:
    """Load the node connection, falling back to placeholder values.

    Args:
        warn: Log a warning when the placeholders are used.
        network: Overrides the configured network when given.
    """
    try:
        config = load_lnd_config()
    except ConfigError as exc:
        if warn:
            logger.warning("%s", exc.message)
            logger.warning(
                "Falling back to example values. This will not connect to a real LND node."
            )
        return LndConfig(
            rest_api_url=FALLBACK_REST_API_URL,
            macaroon=FALLBACK_MACAROON,
            macaroon_path="",
            tls_cert="",
            tls_cert_path="",
            network=network or BitcoinNetwork.MAINNET,
        )
    if network is not None:
        config.network = network
    return config
