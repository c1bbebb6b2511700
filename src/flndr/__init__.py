"""flndr — async LND REST client with unified history and push subscriptions."""

from flndr.client import LndClient
from flndr.config.settings import (
    AppConfig,
    HistoryConfig,
    LndConfig,
    StreamingConfig,
    load_lnd_config,
    load_lnd_config_with_fallback,
)
from flndr.errors.flndr_errors import FlndrError
from flndr.errors.lnd_errors import (
    ConfigError,
    HistoryFilterError,
    MalformedMessageError,
    StreamConnectionError,
    UpstreamRequestError,
)
from flndr.history.models import HistoryFilter, PageResult, Transaction
from flndr.lnd.encoding import Base64, Hex
from flndr.streaming.registry import ConnectionState

__version__ = "0.1.0"

__all__ = [
    "AppConfig",
    "Base64",
    "ConfigError",
    "ConnectionState",
    "FlndrError",
    "Hex",
    "HistoryConfig",
    "HistoryFilter",
    "HistoryFilterError",
    "LndClient",
    "LndConfig",
    "MalformedMessageError",
    "PageResult",
    "StreamConnectionError",
    "StreamingConfig",
    "Transaction",
    "UpstreamRequestError",
    "load_lnd_config",
    "load_lnd_config_with_fallback",
]
