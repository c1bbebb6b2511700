"""LND-specific errors: upstream requests, configuration, streaming."""

from __future__ import annotations

from flndr.errors.flndr_errors import FlndrError


class UpstreamRequestError(FlndrError):
    """A REST call to the LND node failed.

    Attributes:
        operation: Client operation that failed (e.g. ``list_payments``).
        source: Upstream collection involved, when the call was part of an
            aggregation (``LND payments`` / ``LND invoices``).
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        source: str | None = None,
        status_code: int = 502,
    ) -> None:
        super().__init__(message, status_code=status_code, code="upstream-request-error")
        self.operation = operation
        self.source = source


class ConfigError(FlndrError):
    """Missing or unreadable connection configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=500, code="config-error")


class HistoryFilterError(FlndrError):
    """Invalid transaction history filter."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=400, code="invalid-filter")


class StreamConnectionError(FlndrError):
    """Transport failure on a subscription socket.

    Never raised from ``subscribe()``; delivered inside ``error`` events.
    """

    def __init__(self, message: str, *, url: str = "") -> None:
        super().__init__(message, status_code=502, code="stream-connection-error")
        self.url = url


class MalformedMessageError(FlndrError):
    """A pushed frame could not be decoded. The frame is dropped."""

    def __init__(self, message: str, *, url: str = "", frame: str | bytes = "") -> None:
        super().__init__(message, status_code=502, code="malformed-message")
        self.url = url
        self.frame = frame
