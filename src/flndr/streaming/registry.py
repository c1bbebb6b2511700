"""Connection registry — at most one live subscription per URL."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from flndr.errors.flndr_errors import FlndrError
    from flndr.streaming.transport import DuplexStream


class ConnectionState(enum.StrEnum):
    """Lifecycle of a subscription socket."""

    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"
    RECONNECTING = "RECONNECTING"


class SubscriptionKind(enum.StrEnum):
    """Push endpoints a connection can address."""

    INVOICES = "invoices"
    INVOICE = "invoice"
    PAYMENT = "payment"
    PAYMENTS = "payments"

    @property
    def event(self) -> str:
        """Domain event emitted for this kind's frames."""
        if self in (SubscriptionKind.INVOICES, SubscriptionKind.INVOICE):
            return "invoice"
        return "paymentUpdate"


@dataclass
class Connection:
    """One supervised subscription.

    ``url`` is the http(s) identity handed to callers; ``ws_url`` is the
    socket endpoint derived from it.
    """

    url: str
    ws_url: str
    kind: SubscriptionKind
    headers: dict[str, str] = field(default_factory=dict)
    auto_reconnect: bool = True
    max_retries: int = 5
    base_delay_ms: int = 1000
    state: ConnectionState = ConnectionState.CONNECTING
    retry_count: int = 0
    last_error: FlndrError | None = None
    transport_handle: DuplexStream | None = None
    task: asyncio.Task[None] | None = None

    @property
    def is_active(self) -> bool:
        """Whether the socket is open."""
        return self.state == ConnectionState.OPEN


class ConnectionRegistry:
    """Per-client mapping of identity URL to :class:`Connection`."""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}

    def add(self, connection: Connection) -> Connection:
        """Register *connection*, or return the entry already held for its URL."""
        existing = self._connections.get(connection.url)
        if existing is not None:
            return existing
        self._connections[connection.url] = connection
        return connection

    def get(self, url: str) -> Connection | None:
        """Return the connection for *url*, if any."""
        return self._connections.get(url)

    def remove(self, url: str) -> Connection | None:
        """Drop and return the connection for *url*."""
        return self._connections.pop(url, None)

    def urls(self) -> list[str]:
        """Registered URLs, in subscription order."""
        return list(self._connections)

    def values(self) -> list[Connection]:
        """Registered connections, in subscription order."""
        return list(self._connections.values())

    def __contains__(self, url: object) -> bool:
        return url in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[Connection]:
        return iter(self.values())
