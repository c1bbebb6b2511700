"""Subscription transports.

The manager only sees :class:`StreamTransport` / :class:`DuplexStream`;
:class:`WebsocketTransport` is the production implementation on top of
``websockets``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import websockets
from websockets.asyncio.client import connect

from flndr.errors.lnd_errors import StreamConnectionError
from flndr.lnd.service import build_ssl_context

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from websockets.asyncio.client import ClientConnection

DEFAULT_OPEN_TIMEOUT = 10.0
DEFAULT_PING_INTERVAL = 20.0


class DuplexStream(ABC):
    """An open subscription socket.

    Iterating yields raw frames until the peer closes. An abnormal close
    raises :class:`StreamConnectionError` from the iterator.
    """

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[str | bytes]:
        """Yield incoming frames."""

    @property
    @abstractmethod
    def close_code(self) -> int | None:
        """Close code once closed."""

    @property
    @abstractmethod
    def close_reason(self) -> str:
        """Close reason once closed."""

    @abstractmethod
    async def send(self, message: str | bytes) -> None:
        """Send a frame."""

    @abstractmethod
    async def close(self) -> None:
        """Close the socket."""


class StreamTransport(ABC):
    """Opens :class:`DuplexStream` sockets."""

    @abstractmethod
    async def connect(self, url: str, headers: dict[str, str]) -> DuplexStream:
        """Open a socket to *url* sending *headers* in the handshake.

        Raises:
            StreamConnectionError: If the socket cannot be opened.
        """


class WebsocketStream(DuplexStream):
    """:class:`DuplexStream` over a ``websockets`` client connection."""

    def __init__(self, url: str, ws: ClientConnection) -> None:
        self._url = url
        self._ws = ws

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        return self._frames()

    async def _frames(self) -> AsyncIterator[str | bytes]:
        try:
            async for message in self._ws:
                yield message
        except websockets.exceptions.ConnectionClosedError as exc:
            msg = f"Connection to {self._url} lost: {exc}"
            raise StreamConnectionError(msg, url=self._url) from exc

    @property
    def close_code(self) -> int | None:
        return self._ws.close_code

    @property
    def close_reason(self) -> str:
        return self._ws.close_reason or ""

    async def send(self, message: str | bytes) -> None:
        await self._ws.send(message)

    async def close(self) -> None:
        await self._ws.close()


class WebsocketTransport(StreamTransport):
    """Opens LND subscription sockets.

    Usage::

        transport = WebsocketTransport(tls_cert=config.tls_cert)
        stream = await transport.connect(
            "wss://node:8080/v1/invoices/subscribe",
            {"Grpc-Metadata-macaroon": config.macaroon},
        )
    """

    def __init__(
        self,
        tls_cert: str = "",
        *,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT,
        ping_interval: float | None = DEFAULT_PING_INTERVAL,
    ) -> None:
        self._tls_cert = tls_cert
        self._open_timeout = open_timeout
        self._ping_interval = ping_interval

    async def connect(self, url: str, headers: dict[str, str]) -> DuplexStream:
        kwargs: dict[str, Any] = {
            "additional_headers": headers,
            "open_timeout": self._open_timeout,
            "ping_interval": self._ping_interval,
        }
        try:
            if url.startswith("wss://"):
                ssl_context = build_ssl_context(self._tls_cert)
                if ssl_context is not None:
                    kwargs["ssl"] = ssl_context
            ws = await connect(url, **kwargs)
        except (websockets.exceptions.WebSocketException, OSError, TimeoutError) as exc:
            msg = f"Failed to connect to {url}: {exc}"
            raise StreamConnectionError(msg, url=url) from exc
        return WebsocketStream(url, ws)
