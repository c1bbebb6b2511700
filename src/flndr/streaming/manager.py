"""Subscription manager — persistent push subscriptions with reconnects.

Each subscription is supervised by one asyncio task that opens the socket,
decodes frames onto the :class:`EventBus`, and re-opens the socket with
exponential backoff after a close or a failure. Callers never see
exceptions from a subscription; failures arrive as ``error`` events.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import TYPE_CHECKING, Any

from flndr.config.settings import StreamingConfig
from flndr.errors.lnd_errors import (
    MalformedMessageError,
    StreamConnectionError,
    UpstreamRequestError,
)
from flndr.lnd.encoding import to_hex, to_url_safe_base64
from flndr.streaming.backoff import BackoffPolicy
from flndr.streaming.events import (
    CloseEvent,
    ErrorEvent,
    EventBus,
    EventName,
    InvoiceEvent,
    OpenEvent,
    PaymentUpdateEvent,
)
from flndr.streaming.registry import (
    Connection,
    ConnectionRegistry,
    ConnectionState,
    SubscriptionKind,
)
from flndr.streaming.transport import WebsocketTransport

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from flndr.errors.flndr_errors import FlndrError
    from flndr.lnd.encoding import PaymentHash
    from flndr.metrics.collector import ClientMetrics
    from flndr.streaming.transport import DuplexStream, StreamTransport

logger = logging.getLogger(__name__)

MACAROON_HEADER = "Grpc-Metadata-macaroon"


def to_ws_url(url: str) -> str:
    """Map an http(s) URL onto the matching ws(s) scheme."""
    if url.startswith("https://"):
        return "wss://" + url[len("https://") :]
    if url.startswith("http://"):
        return "ws://" + url[len("http://") :]
    return url


class SubscriptionManager:
    """Owns every push subscription of one client.

    Usage::

        manager = SubscriptionManager("https://node:8080", macaroon_hex)
        manager.on("invoice", handle_invoice)
        url = await manager.subscribe("invoices")
        ...
        await manager.close_all()
    """

    def __init__(
        self,
        base_url: str,
        macaroon: str = "",
        *,
        transport: StreamTransport | None = None,
        bus: EventBus | None = None,
        config: StreamingConfig | None = None,
        metrics: ClientMetrics | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            base_url: Node REST URL (http or https).
            macaroon: Hex macaroon sent in every handshake.
            transport: Socket factory (default :class:`WebsocketTransport`).
            bus: Event bus shared with the caller.
            config: Reconnect defaults.
            metrics: Optional metrics sink.
        """
        self._base_url = base_url.rstrip("/")
        self._macaroon = macaroon
        self._transport = transport or WebsocketTransport()
        self._bus = bus or EventBus()
        self._config = config or StreamingConfig()
        self._metrics = metrics
        self._registry = ConnectionRegistry()
        self._backoff = BackoffPolicy(
            self._config.base_delay_ms,
            self._config.max_delay_ms,
            self._config.jitter,
        )

    @property
    def bus(self) -> EventBus:
        """The event bus subscriptions publish to."""
        return self._bus

    @property
    def registry(self) -> ConnectionRegistry:
        """Live subscriptions keyed by URL."""
        return self._registry

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def url_for(
        self,
        kind: SubscriptionKind | str,
        target: PaymentHash | None = None,
        *,
        no_inflight_updates: bool = False,
    ) -> str:
        """Return the identity URL of a subscription.

        Raises:
            ValueError: On an unknown kind, a missing target, or a payment
                hash that does not decode.
        """
        kind = SubscriptionKind(kind)
        if kind == SubscriptionKind.INVOICES:
            path = "/v1/invoices/subscribe"
        elif kind == SubscriptionKind.PAYMENTS:
            flag = "true" if no_inflight_updates else "false"
            path = f"/v2/router/trackpayments?no_inflight_updates={flag}"
        else:
            if target is None or target == "":
                msg = f"a payment hash is required for {kind} subscriptions"
                raise ValueError(msg)
            if kind == SubscriptionKind.INVOICE:
                path = f"/v2/invoices/subscribe/{to_url_safe_base64(target)}"
            else:
                path = f"/v2/router/track/{to_hex(target)}"
        return self._base_url + path

    async def subscribe(
        self,
        kind: SubscriptionKind | str,
        target: PaymentHash | None = None,
        *,
        no_inflight_updates: bool = False,
        auto_reconnect: bool | None = None,
        max_retries: int | None = None,
        base_delay_ms: int | None = None,
    ) -> str:
        """Start a subscription and return its URL.

        A URL that is already subscribed returns the existing handle
        without opening a second socket.
        """
        kind = SubscriptionKind(kind)
        url = self.url_for(kind, target, no_inflight_updates=no_inflight_updates)
        if url in self._registry:
            return url

        headers = {MACAROON_HEADER: self._macaroon} if self._macaroon else {}
        conn = Connection(
            url=url,
            ws_url=to_ws_url(url),
            kind=kind,
            headers=headers,
            auto_reconnect=(
                self._config.auto_reconnect if auto_reconnect is None else auto_reconnect
            ),
            max_retries=self._config.max_retries if max_retries is None else max_retries,
            base_delay_ms=self._config.base_delay_ms if base_delay_ms is None else base_delay_ms,
        )
        self._registry.add(conn)
        conn.task = asyncio.create_task(self._supervise(conn))
        logger.info("Subscribed to %s", url)
        return url

    async def close(self, url: str) -> None:
        """Close a subscription and cancel any pending reconnect."""
        conn = self._registry.get(url)
        if conn is None:
            return
        conn.state = ConnectionState.CLOSING
        self._registry.remove(url)
        stream = conn.transport_handle
        conn.transport_handle = None

        task = conn.task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        conn.task = None

        code: int | None = None
        reason = ""
        if stream is not None:
            await stream.close()
            code, reason = stream.close_code, stream.close_reason

        conn.state = ConnectionState.CLOSED
        self._update_active()
        logger.info("Closed subscription %s", url)
        await self._bus.emit(EventName.CLOSE, CloseEvent(url=url, code=code, reason=reason))

    async def close_all(self) -> None:
        """Close every subscription."""
        for url in self._registry.urls():
            await self.close(url)

    def status(self, url: str) -> ConnectionState:
        """Current state of *url*; unknown URLs are ``CLOSED``."""
        conn = self._registry.get(url)
        return conn.state if conn is not None else ConnectionState.CLOSED

    def is_active(self, url: str) -> bool:
        """Whether *url* has an open socket."""
        return self.status(url) == ConnectionState.OPEN

    def on(self, name: str, handler: Callable[[Any], Awaitable[None] | None]) -> None:
        """Register an event handler."""
        self._bus.on(name, handler)

    def off(self, name: str, handler: Callable[[Any], Awaitable[None] | None]) -> None:
        """Unregister an event handler."""
        self._bus.off(name, handler)

    # ------------------------------------------------------------------
    # Supervision
    # ------------------------------------------------------------------

    def _stopped(self, conn: Connection) -> bool:
        return self._registry.get(conn.url) is not conn

    async def _supervise(self, conn: Connection) -> None:
        backoff = self._backoff.with_base(conn.base_delay_ms)
        reconnected = False
        while True:
            conn.state = ConnectionState.CONNECTING
            failure: FlndrError | None = None
            stream: DuplexStream | None = None
            try:
                stream = await self._transport.connect(conn.ws_url, conn.headers)
            except StreamConnectionError as exc:
                failure = exc
            except Exception as exc:
                failure = self._unexpected(conn, exc)
            else:
                failure = await self._run_open(conn, stream, reconnected=reconnected)
            if self._stopped(conn):
                return
            if failure is not None:
                conn.last_error = failure

            if conn.auto_reconnect and conn.retry_count < conn.max_retries:
                delay = backoff.delay(conn.retry_count)
                conn.retry_count += 1
                conn.state = ConnectionState.RECONNECTING
                reconnected = True
                if self._metrics is not None:
                    self._metrics.record_reconnect()
                logger.warning(
                    "Subscription %s dropped, reconnecting in %.2fs (attempt %d/%d)",
                    conn.url,
                    delay,
                    conn.retry_count,
                    conn.max_retries,
                )
                await self._emit_loss(
                    conn, failure, stream, reconnecting=True, delay=delay
                )
                if self._stopped(conn):
                    return
                await asyncio.sleep(delay)
                if self._stopped(conn):
                    return
                continue

            conn.state = ConnectionState.CLOSED
            self._registry.remove(conn.url)
            conn.task = None
            if conn.auto_reconnect:
                logger.warning(
                    "Subscription %s closed after %d reconnect attempts",
                    conn.url,
                    conn.retry_count,
                )
            else:
                logger.info("Subscription %s closed", conn.url)
            await self._emit_loss(conn, failure, stream, reconnecting=False)
            return

    async def _run_open(
        self, conn: Connection, stream: DuplexStream, *, reconnected: bool
    ) -> FlndrError | None:
        """Pump frames from an open socket; return the failure that ended it."""
        conn.transport_handle = stream
        conn.state = ConnectionState.OPEN
        conn.retry_count = 0
        conn.last_error = None
        self._update_active()
        logger.info("Subscription %s open", conn.url)
        try:
            await self._bus.emit(EventName.OPEN, OpenEvent(url=conn.url, reconnected=reconnected))
            if self._stopped(conn):
                return None
            async for frame in stream:
                await self._dispatch(conn, frame)
                if self._stopped(conn):
                    return None
        except StreamConnectionError as exc:
            return exc
        except Exception as exc:
            return self._unexpected(conn, exc)
        finally:
            if conn.transport_handle is stream:
                conn.transport_handle = None
            self._update_active()
        return None

    def _unexpected(self, conn: Connection, exc: Exception) -> StreamConnectionError:
        logger.exception("Subscription %s failed", conn.url)
        msg = f"Subscription to {conn.url} failed: {exc}"
        error = StreamConnectionError(msg, url=conn.url)
        error.__cause__ = exc
        return error

    async def _emit_loss(
        self,
        conn: Connection,
        failure: FlndrError | None,
        stream: DuplexStream | None,
        *,
        reconnecting: bool,
        delay: float = 0.0,
    ) -> None:
        if failure is not None:
            event: ErrorEvent | CloseEvent = ErrorEvent(
                url=conn.url,
                error=failure,
                reconnecting=reconnecting,
                attempt=conn.retry_count,
                delay=delay,
            )
            await self._bus.emit(EventName.ERROR, event)
            return
        await self._bus.emit(
            EventName.CLOSE,
            CloseEvent(
                url=conn.url,
                code=stream.close_code if stream is not None else None,
                reason=stream.close_reason if stream is not None else "",
                reconnecting=reconnecting,
                attempt=conn.retry_count,
                delay=delay,
            ),
        )

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    async def _dispatch(self, conn: Connection, frame: str | bytes) -> None:
        """Decode one frame and emit the matching domain event."""
        try:
            message = json.loads(frame)
        except ValueError as exc:
            await self._drop(conn, frame, f"Failed to parse message from {conn.url}: {exc}")
            return
        if not isinstance(message, dict):
            await self._drop(conn, frame, f"Unexpected message shape from {conn.url}")
            return

        error = message.get("error")
        if error:
            detail = error.get("message", error) if isinstance(error, dict) else error
            failure = UpstreamRequestError(
                f"Subscription error from {conn.url}: {detail}",
                operation=f"subscribe_{conn.kind}",
            )
            conn.last_error = failure
            logger.warning("%s", failure.message)
            await self._bus.emit(EventName.ERROR, ErrorEvent(url=conn.url, error=failure))
            return

        payload = message.get("result", message)
        if not isinstance(payload, dict):
            await self._drop(conn, frame, f"Unexpected message shape from {conn.url}")
            return

        name = conn.kind.event
        if self._metrics is not None:
            self._metrics.record_message(name)
        if name == EventName.INVOICE:
            await self._bus.emit(name, InvoiceEvent(url=conn.url, invoice=payload))
        else:
            await self._bus.emit(name, PaymentUpdateEvent(url=conn.url, payment=payload))

    async def _drop(self, conn: Connection, frame: str | bytes, message: str) -> None:
        logger.warning("Dropping frame: %s", message)
        error = MalformedMessageError(message, url=conn.url, frame=frame)
        conn.last_error = error
        await self._bus.emit(EventName.ERROR, ErrorEvent(url=conn.url, error=error))

    def _update_active(self) -> None:
        if self._metrics is None:
            return
        self._metrics.set_active_connections(
            sum(1 for conn in self._registry.values() if conn.is_active)
        )
