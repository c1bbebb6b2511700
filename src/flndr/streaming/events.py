"""Subscription events and the in-process event bus.

Event names:
- ``open`` — a socket opened (``reconnected`` after a retry)
- ``close`` — a socket closed (``reconnecting`` while a retry is pending)
- ``error`` — a transport failure, an upstream error frame, or a dropped frame
- ``invoice`` — an invoice update pushed by the node
- ``paymentUpdate`` — a payment status update pushed by the node
"""

from __future__ import annotations

import enum
import inspect
import logging
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from flndr.errors.flndr_errors import FlndrError

logger = logging.getLogger(__name__)


class EventName(enum.StrEnum):
    """Names accepted by :meth:`EventBus.on`."""

    OPEN = "open"
    CLOSE = "close"
    ERROR = "error"
    INVOICE = "invoice"
    PAYMENT_UPDATE = "paymentUpdate"


@dataclass(frozen=True)
class OpenEvent:
    """A subscription socket opened."""

    url: str
    reconnected: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return asdict(self)


@dataclass(frozen=True)
class CloseEvent:
    """A subscription socket closed.

    ``delay`` is the wait in seconds before the next attempt; ``0`` when no
    retry is scheduled.
    """

    url: str
    code: int | None = None
    reason: str = ""
    reconnecting: bool = False
    attempt: int = 0
    delay: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return asdict(self)


@dataclass(frozen=True)
class ErrorEvent:
    """A failure on a subscription, never raised into caller code."""

    url: str
    error: FlndrError
    reconnecting: bool = False
    attempt: int = 0
    delay: float = 0.0

    @property
    def message(self) -> str:
        """The carried error's message."""
        return self.error.message

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict (the error is flattened)."""
        return {
            "url": self.url,
            "code": self.error.code,
            "message": self.error.message,
            "reconnecting": self.reconnecting,
            "attempt": self.attempt,
            "delay": self.delay,
        }


@dataclass(frozen=True)
class InvoiceEvent:
    """An invoice record pushed by ``/v1/invoices/subscribe`` or a single-invoice stream."""

    url: str
    invoice: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return asdict(self)


@dataclass(frozen=True)
class PaymentUpdateEvent:
    """A payment record pushed by one of the ``/v2/router/track*`` streams."""

    url: str
    payment: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return asdict(self)


class EventBus:
    """Named-event fan-out with ordered, isolated handlers.

    Handlers may be plain functions or coroutine functions. They run in
    registration order; an exception in one is logged and the next handler
    still runs.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[[Any], Awaitable[None] | None]]] = {}

    def on(self, name: str, handler: Callable[[Any], Awaitable[None] | None]) -> None:
        """Register *handler* for event *name*."""
        self._handlers.setdefault(str(name), []).append(handler)

    def off(self, name: str, handler: Callable[[Any], Awaitable[None] | None]) -> None:
        """Unregister *handler*; unknown handlers are ignored."""
        handlers = self._handlers.get(str(name), [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers(self, name: str) -> list[Callable[[Any], Awaitable[None] | None]]:
        """Return a copy of the handlers registered for *name*."""
        return list(self._handlers.get(str(name), []))

    async def emit(self, name: str, payload: Any) -> None:
        """Deliver *payload* to every handler of *name*."""
        for handler in self.handlers(name):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Event handler error on %s", name)

    def clear(self) -> None:
        """Drop every handler."""
        self._handlers.clear()
