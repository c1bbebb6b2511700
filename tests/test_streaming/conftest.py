"""Fixtures for streaming tests: scripted transport, fake sockets, event capture."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from flndr.config.settings import StreamingConfig
from flndr.errors.lnd_errors import StreamConnectionError
from flndr.streaming.events import EventBus
from flndr.streaming.manager import SubscriptionManager
from flndr.streaming.transport import DuplexStream, StreamTransport

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

REST_URL = "https://lnd.test:8080"
MACAROON = "0201036c6e64"

_END = object()


class FakeStream(DuplexStream):
    """An in-memory socket.

    Queued frames are delivered in order. Unless ``hold`` is set the socket
    then closes with ``code``, or fails with ``fail`` when given (a message
    for a dropped connection, or any exception to raise as is).
    """

    def __init__(
        self,
        frames: list[str | bytes] | None = None,
        *,
        hold: bool = False,
        code: int = 1000,
        reason: str = "",
        fail: str | Exception | None = None,
    ) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        for frame in frames or []:
            self._queue.put_nowait(frame)
        if not hold:
            self._queue.put_nowait(_END)
        self._code = code
        self._reason = reason
        self._fail = fail
        self._ended = False
        self.closed = False
        self.sent: list[str | bytes] = []

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        return self._frames()

    async def _frames(self) -> AsyncIterator[str | bytes]:
        while True:
            item = await self._queue.get()
            if item is _END:
                self._ended = True
                if isinstance(self._fail, Exception):
                    raise self._fail
                if self._fail is not None and not self.closed:
                    raise StreamConnectionError(self._fail)
                return
            yield item

    def push(self, frame: str | bytes) -> None:
        self._queue.put_nowait(frame)

    def end(self) -> None:
        self._queue.put_nowait(_END)

    @property
    def close_code(self) -> int | None:
        return self._code if self._ended or self.closed else None

    @property
    def close_reason(self) -> str:
        return self._reason

    async def send(self, message: str | bytes) -> None:
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(_END)


class FakeTransport(StreamTransport):
    """Replays a script of sockets and failures, then refuses every connect."""

    def __init__(self, script: list[FakeStream | Exception] | None = None) -> None:
        self.script = list(script or [])
        self.calls: list[tuple[str, dict[str, str]]] = []

    async def connect(self, url: str, headers: dict[str, str]) -> DuplexStream:
        self.calls.append((url, dict(headers)))
        item: FakeStream | Exception
        item = self.script.pop(0) if self.script else StreamConnectionError("refused", url=url)
        if isinstance(item, Exception):
            raise item
        return item


class Recorder:
    """Collects every bus event as ``(name, payload)``."""

    NAMES = ("open", "close", "error", "invoice", "paymentUpdate")

    def __init__(self, bus: EventBus) -> None:
        self.events: list[tuple[str, Any]] = []
        for name in self.NAMES:
            bus.on(name, self._handler(name))

    def _handler(self, name: str) -> Callable[[Any], None]:
        def handler(payload: Any) -> None:
            self.events.append((name, payload))

        return handler

    def of(self, name: str) -> list[Any]:
        return [payload for event, payload in self.events if event == name]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until *predicate* holds."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)


@pytest.fixture
def fake_stream():
    """Build a fake socket."""
    return FakeStream


@pytest.fixture
def fake_transport():
    """Build a scripted transport."""
    return FakeTransport


@pytest.fixture
def waiter():
    """Poll helper for background supervision tasks."""
    return wait_until


@pytest.fixture
async def make_manager():
    """Build a manager with fast backoff and an event recorder."""
    managers: list[SubscriptionManager] = []

    def _build(transport: StreamTransport, **config: Any):
        settings = {"base_delay_ms": 1, "max_delay_ms": 1000, **config}
        manager = SubscriptionManager(
            REST_URL,
            MACAROON,
            transport=transport,
            config=StreamingConfig(**settings),
        )
        managers.append(manager)
        return manager, Recorder(manager.bus)

    yield _build
    for manager in managers:
        await manager.close_all()
