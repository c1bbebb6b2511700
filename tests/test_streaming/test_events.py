"""Tests for subscription events and the event bus."""

from __future__ import annotations

import logging

from flndr.errors.lnd_errors import MalformedMessageError
from flndr.streaming.events import (
    CloseEvent,
    ErrorEvent,
    EventBus,
    EventName,
    InvoiceEvent,
    OpenEvent,
)


class TestEvents:
    def test_names(self) -> None:
        assert [str(n) for n in EventName] == [
            "open",
            "close",
            "error",
            "invoice",
            "paymentUpdate",
        ]

    def test_open_to_dict(self) -> None:
        assert OpenEvent(url="u", reconnected=True).to_dict() == {"url": "u", "reconnected": True}

    def test_close_defaults(self) -> None:
        event = CloseEvent(url="u")
        assert event.code is None
        assert event.reconnecting is False
        assert event.delay == 0.0

    def test_error_flattens(self) -> None:
        event = ErrorEvent(url="u", error=MalformedMessageError("bad frame"), attempt=2)
        assert event.message == "bad frame"
        assert event.to_dict() == {
            "url": "u",
            "code": "malformed-message",
            "message": "bad frame",
            "reconnecting": False,
            "attempt": 2,
            "delay": 0.0,
        }

    def test_invoice_to_dict(self) -> None:
        event = InvoiceEvent(url="u", invoice={"memo": "m"})
        assert event.to_dict() == {"url": "u", "invoice": {"memo": "m"}}


class TestEventBus:
    async def test_emit_in_registration_order(self) -> None:
        bus = EventBus()
        calls: list[str] = []

        async def first(payload) -> None:
            calls.append(f"first:{payload}")

        def second(payload) -> None:
            calls.append(f"second:{payload}")

        bus.on("invoice", first)
        bus.on("invoice", second)
        await bus.emit("invoice", "x")

        assert calls == ["first:x", "second:x"]

    async def test_raising_handler_is_isolated(self, caplog) -> None:
        bus = EventBus()
        calls: list[str] = []

        def broken(payload) -> None:
            raise RuntimeError("handler bug")

        bus.on(EventName.OPEN, broken)
        bus.on(EventName.OPEN, lambda payload: calls.append(payload))

        with caplog.at_level(logging.ERROR, logger="flndr.streaming.events"):
            await bus.emit(EventName.OPEN, "ok")

        assert calls == ["ok"]
        assert "handler bug" in caplog.text

    async def test_off(self) -> None:
        bus = EventBus()
        calls: list[str] = []

        def handler(payload) -> None:
            calls.append(payload)

        bus.on("close", handler)
        bus.off("close", handler)
        bus.off("close", handler)  # unknown handlers are ignored
        await bus.emit("close", "x")

        assert calls == []

    async def test_enum_and_string_names_match(self) -> None:
        bus = EventBus()
        calls: list[str] = []
        bus.on("paymentUpdate", calls.append)
        await bus.emit(EventName.PAYMENT_UPDATE, "p")
        assert calls == ["p"]

    async def test_emit_without_handlers(self) -> None:
        await EventBus().emit("error", None)

    def test_clear(self) -> None:
        bus = EventBus()
        bus.on("open", print)
        bus.clear()
        assert bus.handlers("open") == []
