"""Persistent push subscriptions: registry, reconnect backoff, event bus."""

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
from flndr.streaming.manager import SubscriptionManager
from flndr.streaming.registry import (
    Connection,
    ConnectionRegistry,
    ConnectionState,
    SubscriptionKind,
)
from flndr.streaming.transport import DuplexStream, StreamTransport, WebsocketTransport

__all__ = [
    "BackoffPolicy",
    "CloseEvent",
    "Connection",
    "ConnectionRegistry",
    "ConnectionState",
    "DuplexStream",
    "ErrorEvent",
    "EventBus",
    "EventName",
    "InvoiceEvent",
    "OpenEvent",
    "PaymentUpdateEvent",
    "StreamTransport",
    "SubscriptionKind",
    "SubscriptionManager",
    "WebsocketTransport",
]
