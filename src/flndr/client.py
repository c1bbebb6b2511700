"""LndClient — one object for one-shot calls, history and subscriptions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Self

from flndr.config.settings import HistoryConfig, StreamingConfig
from flndr.history.aggregator import HistoryAggregator
from flndr.history.sources import InvoicesSource, PaymentsSource
from flndr.lnd.service import LndService
from flndr.metrics.collector import ClientMetrics
from flndr.streaming.manager import SubscriptionManager
from flndr.streaming.transport import WebsocketTransport

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from flndr.config.settings import AppConfig, LndConfig
    from flndr.history.models import HistoryFilter, PageResult
    from flndr.lnd.encoding import PaymentHash
    from flndr.lnd.models import BitcoinNetwork
    from flndr.streaming.registry import ConnectionState
    from flndr.streaming.transport import StreamTransport


class LndClient:
    """Client for one LND node.

    Usage::

        client = LndClient(load_lnd_config())
        await client.connect()
        try:
            page = await client.list_transaction_history(limit=10)
            client.on("invoice", print)
            await client.subscribe_invoices()
        finally:
            await client.close()
    """

    def __init__(
        self,
        config: LndConfig,
        *,
        history: HistoryConfig | None = None,
        streaming: StreamingConfig | None = None,
        transport: StreamTransport | None = None,
        metrics: ClientMetrics | None = None,
    ) -> None:
        self._config = config
        self._metrics = metrics or ClientMetrics()
        self._service = LndService(config, metrics=self._metrics)
        self._history = HistoryAggregator(
            PaymentsSource(self._service),
            InvoicesSource(self._service),
            config=history or HistoryConfig(),
            metrics=self._metrics,
        )
        self._subscriptions = SubscriptionManager(
            config.rest_api_url,
            config.macaroon,
            transport=transport or WebsocketTransport(config.tls_cert),
            config=streaming or StreamingConfig(),
            metrics=self._metrics,
        )

    @classmethod
    def from_app_config(
        cls, app: AppConfig, *, transport: StreamTransport | None = None
    ) -> Self:
        """Build a client from the top-level configuration."""
        return cls(app.lnd, history=app.history, streaming=app.streaming, transport=transport)

    @property
    def config(self) -> LndConfig:
        """Node connection settings."""
        return self._config

    @property
    def metrics(self) -> ClientMetrics:
        """This client's metrics."""
        return self._metrics

    @property
    def service(self) -> LndService:
        """The underlying REST service."""
        return self._service

    @property
    def history(self) -> HistoryAggregator:
        """The transaction history aggregator."""
        return self._history

    @property
    def subscriptions(self) -> SubscriptionManager:
        """The push subscription manager."""
        return self._subscriptions

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the REST client."""
        await self._service.connect()

    async def close(self) -> None:
        """Close every subscription, then the REST client."""
        await self._subscriptions.close_all()
        await self._service.close()

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # One-shot calls
    # ------------------------------------------------------------------

    async def get_info(self) -> dict[str, Any]:
        return await self._service.get_info()

    async def channel_balance(self) -> dict[str, Any]:
        return await self._service.channel_balance()

    async def get_network(self) -> BitcoinNetwork:
        return await self._service.get_network()

    async def is_mainnet(self) -> bool:
        return await self._service.is_mainnet()

    async def is_testnet(self) -> bool:
        return await self._service.is_testnet()

    async def is_regtest(self) -> bool:
        return await self._service.is_regtest()

    async def is_signet(self) -> bool:
        return await self._service.is_signet()

    async def add_invoice(self, request: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self._service.add_invoice(request)

    async def lookup_invoice_v2(self, payment_hash: PaymentHash) -> dict[str, Any]:
        return await self._service.lookup_invoice_v2(payment_hash)

    async def list_invoices(self, **params: Any) -> dict[str, Any]:
        return await self._service.list_invoices(**params)

    async def list_payments(self, **params: Any) -> dict[str, Any]:
        return await self._service.list_payments(**params)

    async def decode_pay_req(self, pay_req: str) -> dict[str, Any]:
        return await self._service.decode_pay_req(pay_req)

    async def estimate_route_fee(
        self, dest: PaymentHash, amt_sat: str | int, *, timeout: int | None = None
    ) -> dict[str, Any]:
        return await self._service.estimate_route_fee(dest, amt_sat, timeout=timeout)

    async def send_payment_v2(
        self, request: dict[str, Any], *, streaming: bool = False
    ) -> dict[str, Any] | str:
        """Send a payment.

        Returns the final payment record, or with ``streaming=True`` the URL
        of a tracking subscription whose ``paymentUpdate`` events follow the
        payment.
        """
        result = await self._service.send_payment_v2(request)
        if not streaming:
            return result
        return await self.track_payment_by_hash(result["payment_hash"])

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def list_transaction_history(
        self, history_filter: HistoryFilter | None = None, **kwargs: Any
    ) -> PageResult:
        """Return one page of merged payments and invoices, newest first."""
        return await self._history.fetch_history(history_filter, **kwargs)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe_invoices(self, **options: Any) -> str:
        """Follow every invoice update."""
        return await self._subscriptions.subscribe("invoices", **options)

    async def subscribe_single_invoice(self, payment_hash: PaymentHash, **options: Any) -> str:
        """Follow one invoice."""
        return await self._subscriptions.subscribe("invoice", payment_hash, **options)

    async def track_payment_by_hash(self, payment_hash: PaymentHash, **options: Any) -> str:
        """Follow one outbound payment."""
        return await self._subscriptions.subscribe("payment", payment_hash, **options)

    async def track_payment_v2(self, *, no_inflight_updates: bool = False, **options: Any) -> str:
        """Follow every outbound payment."""
        return await self._subscriptions.subscribe(
            "payments", no_inflight_updates=no_inflight_updates, **options
        )

    async def close_connection(self, url: str) -> None:
        await self._subscriptions.close(url)

    async def close_all_connections(self) -> None:
        await self._subscriptions.close_all()

    def get_connection_status(self, url: str) -> ConnectionState:
        return self._subscriptions.status(url)

    def is_connection_active(self, url: str) -> bool:
        return self._subscriptions.is_active(url)

    def on(self, name: str, handler: Callable[[Any], Awaitable[None] | None]) -> None:
        """Register a subscription event handler."""
        self._subscriptions.on(name, handler)

    def off(self, name: str, handler: Callable[[Any], Awaitable[None] | None]) -> None:
        """Unregister a subscription event handler."""
        self._subscriptions.off(name, handler)
