"""LND REST client — node info, balances, invoices, payments.

Provides an async HTTP client for the LND REST API:
- GET  /v1/getinfo — Node identity, chain and sync state
- GET  /v1/balance/channels — Channel balance
- POST /v1/invoices — Create an invoice
- GET  /v1/invoices — List invoices (paged)
- GET  /v2/invoices/lookup — Look up an invoice by payment hash
- GET  /v1/payments — List payments (paged)
- GET  /v1/payreq/{pay_req} — Decode a payment request
- POST /v2/router/route/estimatefee — Estimate routing fees
- POST /v2/router/send — Send a payment
"""

from __future__ import annotations

import contextlib
import json
import logging
import ssl
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from flndr.errors.lnd_errors import UpstreamRequestError
from flndr.lnd.encoding import to_url_safe_base64
from flndr.lnd.models import BitcoinNetwork

if TYPE_CHECKING:
    from collections.abc import Iterator

    from flndr.config.settings import LndConfig
    from flndr.lnd.encoding import PaymentHash
    from flndr.metrics.collector import ClientMetrics

logger = logging.getLogger(__name__)

# Request defaults LND clients conventionally send
DEFAULT_FEE_ESTIMATE_TIMEOUT = 60
DEFAULT_SEND_TIMEOUT_SECONDS = "60"


def build_ssl_context(tls_cert: str) -> ssl.SSLContext | None:
    """Return an SSL context trusting *tls_cert* (PEM), or None when unset."""
    if not tls_cert:
        return None
    ctx = ssl.create_default_context(cadata=tls_cert)
    # LND's self-signed certificate is issued for localhost / the node alias
    ctx.check_hostname = False
    return ctx


def _query(params: dict[str, Any]) -> dict[str, str]:
    """Drop unset params and render booleans the way LND expects."""
    query: dict[str, str] = {}
    for key, value in params.items():
        if value is None or value == "":
            continue
        if isinstance(value, bool):
            query[key] = "true" if value else "false"
        else:
            query[key] = str(value)
    return query


class LndService:
    """Async HTTP client for the LND REST API.

    Usage::

        lnd = LndService(config)
        await lnd.connect()
        try:
            info = await lnd.get_info()
            page = await lnd.list_payments(max_payments=100, reversed=True)
        finally:
            await lnd.close()
    """

    def __init__(self, config: LndConfig, *, metrics: ClientMetrics | None = None) -> None:
        """Initialize the LND service.

        Args:
            config: Node connection (REST URL, macaroon, TLS cert).
            metrics: Optional metrics sink for request timings.
        """
        self._config = config
        self._metrics = metrics
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        verify: ssl.SSLContext | bool = build_ssl_context(self._config.tls_cert) or True
        self._client = httpx.AsyncClient(
            base_url=self._config.rest_api_url.rstrip("/"),
            headers=self._config.headers,
            timeout=self._config.timeout,
            verify=verify,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    @property
    def config(self) -> LndConfig:
        """Node connection settings."""
        return self._config

    # ------------------------------------------------------------------
    # Node
    # ------------------------------------------------------------------

    async def get_info(self) -> dict[str, Any]:
        """Get basic information about the node.

        Raises:
            UpstreamRequestError: On HTTP or transport errors.
        """
        return await self._request("GET", "/v1/getinfo", "get_info", "Failed to get LND info")

    async def channel_balance(self) -> dict[str, Any]:
        """Get the node's channel balance."""
        return await self._request(
            "GET", "/v1/balance/channels", "channel_balance", "Failed to get channel balance"
        )

    async def get_network(self) -> BitcoinNetwork:
        """Detect the chain network from ``getinfo``.

        Falls back to the configured network (or mainnet) when the node is
        unreachable or reports an unknown network.
        """
        try:
            info = await self.get_info()
        except UpstreamRequestError as exc:
            fallback = self._config.network or BitcoinNetwork.MAINNET
            logger.warning("Failed to detect network, using %s: %s", fallback, exc.message)
            return fallback
        chains = info.get("chains") or []
        if chains:
            network = BitcoinNetwork.from_string(str(chains[0].get("network", "")))
            if network is not None:
                return network
        return self._config.network or BitcoinNetwork.MAINNET

    async def is_mainnet(self) -> bool:
        """Whether the node runs on mainnet."""
        return await self.get_network() == BitcoinNetwork.MAINNET

    async def is_testnet(self) -> bool:
        """Whether the node runs on testnet."""
        return await self.get_network() == BitcoinNetwork.TESTNET

    async def is_regtest(self) -> bool:
        """Whether the node runs on regtest."""
        return await self.get_network() == BitcoinNetwork.REGTEST

    async def is_signet(self) -> bool:
        """Whether the node runs on signet."""
        return await self.get_network() == BitcoinNetwork.SIGNET

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    async def add_invoice(self, request: dict[str, Any] | None = None) -> dict[str, Any]:
        """Create an invoice.

        Args:
            request: AddInvoice fields (``memo``, ``value``, ``expiry``, ...).
        """
        return await self._request(
            "POST",
            "/v1/invoices",
            "add_invoice",
            "Failed to create invoice",
            json_body=request or {},
        )

    async def lookup_invoice_v2(self, payment_hash: PaymentHash) -> dict[str, Any]:
        """Look up an invoice by payment hash.

        Args:
            payment_hash: Tagged hash; a plain ``str`` is read as hex.
        """
        return await self._request(
            "GET",
            "/v2/invoices/lookup",
            "lookup_invoice",
            "Failed to lookup invoice",
            params={"payment_hash": to_url_safe_base64(payment_hash)},
        )

    async def list_invoices(
        self,
        *,
        pending_only: bool | None = None,
        index_offset: str | None = None,
        num_max_invoices: int | None = None,
        reversed: bool | None = None,  # noqa: A002
        creation_date_start: str | int | None = None,
        creation_date_end: str | int | None = None,
    ) -> dict[str, Any]:
        """List invoices, one page at a time.

        Returns:
            Dict with ``invoices``, ``first_index_offset``, ``last_index_offset``.
        """
        params = _query(
            {
                "pending_only": pending_only,
                "index_offset": index_offset,
                "num_max_invoices": num_max_invoices,
                "reversed": reversed,
                "creation_date_start": creation_date_start,
                "creation_date_end": creation_date_end,
            }
        )
        return await self._request(
            "GET", "/v1/invoices", "list_invoices", "Failed to list invoices", params=params
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def list_payments(
        self,
        *,
        include_incomplete: bool | None = None,
        index_offset: str | None = None,
        max_payments: int | None = None,
        reversed: bool | None = None,  # noqa: A002
        count_total_payments: bool | None = None,
        creation_date_start: str | int | None = None,
        creation_date_end: str | int | None = None,
    ) -> dict[str, Any]:
        """List outbound payments, one page at a time.

        Returns:
            Dict with ``payments``, ``first_index_offset``, ``last_index_offset``.
        """
        params = _query(
            {
                "include_incomplete": include_incomplete,
                "index_offset": index_offset,
                "max_payments": max_payments,
                "reversed": reversed,
                "count_total_payments": count_total_payments,
                "creation_date_start": creation_date_start,
                "creation_date_end": creation_date_end,
            }
        )
        return await self._request(
            "GET", "/v1/payments", "list_payments", "Failed to list payments", params=params
        )

    async def decode_pay_req(self, pay_req: str) -> dict[str, Any]:
        """Decode a BOLT11 payment request."""
        return await self._request(
            "GET",
            f"/v1/payreq/{quote(pay_req, safe='')}",
            "decode_pay_req",
            "Failed to decode payment request",
        )

    async def estimate_route_fee(
        self,
        dest: PaymentHash,
        amt_sat: str | int,
        *,
        timeout: int | None = None,
    ) -> dict[str, Any]:
        """Estimate the routing fee towards *dest*.

        Args:
            dest: Destination node pubkey; a plain ``str`` is read as hex.
            amt_sat: Amount in satoshis.
            timeout: Probe timeout in seconds (default 60).
        """
        body = {
            "dest": to_url_safe_base64(dest),
            "amt_sat": str(amt_sat),
            "timeout": timeout if timeout is not None else DEFAULT_FEE_ESTIMATE_TIMEOUT,
        }
        return await self._request(
            "POST",
            "/v2/router/route/estimatefee",
            "estimate_route_fee",
            "Failed to estimate route fees",
            json_body=body,
        )

    async def send_payment_v2(self, request: dict[str, Any]) -> dict[str, Any]:
        """Send a payment and return its final reported state.

        The node streams one JSON update per line; the last one is returned.
        ``timeout_seconds`` defaults to 60.
        """
        body = {k: v for k, v in request.items() if k != "streaming"}
        body.setdefault("timeout_seconds", DEFAULT_SEND_TIMEOUT_SECONDS)
        return await self._request(
            "POST",
            "/v2/router/send",
            "send_payment",
            "Failed to send payment",
            json_body=body,
            streamed=True,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "LND service not connected. Call connect() first."
            raise UpstreamRequestError(msg, operation="connect", status_code=500)
        return self._client

    @contextlib.contextmanager
    def _track(self, operation: str) -> Iterator[None]:
        if self._metrics is None:
            yield
            return
        with self._metrics.track_request(operation):
            yield

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        failure: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        streamed: bool = False,
    ) -> dict[str, Any]:
        """Issue a request and decode the JSON reply.

        Raises:
            UpstreamRequestError: ``"<failure>: <cause>"`` on transport
                errors, non-2xx replies, or undecodable bodies.
        """
        client = self._ensure_connected()
        with self._track(operation):
            try:
                response = await client.request(method, path, params=params, json=json_body)
                response.raise_for_status()
                if streamed:
                    return _last_stream_update(response.text)
                data = response.json()
            except httpx.HTTPStatusError as exc:
                raise UpstreamRequestError(
                    f"{failure}: {exc}",
                    operation=operation,
                    status_code=exc.response.status_code,
                ) from exc
            except (httpx.HTTPError, ValueError) as exc:
                raise UpstreamRequestError(f"{failure}: {exc}", operation=operation) from exc
        return data if isinstance(data, dict) else {"result": data}


def _last_stream_update(text: str) -> dict[str, Any]:
    """Return the last ``result`` of a newline-delimited JSON stream.

    Raises:
        ValueError: If the body holds no JSON object, or the last line
            carries an ``error`` object.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        msg = "empty response"
        raise ValueError(msg)
    update = json.loads(lines[-1])
    if not isinstance(update, dict):
        msg = "unexpected response shape"
        raise ValueError(msg)
    if "error" in update and update["error"]:
        error = update["error"]
        message = error.get("message", error) if isinstance(error, dict) else error
        raise ValueError(str(message))
    result = update.get("result", update)
    return result if isinstance(result, dict) else {"result": result}


