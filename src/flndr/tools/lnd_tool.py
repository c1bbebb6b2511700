#!/usr/bin/env python3
"""LND Tool — inspect a node, page through history, watch live updates.

A standalone CLI utility driven by the ``LND_*`` environment variables:

    # Node identity and sync state
    python -m flndr.tools.lnd_tool info

    # Channel balance
    python -m flndr.tools.lnd_tool balance

    # Newest transactions, payments and invoices merged
    python -m flndr.tools.lnd_tool history [limit]

    # Print invoice and payment updates until Ctrl-C
    python -m flndr.tools.lnd_tool monitor

Without ``LND_REST_API_URL`` and a macaroon the tool warns and uses
placeholder values, so every command will fail to reach a node.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from typing import Any

from flndr.client import LndClient
from flndr.config.settings import load_lnd_config_with_fallback
from flndr.errors.flndr_errors import FlndrError


def _client() -> LndClient:
    return LndClient(load_lnd_config_with_fallback())


def _cmd_info() -> None:
    """Print node identity and sync state."""

    async def _run() -> None:
        client = _client()
        await client.connect()
        try:
            info = await client.get_info()
            print(f"Alias:        {info.get('alias', '')}")
            print(f"Pubkey:       {info.get('identity_pubkey', '')}")
            print(f"Version:      {info.get('version', '')}")
            print(f"Network:      {await client.get_network()}")
            print(f"Block height: {info.get('block_height', 0)}")
            print(f"Synced:       {info.get('synced_to_chain', False)}")
            print(f"Channels:     {info.get('num_active_channels', 0)} active")
        finally:
            await client.close()

    asyncio.run(_run())


def _cmd_balance() -> None:
    """Print the channel balance."""

    async def _run() -> None:
        client = _client()
        await client.connect()
        try:
            bal = await client.channel_balance()
            local = int((bal.get("local_balance") or {}).get("sat", bal.get("balance", 0)))
            remote = int((bal.get("remote_balance") or {}).get("sat", 0))
            pending = int(bal.get("pending_open_balance", 0))
            print(f"Local:         {local:>12,} sats")
            print(f"Remote:        {remote:>12,} sats")
            print(f"Pending open:  {pending:>12,} sats")
        finally:
            await client.close()

    asyncio.run(_run())


def _cmd_history(limit: int = 10) -> None:
    """Print the newest transactions."""

    async def _run() -> None:
        client = _client()
        await client.connect()
        try:
            page = await client.list_transaction_history(limit=limit)
            if not page.transactions:
                print("No transactions found")
                return
            print(f"Transactions (newest first, {len(page.transactions)} of {page.total_count}):")
            print("-" * 80)
            for tx in page.transactions:
                sign = "-" if tx.type == "sent" else "+"
                print(
                    f"  {tx.timestamp}  {sign}{tx.amount:>10,} sats  "
                    f"fee {tx.fee:>6,}  {tx.status:<10}  {tx.description}"
                )
            print("-" * 80)
            for warning in page.warnings:
                print(f"  warning: {warning}")
            if page.next_cursor is not None:
                print(f"  payment cursor: {page.next_cursor.payment_cursor}")
                print(f"  invoice cursor: {page.next_cursor.invoice_cursor}")
        finally:
            await client.close()

    asyncio.run(_run())


def _cmd_monitor() -> None:
    """Print invoice and payment updates until interrupted."""

    def _print(kind: str) -> Any:
        def handler(event: Any) -> None:
            print(f"[{kind}] {event.to_dict()}")

        return handler

    async def _run() -> None:
        client = _client()
        await client.connect()
        for name in ("open", "close", "error", "invoice", "paymentUpdate"):
            client.on(name, _print(name))
        try:
            await client.subscribe_invoices()
            await client.track_payment_v2()
            print("Listening for updates, press Ctrl-C to stop")
            await asyncio.Event().wait()
        finally:
            await client.close()

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run())


def main() -> None:
    """CLI entry point."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    cmd = sys.argv[1].lower()

    try:
        if cmd == "info":
            _cmd_info()
        elif cmd == "balance":
            _cmd_balance()
        elif cmd == "history":
            limit = int(sys.argv[2]) if len(sys.argv) > 2 else 10
            _cmd_history(limit)
        elif cmd == "monitor":
            _cmd_monitor()
        else:
            print(f"Unknown command: {cmd}")
            print(__doc__)
            sys.exit(1)
    except FlndrError as exc:
        print(f"Error: {exc.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
