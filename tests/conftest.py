"""Shared test fixtures for the flndr test suite."""

from __future__ import annotations

import os

import httpx
import pytest

from flndr.config.settings import LndConfig

REST_URL = "https://lnd.test:8080"
MACAROON = "0201036c6e64"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's LND_* / FLNDR_* variables out of the tests."""
    for key in list(os.environ):
        if key.startswith(("LND_", "FLNDR_")):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def lnd_config() -> LndConfig:
    """Provide a node connection pointing at a fake host."""
    return LndConfig(rest_api_url=REST_URL, macaroon=MACAROON)


@pytest.fixture
def mock_client():
    """Build an httpx client that answers through *handler*."""

    def _build(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=REST_URL)

    return _build
