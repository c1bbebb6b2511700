"""Tests for the configuration system."""

from __future__ import annotations

import textwrap
from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from flndr.config.settings import (
    FALLBACK_MACAROON,
    FALLBACK_REST_API_URL,
    AppConfig,
    HistoryConfig,
    LndConfig,
    StreamingConfig,
    _load_yaml,
    load_lnd_config,
    load_lnd_config_with_fallback,
)
from flndr.errors.lnd_errors import ConfigError
from flndr.lnd.models import BitcoinNetwork

if TYPE_CHECKING:
    from pathlib import Path

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestDefaults:
    """Verify all default values are correct."""

    def test_lnd_defaults(self) -> None:
        cfg = LndConfig()
        assert cfg.rest_api_url == ""
        assert cfg.macaroon == ""
        assert cfg.tls_cert == ""
        assert cfg.network is None
        assert cfg.timeout == 30.0

    def test_history_defaults(self) -> None:
        cfg = HistoryConfig()
        assert cfg.default_limit == 25
        assert cfg.min_batch_size == 100
        assert cfg.fetch_all_min_batch_size == 1000
        assert cfg.max_iterations == 5

    def test_streaming_defaults(self) -> None:
        cfg = StreamingConfig()
        assert cfg.auto_reconnect is True
        assert cfg.max_retries == 5
        assert cfg.base_delay_ms == 1000
        assert cfg.max_delay_ms == 30000
        assert cfg.jitter == 0.0

    def test_app_defaults(self) -> None:
        cfg = AppConfig()
        assert cfg.debug is False
        assert isinstance(cfg.lnd, LndConfig)
        assert isinstance(cfg.history, HistoryConfig)
        assert isinstance(cfg.streaming, StreamingConfig)

    def test_headers(self) -> None:
        cfg = LndConfig(macaroon="abcd")
        assert cfg.headers == {"Grpc-Metadata-macaroon": "abcd"}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_max_iterations_at_least_one(self) -> None:
        with pytest.raises(ValidationError):
            HistoryConfig(max_iterations=0)

    def test_jitter_range(self) -> None:
        with pytest.raises(ValidationError):
            StreamingConfig(jitter=2.0)

    def test_network_parsed(self) -> None:
        assert LndConfig(network="testnet").network == BitcoinNetwork.TESTNET


# ---------------------------------------------------------------------------
# Credential files
# ---------------------------------------------------------------------------


class TestFiles:
    def test_macaroon_file_read_as_hex(self, tmp_path: Path) -> None:
        f = tmp_path / "admin.macaroon"
        f.write_bytes(b"\x02\x01\x03lnd")
        cfg = LndConfig(macaroon_path=str(f))
        assert cfg.macaroon == "0201036c6e64"

    def test_inline_macaroon_wins(self, tmp_path: Path) -> None:
        f = tmp_path / "admin.macaroon"
        f.write_bytes(b"\xff")
        cfg = LndConfig(macaroon="aa", macaroon_path=str(f))
        assert cfg.macaroon == "aa"

    def test_missing_macaroon_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Failed to read macaroon file"):
            LndConfig(macaroon_path=str(tmp_path / "missing.macaroon"))

    def test_tls_cert_file(self, tmp_path: Path) -> None:
        f = tmp_path / "tls.cert"
        f.write_text("-----BEGIN CERTIFICATE-----\n")
        cfg = LndConfig(tls_cert_path=str(f))
        assert cfg.tls_cert.startswith("-----BEGIN CERTIFICATE-----")

    def test_missing_tls_cert_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Failed to read TLS certificate file"):
            LndConfig(tls_cert_path=str(tmp_path / "missing.cert"))


# ---------------------------------------------------------------------------
# Environment variable override
# ---------------------------------------------------------------------------


class TestEnvOverride:
    """Verify environment variables override defaults."""

    def test_lnd_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LND_REST_API_URL", "https://node:8080")
        monkeypatch.setenv("LND_MACAROON", "abcd")
        monkeypatch.setenv("LND_NETWORK", "regtest")
        cfg = LndConfig()
        assert cfg.rest_api_url == "https://node:8080"
        assert cfg.macaroon == "abcd"
        assert cfg.network == BitcoinNetwork.REGTEST

    def test_top_level_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FLNDR_DEBUG", "true")
        assert AppConfig().debug is True

    def test_nested_env_via_delimiter(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FLNDR_STREAMING__MAX_RETRIES", "9")
        monkeypatch.setenv("FLNDR_HISTORY__MAX_ITERATIONS", "7")
        cfg = AppConfig()
        assert cfg.streaming.max_retries == 9
        assert cfg.history.max_iterations == 7


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------


class TestYAML:
    """YAML config file loading."""

    def test_load_yaml_nonexistent(self, tmp_path: Path) -> None:
        assert _load_yaml(tmp_path / "nonexistent.yaml") == {}

    def test_load_yaml_non_dict(self, tmp_path: Path) -> None:
        f = tmp_path / "list.yaml"
        f.write_text("- item1\n- item2\n")
        assert _load_yaml(f) == {}

    def test_from_yaml(self, tmp_path: Path) -> None:
        f = tmp_path / "flndr.yaml"
        f.write_text(
            textwrap.dedent("""\
                debug: true
                history:
                  default_limit: 50
                streaming:
                  auto_reconnect: false
                  base_delay_ms: 250
            """)
        )
        cfg = AppConfig.from_yaml(f)
        assert cfg.debug is True
        assert cfg.history.default_limit == 50
        assert cfg.streaming.auto_reconnect is False
        assert cfg.streaming.base_delay_ms == 250

    def test_env_overrides_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        f = tmp_path / "flndr.yaml"
        f.write_text("streaming:\n  max_retries: 2\n  base_delay_ms: 250\n")
        monkeypatch.setenv("FLNDR_STREAMING__MAX_RETRIES", "8")
        cfg = AppConfig.from_yaml(f)
        assert cfg.streaming.max_retries == 8
        assert cfg.streaming.base_delay_ms == 250


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


class TestLoaders:
    def test_requires_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LND_MACAROON", "abcd")
        with pytest.raises(ConfigError, match="LND_REST_API_URL environment variable is required"):
            load_lnd_config()

    def test_requires_macaroon(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LND_REST_API_URL", "https://node:8080")
        with pytest.raises(ConfigError, match="Either LND_MACAROON or LND_MACAROON_PATH"):
            load_lnd_config()

    def test_load(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LND_REST_API_URL", "https://node:8080")
        monkeypatch.setenv("LND_MACAROON", "abcd")
        assert load_lnd_config().rest_api_url == "https://node:8080"

    def test_fallback(self, caplog) -> None:
        cfg = load_lnd_config_with_fallback()
        assert cfg.rest_api_url == FALLBACK_REST_API_URL
        assert cfg.macaroon == FALLBACK_MACAROON
        assert cfg.network == BitcoinNetwork.MAINNET
        assert "Falling back to example values" in caplog.text

    def test_fallback_quiet_with_network(self, caplog) -> None:
        cfg = load_lnd_config_with_fallback(warn=False, network=BitcoinNetwork.SIGNET)
        assert cfg.network == BitcoinNetwork.SIGNET
        assert caplog.text == ""

    def test_network_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LND_REST_API_URL", "https://node:8080")
        monkeypatch.setenv("LND_MACAROON", "abcd")
        monkeypatch.setenv("LND_NETWORK", "testnet")
        cfg = load_lnd_config_with_fallback(network=BitcoinNetwork.REGTEST)
        assert cfg.network == BitcoinNetwork.REGTEST
