"""
Unit Tests for Sync Configuration Parsing

Tests the configuration module:
- Default values for optional configuration
- Custom values from environment variables
- Invalid values fail closed with CFG-001
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from balance_sync.config import (
    DEFAULT_DATABASE_URL,
    DEFAULT_PRIMARY_CURRENCIES,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_TRADING_URL,
    SyncConfig,
    load_sync_config,
)
from balance_sync.errors import ConfigurationError


ENV_VARS = [
    "POLONIEX_TRADING_URL",
    "POLONIEX_TIMEOUT_SECONDS",
    "POLONIEX_CA_BUNDLE",
    "BALANCE_DATABASE_URL",
    "BALANCE_PRIMARY_CURRENCIES",
    "BALANCE_NONCE_STATE_DIR",
    "BALANCE_LOG_LEVEL",
]


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Isolate tests from the caller's environment."""
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


# =============================================================================
# Test Default Values
# =============================================================================

class TestDefaultValues:

    def test_defaults(self) -> None:
        config = load_sync_config()

        assert config.trading_url == DEFAULT_TRADING_URL
        assert config.timeout_seconds == DEFAULT_TIMEOUT_SECONDS
        assert config.ca_bundle is None
        assert config.database_url == DEFAULT_DATABASE_URL
        assert config.primary_currencies == DEFAULT_PRIMARY_CURRENCIES
        assert config.nonce_state_dir is None
        assert config.log_level == "INFO"

    def test_tls_verify_default(self) -> None:
        assert SyncConfig().tls_verify is True


# =============================================================================
# Test Custom Values
# =============================================================================

class TestCustomValues:

    def test_environment_values(self, clean_environment, tmp_path) -> None:
        bundle = tmp_path / "ca.pem"
        bundle.write_text("cert")
        clean_environment.setenv("POLONIEX_TIMEOUT_SECONDS", "7.5")
        clean_environment.setenv("POLONIEX_CA_BUNDLE", str(bundle))
        clean_environment.setenv("BALANCE_DATABASE_URL", "sqlite://")
        clean_environment.setenv("BALANCE_PRIMARY_CURRENCIES", "btc, usdt ,")
        clean_environment.setenv("BALANCE_NONCE_STATE_DIR", str(tmp_path))
        clean_environment.setenv("BALANCE_LOG_LEVEL", "debug")

        config = load_sync_config()

        assert config.timeout_seconds == 7.5
        assert config.tls_verify == str(bundle)
        assert config.database_url == "sqlite://"
        assert config.primary_currencies == ("BTC", "USDT")
        assert config.nonce_state_dir == str(tmp_path)
        assert config.log_level == "DEBUG"


# =============================================================================
# Test Fail-Closed Validation
# =============================================================================

class TestValidation:

    @pytest.mark.parametrize("var,value", [
        ("POLONIEX_TRADING_URL", "http://poloniex.com/tradingApi"),
        ("POLONIEX_TIMEOUT_SECONDS", "0"),
        ("POLONIEX_TIMEOUT_SECONDS", "-1"),
        ("POLONIEX_TIMEOUT_SECONDS", "soon"),
        ("POLONIEX_CA_BUNDLE", "/nonexistent/ca.pem"),
        ("BALANCE_PRIMARY_CURRENCIES", " , "),
        ("BALANCE_LOG_LEVEL", "LOUD"),
    ])
    def test_invalid_value(self, clean_environment, var: str, value: str) -> None:
        clean_environment.setenv(var, value)

        with pytest.raises(ConfigurationError) as exc_info:
            load_sync_config()
        assert exc_info.value.error_code == "CFG-001"

    def test_validation_can_be_skipped(self, clean_environment) -> None:
        clean_environment.setenv("POLONIEX_TRADING_URL", "http://localhost/tradingApi")
        config = load_sync_config(validate=False)
        assert config.trading_url == "http://localhost/tradingApi"
