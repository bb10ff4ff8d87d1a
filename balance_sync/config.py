"""
============================================================================
Balance Sync v1.0.0
Configuration - Environment Parsing and Logging Setup
============================================================================

This module provides configuration management for the sync client:
- Environment variable parsing with type safety
- Default values for optional configuration
- Fail-closed behavior on invalid values (CFG-001)

ENVIRONMENT VARIABLES:
    - POLONIEX_TRADING_URL: Trading API endpoint
      (default: https://poloniex.com/tradingApi)
    - POLONIEX_TIMEOUT_SECONDS: HTTP timeout in seconds (default: 30)
    - POLONIEX_CA_BUNDLE: Optional CA bundle path for TLS validation
    - BALANCE_DATABASE_URL: SQLAlchemy URL (default: sqlite:///balance.db)
    - BALANCE_PRIMARY_CURRENCIES: Comma-separated currencies never auto-hidden
      (default: BTC,ETH)
    - BALANCE_NONCE_STATE_DIR: Optional directory for persisted nonces
    - BALANCE_LOG_LEVEL: Logging level (default: INFO)

ERROR CODES:
    - CFG-001: Invalid configuration

============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union
import logging
import os

from dotenv import load_dotenv

from balance_sync.errors import ConfigurationError

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_TRADING_URL = "https://poloniex.com/tradingApi"

DEFAULT_TIMEOUT_SECONDS = 30.0

DEFAULT_DATABASE_URL = "sqlite:///balance.db"

# Zero balances in these currencies stay visible
DEFAULT_PRIMARY_CURRENCIES: Tuple[str, ...] = ("BTC", "ETH")

DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


# =============================================================================
# SyncConfig Class
# =============================================================================

@dataclass
class SyncConfig:
    """
    Sync client configuration.

    ============================================================================
    CONFIGURATION PARAMETERS:
    ============================================================================
    - trading_url: Poloniex trading API endpoint
    - timeout_seconds: HTTP timeout for a single request attempt
    - ca_bundle: CA bundle path, or None for the default trust store
    - database_url: SQLAlchemy database URL
    - primary_currencies: Currencies whose zero balances stay visible
    - nonce_state_dir: Directory for persisted nonces, or None
    - log_level: Logging level name
    ============================================================================
    """

    trading_url: str = DEFAULT_TRADING_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    ca_bundle: Optional[str] = None
    database_url: str = DEFAULT_DATABASE_URL
    primary_currencies: Tuple[str, ...] = field(
        default_factory=lambda: DEFAULT_PRIMARY_CURRENCIES
    )
    nonce_state_dir: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        self.primary_currencies = tuple(
            code.strip().upper() for code in self.primary_currencies if code.strip()
        )
        self.log_level = self.log_level.strip().upper()

    @property
    def tls_verify(self) -> Union[bool, str]:
        """Value for the requests ``verify`` argument."""
        return self.ca_bundle if self.ca_bundle else True

    def validate(self) -> None:
        """
        Validate configuration completeness.

        Raises:
            ConfigurationError: If any value is invalid (CFG-001)
        """
        errors = []

        if not self.trading_url.startswith("https://"):
            errors.append(
                f"POLONIEX_TRADING_URL must use https. Got: {self.trading_url}"
            )

        if self.timeout_seconds <= 0:
            errors.append(
                f"POLONIEX_TIMEOUT_SECONDS must be positive. Got: {self.timeout_seconds}"
            )

        if self.ca_bundle and not os.path.exists(self.ca_bundle):
            errors.append(f"POLONIEX_CA_BUNDLE not found: {self.ca_bundle}")

        if not self.database_url:
            errors.append("BALANCE_DATABASE_URL must not be empty")

        if not self.primary_currencies:
            errors.append("BALANCE_PRIMARY_CURRENCIES must name at least one currency")

        if not isinstance(getattr(logging, self.log_level, None), int):
            errors.append(f"BALANCE_LOG_LEVEL is not a logging level: {self.log_level}")

        if errors:
            error_msg = "Configuration validation failed: " + "; ".join(errors)
            logger.error(f"[CFG-001] {error_msg}")
            raise ConfigurationError(error_msg)


# =============================================================================
# Loader
# =============================================================================

def _parse_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be a number. Got: {raw!r}")


def load_sync_config(validate: bool = True) -> SyncConfig:
    """
    Load configuration from environment variables (and a .env file if present).

    Args:
        validate: Run SyncConfig.validate() before returning

    Returns:
        SyncConfig populated from the environment

    Raises:
        ConfigurationError: If a value cannot be parsed or is invalid (CFG-001)
    """
    load_dotenv()

    primary_raw = os.getenv("BALANCE_PRIMARY_CURRENCIES")
    primary = (
        tuple(primary_raw.split(","))
        if primary_raw is not None
        else DEFAULT_PRIMARY_CURRENCIES
    )

    config = SyncConfig(
        trading_url=os.getenv("POLONIEX_TRADING_URL", DEFAULT_TRADING_URL).strip(),
        timeout_seconds=_parse_float("POLONIEX_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        ca_bundle=os.getenv("POLONIEX_CA_BUNDLE") or None,
        database_url=os.getenv("BALANCE_DATABASE_URL", DEFAULT_DATABASE_URL).strip(),
        primary_currencies=primary,
        nonce_state_dir=os.getenv("BALANCE_NONCE_STATE_DIR") or None,
        log_level=os.getenv("BALANCE_LOG_LEVEL", DEFAULT_LOG_LEVEL),
    )

    if validate:
        config.validate()

    logger.debug(
        f"[CFG] Configuration loaded | trading_url={config.trading_url} | "
        f"timeout={config.timeout_seconds}s | database_url={config.database_url} | "
        f"primary={','.join(config.primary_currencies)}"
    )
    return config


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Apply the pipe-delimited log format used across the project."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT
    )
