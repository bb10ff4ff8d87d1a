# ============================================================================
# Balance Sync v1.0.0
# Poloniex Trading API Client
# ============================================================================
#
# Purpose: Issues signed POST requests to the Poloniex trading endpoint and
#          returns the raw response body with its HTTP status
#
# MANDATE:
#   - Every request signed with HMAC-SHA512 via PoloniexSigner
#   - TLS certificate validation always on (system store or CA bundle)
#   - Exactly one attempt per call; no retry, no backoff
#   - Credentials never logged
#
# Error Codes:
#   - PLNX-NET-001: Transport failure (timeout, connection error, TLS error)
#
# ============================================================================

import time
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Union

import requests

from balance_sync.errors import TransportError
from balance_sync.exchange.hmac_signer import NonceGenerator, PoloniexSigner
from balance_sync.models import Credentials
from balance_sync.observability.metrics import record_exchange_request

logger = logging.getLogger(__name__)


# ============================================================================
# Commands and Responses
# ============================================================================

class TradingCommand(str, Enum):
    """Read-only trading API commands used by the sync flows."""
    RETURN_COMPLETE_BALANCES = "returnCompleteBalances"
    RETURN_DEPOSITS_WITHDRAWALS = "returnDepositsWithdrawals"


@dataclass(frozen=True)
class TradingResponse:
    """Raw trading API response."""
    body: bytes
    status_code: int

    @property
    def is_rejected(self) -> bool:
        """True for the statuses Poloniex uses to reject a key/secret pair."""
        return self.status_code in (400, 403)


# ============================================================================
# Poloniex Trading Client
# ============================================================================

class PoloniexTradingClient:
    """
    Poloniex Trading API Client.

    Example Usage:
        with PoloniexTradingClient(credentials) as client:
            response = client.return_complete_balances()
            accounts = parse_accounts(response.body)
    """

    TRADING_URL = "https://poloniex.com/tradingApi"
    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        credentials: Credentials,
        trading_url: str = TRADING_URL,
        timeout: float = DEFAULT_TIMEOUT,
        verify: Union[bool, str] = True,
        session: Optional[requests.Session] = None,
        nonce_generator: Optional[NonceGenerator] = None,
        correlation_id: Optional[str] = None
    ):
        """
        Initialize the trading client.

        Args:
            credentials: API key/secret pair
            trading_url: Trading endpoint URL
            timeout: HTTP timeout in seconds for the single attempt
            verify: requests TLS verification (True or CA bundle path)
            session: Optional pre-built requests.Session
            nonce_generator: Optional nonce source (default: shared per key)
            correlation_id: Audit trail identifier
        """
        self.trading_url = trading_url
        self.timeout = timeout
        self.verify = verify
        self.correlation_id = correlation_id
        self.signer = PoloniexSigner(
            credentials,
            nonce_generator=nonce_generator,
            correlation_id=correlation_id
        )
        self._session = session or requests.Session()

        logger.info(
            f"[PLNX-CLI] Client initialized | "
            f"api_key={self.signer.get_redacted_key()} | "
            f"correlation_id={correlation_id}"
        )

    # ========================================================================
    # Commands
    # ========================================================================

    def execute(
        self,
        command: TradingCommand,
        params: Optional[Mapping[str, str]] = None
    ) -> TradingResponse:
        """
        Sign and send one trading command.

        Args:
            command: Trading command
            params: Command-specific parameters

        Returns:
            TradingResponse with raw body bytes and HTTP status

        Raises:
            TransportError: If no response was received (PLNX-NET-001)
        """
        request_params: Dict[str, str] = {"command": command.value}
        if params:
            request_params.update(params)

        signed = self.signer.sign(request_params)
        headers = self.signer.headers(signed)
        headers["Content-Type"] = "application/x-www-form-urlencoded"

        logger.debug(
            f"[PLNX-CLI] POST {command.value} | "
            f"api_key={self.signer.get_redacted_key()} | "
            f"correlation_id={self.correlation_id}"
        )

        started = time.monotonic()
        try:
            response = self._session.post(
                self.trading_url,
                data=signed.body,
                headers=headers,
                timeout=self.timeout,
                verify=self.verify
            )
        except requests.RequestException as e:
            record_exchange_request(command.value, "transport_error", time.monotonic() - started)
            logger.error(
                f"[PLNX-NET-001] Request failed | "
                f"command={command.value} | error={type(e).__name__}: {e} | "
                f"correlation_id={self.correlation_id}"
            )
            raise TransportError(f"{command.value} failed: {e}") from e

        record_exchange_request(
            command.value, str(response.status_code), time.monotonic() - started
        )
        logger.info(
            f"[PLNX-CLI] Response received | "
            f"command={command.value} | status={response.status_code} | "
            f"bytes={len(response.content)} | correlation_id={self.correlation_id}"
        )

        return TradingResponse(body=response.content, status_code=response.status_code)

    def return_complete_balances(self) -> TradingResponse:
        """Fetch balances for every currency (authenticated)."""
        return self.execute(TradingCommand.RETURN_COMPLETE_BALANCES)

    def return_deposits_withdrawals(self, start: int, end: int) -> TradingResponse:
        """
        Fetch deposit and withdrawal history within a time window.

        Args:
            start: Window start, UNIX seconds
            end: Window end, UNIX seconds
        """
        return self.execute(
            TradingCommand.RETURN_DEPOSITS_WITHDRAWALS,
            {"start": str(start), "end": str(end)}
        )

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def close(self) -> None:
        """Close HTTP session."""
        self._session.close()
        logger.debug(
            f"[PLNX-CLI] Client closed | correlation_id={self.correlation_id}"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
