# ============================================================================
# Balance Sync v1.0.0
# Exchange Integration Module - Poloniex Connectivity
# ============================================================================
#
# Purpose: Poloniex trading API integration for balance and transfer sync
#
# Components:
#   - DecimalGateway: Ensures all amounts use decimal.Decimal
#   - NonceGenerator: Strictly increasing per-key nonces
#   - PoloniexSigner: HMAC-SHA512 request signing
#   - PoloniexTradingClient: Signed POST transport (single attempt)
#   - parse_accounts / parse_transactions: JSON to domain records
#
# ============================================================================

from balance_sync.exchange.decimal_gateway import DecimalGateway
from balance_sync.exchange.hmac_signer import (
    NonceGenerator,
    PoloniexSigner,
    sign_body,
)
from balance_sync.exchange.poloniex_client import (
    PoloniexTradingClient,
    TradingCommand,
    TradingResponse,
)
from balance_sync.exchange.response_parser import (
    find_error,
    parse_accounts,
    parse_transactions,
)

__all__ = [
    # Decimal Gateway
    'DecimalGateway',
    # HMAC Signer
    'NonceGenerator',
    'PoloniexSigner',
    'sign_body',
    # Trading Client
    'PoloniexTradingClient',
    'TradingCommand',
    'TradingResponse',
    # Response Parser
    'find_error',
    'parse_accounts',
    'parse_transactions',
]
