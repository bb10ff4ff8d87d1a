"""
============================================================================
Balance Sync v1.0.0
Observability Module - Prometheus Metrics
============================================================================
"""

from balance_sync.observability.metrics import (
    EXCHANGE_REQUESTS,
    EXCHANGE_REQUEST_SECONDS,
    SYNC_OPERATIONS,
    ACCOUNTS_RECONCILED,
    record_exchange_request,
    record_sync_operation,
    record_accounts_reconciled,
)

__all__ = [
    "EXCHANGE_REQUESTS",
    "EXCHANGE_REQUEST_SECONDS",
    "SYNC_OPERATIONS",
    "ACCOUNTS_RECONCILED",
    "record_exchange_request",
    "record_sync_operation",
    "record_accounts_reconciled",
]
