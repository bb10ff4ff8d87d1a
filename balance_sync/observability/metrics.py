"""
============================================================================
Balance Sync v1.0.0
Prometheus Metrics - Exchange Requests and Sync Outcomes
============================================================================

Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- balance_sync_exchange_requests_total: Trading API calls by command/status
- balance_sync_exchange_request_seconds: Trading API latency by command
- balance_sync_operations_total: Orchestrator operations by outcome
- balance_sync_accounts_reconciled_total: Account upserts/hides/deletions

Recording functions never raise; a metrics failure is logged and dropped.

============================================================================
"""

import logging
from typing import Optional

from prometheus_client import Counter, Histogram

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

EXCHANGE_REQUESTS = Counter(
    "balance_sync_exchange_requests_total",
    "Total number of trading API requests sent",
    ["command", "status"]
)

EXCHANGE_REQUEST_SECONDS = Histogram(
    "balance_sync_exchange_request_seconds",
    "Trading API request latency in seconds",
    ["command"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

SYNC_OPERATIONS = Counter(
    "balance_sync_operations_total",
    "Total number of sync operations by outcome",
    ["operation", "outcome"]
)

ACCOUNTS_RECONCILED = Counter(
    "balance_sync_accounts_reconciled_total",
    "Accounts touched by reconciliation",
    ["action"]
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_exchange_request(command: str, status: str, elapsed_seconds: float) -> None:
    """
    Record one trading API request.

    Args:
        command: Trading command name (e.g. "returnCompleteBalances")
        status: HTTP status code as string, or "transport_error"
        elapsed_seconds: Wall time of the single attempt
    """
    try:
        EXCHANGE_REQUESTS.labels(command=command, status=status).inc()
        EXCHANGE_REQUEST_SECONDS.labels(command=command).observe(elapsed_seconds)
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record exchange_request metric | error=%s",
            str(e)
        )


def record_sync_operation(
    operation: str,
    outcome: str,
    correlation_id: Optional[str] = None
) -> None:
    """
    Record an orchestrator operation outcome.

    Args:
        operation: "authenticate", "sync_balances" or "sync_transactions"
        outcome: "success" or an error code (e.g. "PLNX-AUTH-001")
        correlation_id: Optional tracking ID
    """
    try:
        SYNC_OPERATIONS.labels(operation=operation, outcome=outcome).inc()
        logger.debug(
            "Metric: sync_operation | operation=%s | outcome=%s | correlation_id=%s",
            operation, outcome, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-002] Failed to record sync_operation metric | error=%s",
            str(e)
        )


def record_accounts_reconciled(action: str, count: int) -> None:
    """
    Record reconciliation actions.

    Args:
        action: "upserted", "hidden" or "deleted"
        count: Number of accounts affected
    """
    if count <= 0:
        return
    try:
        ACCOUNTS_RECONCILED.labels(action=action).inc(count)
    except Exception as e:
        logger.error(
            "[OBS-003] Failed to record accounts_reconciled metric | error=%s",
            str(e)
        )
