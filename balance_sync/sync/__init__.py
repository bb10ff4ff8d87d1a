# ============================================================================
# Balance Sync v1.0.0
# Sync Module - Orchestration, Reconciliation and Events
# ============================================================================
#
# Components:
#   - SyncOrchestrator: authenticate / sync_balances / sync_transactions
#   - AccountReconciler / TransactionReconciler: snapshot to storage
#   - SyncEventChannel: typed completion notifications
#   - SyncRunner: background execution with completion callbacks
#
# ============================================================================

from balance_sync.sync.events import SyncEvent, SyncEventChannel, SyncEventKind
from balance_sync.sync.reconciliation import (
    AccountReconciler,
    AccountReconciliationResult,
    TransactionReconciler,
    TransactionReconciliationResult,
)
from balance_sync.sync.orchestrator import (
    Authenticated,
    AuthenticationResult,
    SyncOrchestrator,
    SyncReport,
    SyncState,
    Unauthenticated,
    VALID_TRANSITIONS,
)
from balance_sync.sync.runner import SyncOutcome, SyncRunner

__all__ = [
    # Events
    'SyncEvent',
    'SyncEventChannel',
    'SyncEventKind',
    # Reconciliation
    'AccountReconciler',
    'AccountReconciliationResult',
    'TransactionReconciler',
    'TransactionReconciliationResult',
    # Orchestrator
    'Authenticated',
    'AuthenticationResult',
    'SyncOrchestrator',
    'SyncReport',
    'SyncState',
    'Unauthenticated',
    'VALID_TRANSITIONS',
    # Runner
    'SyncOutcome',
    'SyncRunner',
]
