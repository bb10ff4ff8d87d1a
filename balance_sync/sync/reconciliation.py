# ============================================================================
# Balance Sync v1.0.0
# Reconciliation - Exchange Snapshot vs Local Repositories
# ============================================================================
#
# Purpose: Applies a freshly parsed exchange snapshot to local storage
#
# MANDATE:
#   - Accounts: upsert every parsed account keyed by (institution, currency),
#     then delete local accounts whose currency the exchange no longer reports
#   - Zero-balance accounts in non-primary currencies are hidden, never
#     deleted; non-zero ones become visible again
#   - Primary currencies (default BTC, ETH) keep their stored hidden flag
#   - Transactions: upsert by (institution, source transaction id); the
#     exchange history is never used to delete local transactions
#
# ============================================================================

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from balance_sync.config import DEFAULT_PRIMARY_CURRENCIES
from balance_sync.database.repositories import AccountRepository, TransactionRepository
from balance_sync.models import Account, Transaction
from balance_sync.observability.metrics import record_accounts_reconciled

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


# ============================================================================
# Results
# ============================================================================

@dataclass
class AccountReconciliationResult:
    institution_id: int
    accounts: List[Account] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    hidden: List[str] = field(default_factory=list)

    @property
    def upserted(self) -> int:
        return len(self.accounts)


@dataclass
class TransactionReconciliationResult:
    institution_id: int
    transactions: List[Transaction] = field(default_factory=list)
    created: int = 0
    updated: int = 0


# ============================================================================
# Accounts
# ============================================================================

class AccountReconciler:
    """
    Upsert-then-prune reconciliation of exchange balances.

    Example Usage:
        reconciler = AccountReconciler(account_repo, primary_currencies=("BTC", "ETH"))
        result = reconciler.reconcile(institution.institution_id, parsed_accounts)
    """

    def __init__(
        self,
        accounts: AccountRepository,
        primary_currencies: Iterable[str] = DEFAULT_PRIMARY_CURRENCIES,
        correlation_id: Optional[str] = None
    ):
        self.accounts = accounts
        self.primary_currencies = frozenset(code.upper() for code in primary_currencies)
        self.correlation_id = correlation_id

    def hidden_flag(self, account: Account) -> Optional[bool]:
        """
        Hidden flag to store for a parsed account.

        Returns:
            None for primary currencies (keep stored flag), otherwise whether
            the current balance is zero
        """
        if account.currency.upper() in self.primary_currencies:
            return None
        return account.current_balance == ZERO

    def reconcile(
        self,
        institution_id: int,
        parsed: Sequence[Account]
    ) -> AccountReconciliationResult:
        result = AccountReconciliationResult(institution_id=institution_id)

        for account in parsed:
            is_hidden = self.hidden_flag(account)
            stored = self.accounts.upsert(institution_id, account, is_hidden=is_hidden)
            result.accounts.append(stored)
            if stored.is_hidden:
                result.hidden.append(stored.currency)

        reported = {account.source_account_id for account in parsed}
        for local in self.accounts.accounts(institution_id, include_hidden=True):
            if local.source_account_id not in reported:
                self.accounts.delete(institution_id, local.source_account_id)
                result.deleted.append(local.source_account_id)

        record_accounts_reconciled("upserted", result.upserted)
        record_accounts_reconciled("deleted", len(result.deleted))
        record_accounts_reconciled("hidden", len(result.hidden))

        logger.info(
            f"[SYNC-REC] Accounts reconciled | institution_id={institution_id} | "
            f"upserted={result.upserted} | deleted={len(result.deleted)} | "
            f"hidden={len(result.hidden)} | correlation_id={self.correlation_id}"
        )
        return result


# ============================================================================
# Transactions
# ============================================================================

class TransactionReconciler:
    """Upsert-only reconciliation of deposit and withdrawal history."""

    def __init__(
        self,
        transactions: TransactionRepository,
        correlation_id: Optional[str] = None
    ):
        self.transactions = transactions
        self.correlation_id = correlation_id

    def reconcile(
        self,
        institution_id: int,
        parsed: Sequence[Transaction]
    ) -> TransactionReconciliationResult:
        result = TransactionReconciliationResult(institution_id=institution_id)

        for transaction in parsed:
            owned = replace(transaction, institution_id=institution_id)
            if self.transactions.upsert(owned):
                result.created += 1
            else:
                result.updated += 1
            result.transactions.append(owned)

        logger.info(
            f"[SYNC-REC] Transactions reconciled | institution_id={institution_id} | "
            f"created={result.created} | updated={result.updated} | "
            f"correlation_id={self.correlation_id}"
        )
        return result
