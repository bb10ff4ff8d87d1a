"""
============================================================================
Balance Sync v1.0.0
Repositories - Institutions, Accounts, Transactions
============================================================================

Input Constraints: Engine with schema from init_schema()
Side Effects: Database reads and writes

UPSERT SEMANTICS:
- Accounts are keyed by (institution_id, source_account_id); for Poloniex the
  source account id is the currency code
- Transactions are keyed by (institution_id, source_transaction_id)
- Upserts use INSERT ... ON CONFLICT DO UPDATE, atomic per key

============================================================================
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine

from balance_sync.exchange.decimal_gateway import DecimalGateway
from balance_sync.models import (
    Account,
    AccountType,
    Institution,
    InstitutionSource,
    Transaction,
    TransactionCategory,
)

logger = logging.getLogger(__name__)

_gateway = DecimalGateway()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require_decimal(value: Any, field_name: str) -> str:
    if not _gateway.validate_decimal(value, field_name):
        raise ValueError(f"PLNX-DEC-001: {field_name} must be Decimal")
    return str(value)


# ============================================================================
# Institutions
# ============================================================================

class InstitutionRepository:
    """Create/update access to linked institutions."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @staticmethod
    def _from_row(row: Mapping[str, Any]) -> Institution:
        return Institution(
            institution_id=row["id"],
            source=InstitutionSource(row["source"]),
            name=row["name"],
            source_institution_id=row["source_institution_id"],
            password_invalid=bool(row["password_invalid"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def create(
        self,
        source: InstitutionSource = InstitutionSource.POLONIEX,
        name: str = "Poloniex",
        source_institution_id: str = ""
    ) -> Institution:
        """
        Insert a new institution.

        Returns:
            Institution with its assigned id
        """
        now = _now().isoformat()
        insert_sql = text("""
            INSERT INTO institutions (
                source, source_institution_id, name, password_invalid,
                created_at, updated_at
            ) VALUES (
                :source, :source_institution_id, :name, :password_invalid,
                :created_at, :updated_at
            )
            RETURNING id
        """)

        with self.engine.begin() as conn:
            institution_id = conn.execute(insert_sql, {
                "source": source.value,
                "source_institution_id": source_institution_id,
                "name": name,
                "password_invalid": False,
                "created_at": now,
                "updated_at": now,
            }).scalar_one()

        logger.info(
            f"[DB] Institution created | institution_id={institution_id} | "
            f"source={source.value}"
        )
        return self.get(institution_id)

    def get(self, institution_id: int) -> Optional[Institution]:
        query = text("""
            SELECT id, source, source_institution_id, name, password_invalid,
                   created_at, updated_at
            FROM institutions
            WHERE id = :institution_id
        """)
        with self.engine.connect() as conn:
            row = conn.execute(query, {"institution_id": institution_id}).mappings().first()
        return self._from_row(row) if row else None

    def list_all(self) -> List[Institution]:
        query = text("""
            SELECT id, source, source_institution_id, name, password_invalid,
                   created_at, updated_at
            FROM institutions
            ORDER BY name, id
        """)
        with self.engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return [self._from_row(row) for row in rows]

    def update(self, institution: Institution) -> Institution:
        """
        Replace the stored record with ``institution``'s values.

        Side Effects: Refreshes ``institution.updated_at``
        """
        institution.updated_at = _now()
        update_sql = text("""
            UPDATE institutions
            SET name = :name,
                source_institution_id = :source_institution_id,
                password_invalid = :password_invalid,
                updated_at = :updated_at
            WHERE id = :institution_id
        """)
        with self.engine.begin() as conn:
            conn.execute(update_sql, {
                "institution_id": institution.institution_id,
                "name": institution.name,
                "source_institution_id": institution.source_institution_id,
                "password_invalid": institution.password_invalid,
                "updated_at": institution.updated_at.isoformat(),
            })
        return institution

    def set_password_invalid(self, institution_id: int, invalid: bool) -> bool:
        """
        Set or clear the "needs re-authentication" flag.

        Returns:
            True if a row was updated
        """
        update_sql = text("""
            UPDATE institutions
            SET password_invalid = :invalid, updated_at = :updated_at
            WHERE id = :institution_id
        """)
        with self.engine.begin() as conn:
            result = conn.execute(update_sql, {
                "institution_id": institution_id,
                "invalid": invalid,
                "updated_at": _now().isoformat(),
            })
        return result.rowcount > 0


# ============================================================================
# Accounts
# ============================================================================

_ACCOUNT_COLUMNS = """
    id, institution_id, source_account_id, account_type, currency,
    available_balance, on_orders_balance, alt_current_balance, is_hidden
"""


class AccountRepository:
    """Upsert-by-natural-key access to accounts."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @staticmethod
    def _from_row(row: Mapping[str, Any]) -> Account:
        return Account(
            currency=row["currency"],
            available=Decimal(row["available_balance"]),
            on_orders=Decimal(row["on_orders_balance"]),
            btc_value=Decimal(row["alt_current_balance"]),
            account_type=AccountType(row["account_type"]),
            institution_id=row["institution_id"],
            is_hidden=bool(row["is_hidden"]),
            account_id=row["id"],
        )

    def upsert(
        self,
        institution_id: int,
        account: Account,
        is_hidden: Optional[bool] = None
    ) -> Account:
        """
        Create or update the account for (institution, currency).

        Args:
            institution_id: Owning institution
            account: Parsed account values
            is_hidden: New hidden flag, or None to keep the stored flag
                (new rows are then visible)

        Returns:
            The stored Account
        """
        keep_hidden = is_hidden is None
        hidden_update = "" if keep_hidden else "is_hidden = excluded.is_hidden,"
        upsert_sql = text(f"""
            INSERT INTO accounts (
                institution_id, source_account_id, account_type, name, currency,
                available_balance, on_orders_balance, alt_currency,
                alt_current_balance, is_hidden, updated_at
            ) VALUES (
                :institution_id, :source_account_id, :account_type, :name, :currency,
                :available_balance, :on_orders_balance, :alt_currency,
                :alt_current_balance, :is_hidden, :updated_at
            )
            ON CONFLICT (institution_id, source_account_id) DO UPDATE SET
                account_type = excluded.account_type,
                name = excluded.name,
                currency = excluded.currency,
                available_balance = excluded.available_balance,
                on_orders_balance = excluded.on_orders_balance,
                alt_currency = excluded.alt_currency,
                alt_current_balance = excluded.alt_current_balance,
                {hidden_update}
                updated_at = excluded.updated_at
        """)

        with self.engine.begin() as conn:
            conn.execute(upsert_sql, {
                "institution_id": institution_id,
                "source_account_id": account.source_account_id,
                "account_type": account.account_type.value,
                "name": account.currency,
                "currency": account.currency,
                "available_balance": _require_decimal(account.available, "available"),
                "on_orders_balance": _require_decimal(account.on_orders, "on_orders"),
                "alt_currency": account.alt_currency,
                "alt_current_balance": _require_decimal(account.btc_value, "btc_value"),
                "is_hidden": False if keep_hidden else is_hidden,
                "updated_at": _now().isoformat(),
            })

        return self.get(institution_id, account.source_account_id)

    def get(self, institution_id: int, source_account_id: str) -> Optional[Account]:
        query = text(f"""
            SELECT {_ACCOUNT_COLUMNS}
            FROM accounts
            WHERE institution_id = :institution_id
              AND source_account_id = :source_account_id
        """)
        with self.engine.connect() as conn:
            row = conn.execute(query, {
                "institution_id": institution_id,
                "source_account_id": source_account_id,
            }).mappings().first()
        return self._from_row(row) if row else None

    def accounts(self, institution_id: int, include_hidden: bool = True) -> List[Account]:
        """All accounts of an institution, ordered by currency."""
        hidden_filter = "" if include_hidden else "AND is_hidden = :visible"
        query = text(f"""
            SELECT {_ACCOUNT_COLUMNS}
            FROM accounts
            WHERE institution_id = :institution_id {hidden_filter}
            ORDER BY currency
        """)
        params = {"institution_id": institution_id}
        if not include_hidden:
            params["visible"] = False
        with self.engine.connect() as conn:
            rows = conn.execute(query, params).mappings().all()
        return [self._from_row(row) for row in rows]

    def delete(self, institution_id: int, source_account_id: str) -> bool:
        delete_sql = text("""
            DELETE FROM accounts
            WHERE institution_id = :institution_id
              AND source_account_id = :source_account_id
        """)
        with self.engine.begin() as conn:
            result = conn.execute(delete_sql, {
                "institution_id": institution_id,
                "source_account_id": source_account_id,
            })
        return result.rowcount > 0

    def set_hidden(self, institution_id: int, source_account_id: str, hidden: bool) -> bool:
        update_sql = text("""
            UPDATE accounts
            SET is_hidden = :hidden
            WHERE institution_id = :institution_id
              AND source_account_id = :source_account_id
        """)
        with self.engine.begin() as conn:
            result = conn.execute(update_sql, {
                "institution_id": institution_id,
                "source_account_id": source_account_id,
                "hidden": hidden,
            })
        return result.rowcount > 0


# ============================================================================
# Transactions
# ============================================================================

class TransactionRepository:
    """Upsert-by-source-id access to transactions (append-only history)."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @staticmethod
    def _from_row(row: Mapping[str, Any]) -> Transaction:
        return Transaction(
            source_transaction_id=row["source_transaction_id"],
            currency=row["currency"],
            amount=Decimal(row["amount"]),
            timestamp=datetime.fromisoformat(row["occurred_at"]),
            category=TransactionCategory(row["category"]),
            status=row["status"],
            address=row["address"],
            institution_id=row["institution_id"],
        )

    def upsert(self, transaction: Transaction) -> bool:
        """
        Create or update a transaction keyed by its source id.

        Returns:
            True if the transaction was created, False if it was updated
        """
        if transaction.institution_id is None or transaction.category is None:
            raise ValueError(
                "Transaction needs institution_id and category before storage | "
                f"source_transaction_id={transaction.source_transaction_id}"
            )

        exists_sql = text("""
            SELECT 1 FROM transactions
            WHERE institution_id = :institution_id
              AND source_transaction_id = :source_transaction_id
        """)
        upsert_sql = text("""
            INSERT INTO transactions (
                institution_id, source_transaction_id, source_account_id,
                category, name, currency, amount, occurred_at, status, address
            ) VALUES (
                :institution_id, :source_transaction_id, :source_account_id,
                :category, :name, :currency, :amount, :occurred_at, :status, :address
            )
            ON CONFLICT (institution_id, source_transaction_id) DO UPDATE SET
                source_account_id = excluded.source_account_id,
                category = excluded.category,
                name = excluded.name,
                currency = excluded.currency,
                amount = excluded.amount,
                occurred_at = excluded.occurred_at,
                status = excluded.status,
                address = excluded.address
        """)

        key = {
            "institution_id": transaction.institution_id,
            "source_transaction_id": transaction.source_transaction_id,
        }
        with self.engine.begin() as conn:
            existed = conn.execute(exists_sql, key).first() is not None
            conn.execute(upsert_sql, {
                **key,
                "source_account_id": transaction.source_account_id,
                "category": transaction.category.value,
                "name": transaction.name,
                "currency": transaction.currency,
                "amount": _require_decimal(transaction.amount, "amount"),
                "occurred_at": transaction.timestamp.isoformat(),
                "status": transaction.status,
                "address": transaction.address,
            })
        return not existed

    def transactions(self, institution_id: int) -> List[Transaction]:
        """All transactions of an institution, newest first."""
        query = text("""
            SELECT institution_id, source_transaction_id, category, currency,
                   amount, occurred_at, status, address
            FROM transactions
            WHERE institution_id = :institution_id
            ORDER BY occurred_at DESC, source_transaction_id
        """)
        with self.engine.connect() as conn:
            rows = conn.execute(query, {"institution_id": institution_id}).mappings().all()
        return [self._from_row(row) for row in rows]
