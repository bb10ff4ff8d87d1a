"""
============================================================================
Balance Sync v1.0.0
Domain Models - Credentials, Accounts, Transactions, Institutions
============================================================================

Decimal Integrity: All balances and amounts use decimal.Decimal
Side Effects: None (plain value objects)

IDENTITY RULES:
    - Account: currency code is the natural key within an institution
      (Poloniex exposes no opaque account id)
    - Transaction: source transaction id within an institution
    - Institution: local integer id assigned by the repository

============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from balance_sync.errors import MissingCredentialsError


# =============================================================================
# Enums
# =============================================================================

class AccountType(str, Enum):
    """Exchange wallet a balance belongs to."""
    EXCHANGE = "exchange"


class TransactionCategory(str, Enum):
    """Category assigned from the response section a transfer came from."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class InstitutionSource(str, Enum):
    """Supported institution sources."""
    POLONIEX = "poloniex"


# =============================================================================
# Credentials
# =============================================================================

@dataclass(frozen=True)
class Credentials:
    """
    API key / shared secret pair for one linked institution.

    Whitespace is trimmed on construction. The secret is excluded from
    repr() so credentials never leak into logs or tracebacks.

    Raises:
        MissingCredentialsError: If the key or secret is empty (PLNX-SEC-001)
    """
    api_key: str
    secret: str = field(repr=False)

    def __post_init__(self) -> None:
        api_key = (self.api_key or "").strip()
        secret = (self.secret or "").strip()

        missing = []
        if not api_key:
            missing.append("api_key")
        if not secret:
            missing.append("secret")
        if missing:
            raise MissingCredentialsError(
                f"Missing exchange credentials: {', '.join(missing)}"
            )

        object.__setattr__(self, "api_key", api_key)
        object.__setattr__(self, "secret", secret)

    def redacted_key(self) -> str:
        """
        Get redacted API key for logging purposes.

        Returns:
            First 4 and last 4 characters only (e.g. "abc1...xyz9")
        """
        if len(self.api_key) > 8:
            return f"{self.api_key[:4]}...{self.api_key[-4:]}"
        return "[REDACTED]"


@dataclass(frozen=True)
class SignedRequest:
    """
    Immutable signed request body.

    Attributes:
        body: URL-encoded parameters including the nonce (the exact POST body)
        signature: Hex HMAC-SHA512 of ``body`` keyed by the secret
        nonce: Nonce embedded in ``body``
    """
    body: str
    signature: str = field(repr=False)
    nonce: int


# =============================================================================
# Accounts and Transactions
# =============================================================================

@dataclass
class Account:
    """
    Balance of one currency at one institution.

    All numeric fields are Decimal quantized to 8 decimal places.
    """
    currency: str
    available: Decimal
    on_orders: Decimal = Decimal("0")
    btc_value: Decimal = Decimal("0")
    account_type: AccountType = AccountType.EXCHANGE
    institution_id: Optional[int] = None
    is_hidden: bool = False
    account_id: Optional[int] = None

    @property
    def source_account_id(self) -> str:
        return self.currency

    @property
    def current_balance(self) -> Decimal:
        return self.available + self.on_orders

    # BTC is the reference currency Poloniex reports derived values in
    @property
    def alt_currency(self) -> str:
        return "BTC"


@dataclass(frozen=True)
class Transaction:
    """
    A deposit or withdrawal reported by the exchange.

    Immutable once created; the category is set from the response section the
    record was decoded from, and the institution is attached by the
    orchestrator via dataclasses.replace().
    """
    source_transaction_id: str
    currency: str
    amount: Decimal
    timestamp: datetime
    category: Optional[TransactionCategory] = None
    status: str = ""
    address: str = ""
    institution_id: Optional[int] = None

    @property
    def source_account_id(self) -> str:
        return self.currency

    @property
    def name(self) -> str:
        label = self.category.value.capitalize() if self.category else "Transfer"
        return f"{label} {self.currency}"


# =============================================================================
# Institution
# =============================================================================

@dataclass
class Institution:
    """
    A linked exchange.

    ``password_invalid`` is the persistent "needs re-authentication" flag set
    whenever the exchange rejects the stored credentials.
    """
    institution_id: int
    source: InstitutionSource = InstitutionSource.POLONIEX
    name: str = "Poloniex"
    source_institution_id: str = ""
    password_invalid: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
