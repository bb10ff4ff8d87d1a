"""
============================================================================
Balance Sync v1.0.0
Sync Orchestrator - Authenticate, Sync Balances, Sync Transactions
============================================================================

Traceability: Every operation gets a correlation_id shared by its log lines,
              metrics and published event

SYNC STATE MACHINE:
    IDLE -> AUTHENTICATING (authenticate)
    IDLE -> SYNCING (sync on a resumed session)
    AUTHENTICATING -> SYNCING (credentials accepted, reconciling accounts)
    AUTHENTICATING -> FAILED
    SYNCING -> DONE
    SYNCING -> FAILED
    DONE / FAILED -> AUTHENTICATING or SYNCING (next invocation)

    AUTHENTICATING and SYNCING are busy states: a second operation started
    while one is in flight is rejected with PLNX-STATE-001.

SESSION:
    Unauthenticated: only authenticate() is permitted
    Authenticated(institution, credentials, client): all operations permitted;
    credentials never change for the lifetime of the session

ERROR CODES:
    - PLNX-STATE-001: Operation not permitted in current state or session
    - PLNX-AUTH-001: Credentials rejected (sets the institution's
      password_invalid flag when an institution exists)
    - PLNX-NET-001 / PLNX-PARSE-001: Propagated from client and parser

============================================================================
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from balance_sync.config import SyncConfig
from balance_sync.credentials import CredentialStore
from balance_sync.database.repositories import (
    AccountRepository,
    InstitutionRepository,
    TransactionRepository,
)
from balance_sync.errors import (
    InvalidCredentials,
    InvalidStateError,
    MissingCredentialsError,
)
from balance_sync.exchange.hmac_signer import NonceGenerator
from balance_sync.exchange.poloniex_client import PoloniexTradingClient, TradingResponse
from balance_sync.exchange.response_parser import parse_accounts, parse_transactions
from balance_sync.models import Account, Credentials, Institution, InstitutionSource, Transaction
from balance_sync.observability.metrics import record_sync_operation
from balance_sync.sync.events import SyncEvent, SyncEventChannel, SyncEventKind
from balance_sync.sync.reconciliation import AccountReconciler, TransactionReconciler

logger = logging.getLogger(__name__)


# =============================================================================
# States
# =============================================================================

class SyncState(str, Enum):
    IDLE = "IDLE"
    AUTHENTICATING = "AUTHENTICATING"
    SYNCING = "SYNCING"
    DONE = "DONE"
    FAILED = "FAILED"


VALID_TRANSITIONS: Dict[SyncState, List[SyncState]] = {
    SyncState.IDLE: [SyncState.AUTHENTICATING, SyncState.SYNCING],
    SyncState.AUTHENTICATING: [SyncState.SYNCING, SyncState.FAILED],
    SyncState.SYNCING: [SyncState.DONE, SyncState.FAILED],
    SyncState.DONE: [SyncState.AUTHENTICATING, SyncState.SYNCING],
    SyncState.FAILED: [SyncState.AUTHENTICATING, SyncState.SYNCING],
}

BUSY_STATES = frozenset({SyncState.AUTHENTICATING, SyncState.SYNCING})


def validate_transition(current: SyncState, target: SyncState) -> bool:
    return target in VALID_TRANSITIONS.get(current, [])


# =============================================================================
# Session
# =============================================================================

@dataclass(frozen=True)
class Unauthenticated:
    """No credentials accepted yet."""


@dataclass(frozen=True)
class Authenticated:
    """Accepted credentials bound to a linked institution."""
    institution: Institution
    credentials: Credentials
    client: PoloniexTradingClient = field(repr=False)


Session = Union[Unauthenticated, Authenticated]

ClientFactory = Callable[[Credentials], PoloniexTradingClient]


def default_client_factory(config: SyncConfig) -> ClientFactory:
    """Build PoloniexTradingClients from configuration."""

    def factory(credentials: Credentials) -> PoloniexTradingClient:
        return PoloniexTradingClient(
            credentials,
            trading_url=config.trading_url,
            timeout=config.timeout_seconds,
            verify=config.tls_verify,
            nonce_generator=NonceGenerator.for_key(
                credentials.api_key, state_dir=config.nonce_state_dir
            ),
        )

    return factory


# =============================================================================
# Results
# =============================================================================

@dataclass
class AuthenticationResult:
    institution: Institution
    accounts: List[Account]


@dataclass
class SyncReport:
    institution_id: int
    correlation_id: str
    accounts: List[Account] = field(default_factory=list)
    transactions: List[Transaction] = field(default_factory=list)


# =============================================================================
# Orchestrator
# =============================================================================

class SyncOrchestrator:
    """
    Drives authentication and synchronization for one institution.

    Operations are synchronous and raise BalanceSyncError subclasses; use
    SyncRunner to run them off the caller's thread.

    Example Usage:
        orchestrator = SyncOrchestrator(
            institutions, accounts, transactions, credential_store,
            events=channel
        )
        result = orchestrator.authenticate(Credentials(api_key, secret))
        report = orchestrator.sync_all()
    """

    def __init__(
        self,
        institutions: InstitutionRepository,
        accounts: AccountRepository,
        transactions: TransactionRepository,
        credential_store: CredentialStore,
        client_factory: Optional[ClientFactory] = None,
        events: Optional[SyncEventChannel] = None,
        config: Optional[SyncConfig] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            institutions: Institution repository
            accounts: Account repository
            transactions: Transaction repository
            credential_store: Secure storage for accepted credentials
            client_factory: Builds a trading client for credentials
                (default: PoloniexTradingClient from config)
            events: Channel completion events are published on
            config: Sync configuration (default: SyncConfig())
            clock: Epoch-seconds clock for the transaction window end
        """
        self.config = config or SyncConfig()
        self.institutions = institutions
        self.accounts = accounts
        self.transactions = transactions
        self.credential_store = credential_store
        self.client_factory = client_factory or default_client_factory(self.config)
        self.events = events or SyncEventChannel()
        self._clock = clock

        self._state = SyncState.IDLE
        self._session: Session = Unauthenticated()
        self._lock = threading.Lock()

    @classmethod
    def from_institution(
        cls,
        institution_id: int,
        institutions: InstitutionRepository,
        accounts: AccountRepository,
        transactions: TransactionRepository,
        credential_store: CredentialStore,
        **kwargs
    ) -> "SyncOrchestrator":
        """
        Resume an authenticated session from stored credentials.

        No network call is made; the credentials are validated by the next
        sync.

        Raises:
            InvalidStateError: Unknown institution (PLNX-STATE-001)
            MissingCredentialsError: Nothing stored for it (PLNX-SEC-001)
        """
        institution = institutions.get(institution_id)
        if institution is None:
            raise InvalidStateError(f"Unknown institution: {institution_id}")

        credentials = credential_store.get(institution_id)
        if credentials is None:
            raise MissingCredentialsError(
                f"No stored credentials for institution {institution_id}"
            )

        orchestrator = cls(
            institutions, accounts, transactions, credential_store, **kwargs
        )
        orchestrator._session = Authenticated(
            institution=institution,
            credentials=credentials,
            client=orchestrator.client_factory(credentials),
        )
        logger.info(
            f"[SYNC] Session resumed | institution_id={institution_id} | "
            f"api_key={credentials.redacted_key()}"
        )
        return orchestrator

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def session(self) -> Session:
        return self._session

    @property
    def is_busy(self) -> bool:
        return self._state in BUSY_STATES

    @property
    def institution(self) -> Optional[Institution]:
        if isinstance(self._session, Authenticated):
            return self._session.institution
        return None

    # =========================================================================
    # State Handling
    # =========================================================================

    def _transition(self, target: SyncState, correlation_id: str) -> None:
        with self._lock:
            if not validate_transition(self._state, target):
                logger.error(
                    f"[PLNX-STATE-001] Invalid transition {self._state.value} -> "
                    f"{target.value} | correlation_id={correlation_id}"
                )
                raise InvalidStateError(
                    f"Cannot move from {self._state.value} to {target.value}"
                )
            self._state = target
        logger.debug(
            f"[SYNC] State {target.value} | correlation_id={correlation_id}"
        )

    def _require_session(self, operation: str) -> Authenticated:
        session = self._session
        if not isinstance(session, Authenticated):
            logger.error(f"[PLNX-STATE-001] {operation} requires an authenticated session")
            raise InvalidStateError(f"{operation} requires an authenticated session")
        return session

    def _fail(
        self,
        operation: str,
        error: Exception,
        correlation_id: str,
        institution: Optional[Institution]
    ) -> None:
        if isinstance(error, InvalidCredentials) and institution is not None:
            self.institutions.set_password_invalid(institution.institution_id, True)
            institution.password_invalid = True
            logger.warning(
                f"[PLNX-AUTH-001] Institution needs re-authentication | "
                f"institution_id={institution.institution_id} | "
                f"correlation_id={correlation_id}"
            )

        with self._lock:
            self._state = SyncState.FAILED

        error_code = getattr(error, "error_code", type(error).__name__)
        record_sync_operation(operation, error_code, correlation_id)
        logger.error(
            f"[SYNC] {operation} failed | error_code={error_code} | "
            f"error={error} | correlation_id={correlation_id}"
        )
        self.events.publish(SyncEvent(
            kind=SyncEventKind.FAILED,
            institution_id=institution.institution_id if institution else None,
            correlation_id=correlation_id,
            error_code=error_code,
            message=str(error),
        ))

    def _succeed(
        self,
        operation: str,
        kind: SyncEventKind,
        institution: Institution,
        correlation_id: str
    ) -> None:
        self._transition(SyncState.DONE, correlation_id)
        record_sync_operation(operation, "success", correlation_id)
        self.events.publish(SyncEvent(
            kind=kind,
            institution_id=institution.institution_id,
            correlation_id=correlation_id,
        ))

    # =========================================================================
    # Authenticate
    # =========================================================================

    def authenticate(
        self,
        credentials: Credentials,
        existing_institution: Optional[Institution] = None
    ) -> AuthenticationResult:
        """
        Validate credentials with a balances call and link the institution.

        On rejection nothing stored is changed except the existing
        institution's password_invalid flag. On success the institution is
        created (or updated), the credentials are stored, the flag is
        cleared and the returned balances are reconciled.

        Args:
            credentials: API key/secret to validate
            existing_institution: Institution being re-authenticated, if any

        Returns:
            AuthenticationResult with the institution and stored accounts

        Raises:
            InvalidStateError: Another operation is in flight (PLNX-STATE-001)
            InvalidCredentials: HTTP 400/403 or embedded error (PLNX-AUTH-001)
            TransportError: No response (PLNX-NET-001)
            MalformedResponse: Unparseable balances (PLNX-PARSE-001)
        """
        operation = "authenticate"
        correlation_id = str(uuid.uuid4())
        self._transition(SyncState.AUTHENTICATING, correlation_id)

        logger.info(
            f"[SYNC] Authenticating | api_key={credentials.redacted_key()} | "
            f"institution_id="
            f"{existing_institution.institution_id if existing_institution else None} | "
            f"correlation_id={correlation_id}"
        )

        client = None
        institution = existing_institution
        try:
            client = self.client_factory(credentials)
            response = client.return_complete_balances()
            self._check_status(response, correlation_id)
            parsed = parse_accounts(response.body, correlation_id)

            if institution is None:
                institution = self.institutions.create(
                    source=InstitutionSource.POLONIEX,
                    name="Poloniex",
                )
            else:
                institution.password_invalid = False
                self.institutions.update(institution)
            self.credential_store.set(institution.institution_id, credentials)

            self._replace_session(Authenticated(
                institution=institution,
                credentials=credentials,
                client=client,
            ))

            self._transition(SyncState.SYNCING, correlation_id)
            reconciled = AccountReconciler(
                self.accounts, self.config.primary_currencies, correlation_id
            ).reconcile(institution.institution_id, parsed)
        except Exception as e:
            if client is not None and not self._owns(client):
                client.close()
            self._fail(operation, e, correlation_id, institution)
            raise

        self._succeed(operation, SyncEventKind.AUTHENTICATED, institution, correlation_id)
        logger.info(
            f"[SYNC] Authenticated | institution_id={institution.institution_id} | "
            f"accounts={len(reconciled.accounts)} | correlation_id={correlation_id}"
        )
        return AuthenticationResult(institution=institution, accounts=reconciled.accounts)

    def _owns(self, client: PoloniexTradingClient) -> bool:
        return isinstance(self._session, Authenticated) and self._session.client is client

    def _replace_session(self, session: Authenticated) -> None:
        previous = self._session
        self._session = session
        if isinstance(previous, Authenticated) and previous.client is not session.client:
            previous.client.close()

    @staticmethod
    def _check_status(response: TradingResponse, correlation_id: str) -> None:
        if response.is_rejected:
            logger.warning(
                f"[PLNX-AUTH-001] Credentials rejected | status={response.status_code} | "
                f"correlation_id={correlation_id}"
            )
            raise InvalidCredentials(
                f"Exchange rejected credentials (HTTP {response.status_code})",
                status_code=response.status_code
            )

    # =========================================================================
    # Sync
    # =========================================================================

    def _fetch_balances(self, session: Authenticated, correlation_id: str) -> List[Account]:
        response = session.client.return_complete_balances()
        self._check_status(response, correlation_id)
        parsed = parse_accounts(response.body, correlation_id)
        return AccountReconciler(
            self.accounts, self.config.primary_currencies, correlation_id
        ).reconcile(session.institution.institution_id, parsed).accounts

    def _fetch_transactions(
        self,
        session: Authenticated,
        correlation_id: str
    ) -> List[Transaction]:
        end = int(self._clock())
        response = session.client.return_deposits_withdrawals(start=0, end=end)
        self._check_status(response, correlation_id)
        parsed = parse_transactions(response.body, correlation_id)
        return TransactionReconciler(
            self.transactions, correlation_id
        ).reconcile(session.institution.institution_id, parsed).transactions

    def _run_sync(
        self,
        operation: str,
        kind: SyncEventKind,
        balances: bool,
        transactions: bool
    ) -> SyncReport:
        session = self._require_session(operation)
        correlation_id = str(uuid.uuid4())
        self._transition(SyncState.SYNCING, correlation_id)

        institution = session.institution
        report = SyncReport(
            institution_id=institution.institution_id,
            correlation_id=correlation_id
        )
        logger.info(
            f"[SYNC] {operation} started | institution_id={institution.institution_id} | "
            f"correlation_id={correlation_id}"
        )

        try:
            if balances:
                report.accounts = self._fetch_balances(session, correlation_id)
            if transactions:
                report.transactions = self._fetch_transactions(session, correlation_id)
        except Exception as e:
            self._fail(operation, e, correlation_id, institution)
            raise

        self._succeed(operation, kind, institution, correlation_id)
        logger.info(
            f"[SYNC] {operation} finished | institution_id={institution.institution_id} | "
            f"accounts={len(report.accounts)} | transactions={len(report.transactions)} | "
            f"correlation_id={correlation_id}"
        )
        return report

    def sync_balances(self) -> List[Account]:
        """
        Re-fetch balances and reconcile accounts.

        Raises:
            InvalidStateError: Unauthenticated or busy (PLNX-STATE-001)
            InvalidCredentials / TransportError / MalformedResponse
        """
        return self._run_sync(
            "sync_balances", SyncEventKind.BALANCES_SYNCED, True, False
        ).accounts

    def sync_transactions(self) -> List[Transaction]:
        """
        Fetch the full deposit/withdrawal history (start=0, end=now) and
        upsert it.
        """
        return self._run_sync(
            "sync_transactions", SyncEventKind.TRANSACTIONS_SYNCED, False, True
        ).transactions

    def sync_all(self) -> SyncReport:
        """Balances then transactions as one operation."""
        return self._run_sync("sync_all", SyncEventKind.COMPLETED, True, True)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Release the session's HTTP client."""
        if isinstance(self._session, Authenticated):
            self._session.client.close()
