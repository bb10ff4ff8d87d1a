"""
============================================================================
Balance Sync v1.0.0
Accounts List Model - Presentation Data for Linked Institutions
============================================================================

One section per institution, rows are the institution's visible accounts
sorted by currency. The model reloads itself whenever the event channel
reports that stored data changed.

============================================================================
"""

import logging
import threading
from typing import Dict, List, Optional

from balance_sync.database.repositories import AccountRepository, InstitutionRepository
from balance_sync.models import Account, Institution
from balance_sync.sync.events import DATA_CHANGED_KINDS, SyncEvent, SyncEventChannel

logger = logging.getLogger(__name__)

BLANK_MESSAGE = "Nothing to see here..."


class AccountsListViewModel:
    """
    Sectioned accounts list.

    Example Usage:
        model = AccountsListViewModel(institutions, accounts, events=channel)
        for section in range(model.number_of_sections()):
            print(model.institution(section).name)
            for account in model.accounts(section):
                print(account.currency, account.current_balance)
    """

    def __init__(
        self,
        institutions: InstitutionRepository,
        accounts: AccountRepository,
        events: Optional[SyncEventChannel] = None
    ):
        self.institutions = institutions
        self.account_repository = accounts
        self.events = events
        self._lock = threading.Lock()
        self._reload_lock = threading.Lock()
        self._institutions: List[Institution] = []
        self._accounts: Dict[int, List[Account]] = {}

        if events is not None:
            events.subscribe(self._on_event)

        self.reload_data()

    def _on_event(self, event: SyncEvent) -> None:
        if event.kind in DATA_CHANGED_KINDS:
            self.reload_data()

    def reload_data(self) -> None:
        """
        Re-read institutions and visible accounts.

        Reloads are serialized: events arrive on whichever worker finished,
        and a reload that read earlier must not replace a later snapshot.
        """
        with self._reload_lock:
            institutions = self.institutions.list_all()
            accounts = {
                institution.institution_id: sorted(
                    self.account_repository.accounts(
                        institution.institution_id, include_hidden=False
                    ),
                    key=lambda account: account.currency
                )
                for institution in institutions
            }
            with self._lock:
                self._institutions = institutions
                self._accounts = accounts

        logger.debug(
            f"[ACCOUNTS] Reloaded | institutions={len(institutions)} | "
            f"accounts={sum(len(rows) for rows in accounts.values())}"
        )

    def number_of_sections(self) -> int:
        with self._lock:
            return len(self._institutions)

    def institution(self, for_section: int) -> Optional[Institution]:
        with self._lock:
            if 0 <= for_section < len(self._institutions):
                return self._institutions[for_section]
            return None

    def accounts(self, for_section: int) -> List[Account]:
        """Visible accounts of a section, sorted by currency."""
        institution = self.institution(for_section)
        if institution is None:
            return []
        with self._lock:
            return list(self._accounts.get(institution.institution_id, []))

    def is_blank(self) -> bool:
        return self.number_of_sections() == 0

    def close(self) -> None:
        """Stop listening for sync events."""
        if self.events is not None:
            self.events.unsubscribe(self._on_event)
