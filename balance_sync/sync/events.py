"""
============================================================================
Balance Sync v1.0.0
Sync Event Channel - Typed Completion Notifications
============================================================================

Observers (list models, CLI progress output) subscribe to a channel that is
handed to the orchestrator; there is no process-global notification center.

EVENT TYPES:
    - sync.authenticated: Credentials accepted, institution linked
    - sync.balances: Balances reconciled
    - sync.transactions: Transactions reconciled
    - sync.completed: A full sync finished
    - sync.failed: An operation failed (error_code set)

THREAD SAFETY:
    Subscribe/unsubscribe/publish are safe from any thread. Subscribers are
    called on the publishing thread; a failing subscriber is logged and the
    remaining subscribers are still notified.

============================================================================
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class SyncEventKind(str, Enum):
    AUTHENTICATED = "sync.authenticated"
    BALANCES_SYNCED = "sync.balances"
    TRANSACTIONS_SYNCED = "sync.transactions"
    COMPLETED = "sync.completed"
    FAILED = "sync.failed"


# Kinds after which stored data may have changed
DATA_CHANGED_KINDS = frozenset({
    SyncEventKind.AUTHENTICATED,
    SyncEventKind.BALANCES_SYNCED,
    SyncEventKind.TRANSACTIONS_SYNCED,
    SyncEventKind.COMPLETED,
})


@dataclass(frozen=True)
class SyncEvent:
    """
    One notification published by the orchestrator.

    Attributes:
        kind: Event type
        institution_id: Institution concerned (None if authentication failed
            before an institution existed)
        correlation_id: Operation identifier shared with the log lines
        error_code: Error code for FAILED events
        message: Human-readable detail
        timestamp: UTC time of publication
    """
    kind: SyncEventKind
    institution_id: Optional[int] = None
    correlation_id: Optional[str] = None
    error_code: Optional[str] = None
    message: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_failure(self) -> bool:
        return self.kind is SyncEventKind.FAILED


Subscriber = Callable[[SyncEvent], None]


class SyncEventChannel:
    """
    Fire-and-forget publish/subscribe channel for SyncEvents.

    Example Usage:
        channel = SyncEventChannel()
        channel.subscribe(lambda event: print(event.kind))
        orchestrator = SyncOrchestrator(..., events=channel)
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, subscriber: Subscriber) -> bool:
        """
        Register a callable.

        Returns:
            True if added, False if it was already subscribed
        """
        with self._lock:
            if subscriber in self._subscribers:
                return False
            self._subscribers.append(subscriber)
            return True

    def unsubscribe(self, subscriber: Subscriber) -> bool:
        with self._lock:
            if subscriber not in self._subscribers:
                return False
            self._subscribers.remove(subscriber)
            return True

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: SyncEvent) -> int:
        """
        Deliver an event to every subscriber.

        Returns:
            Number of subscribers notified without error
        """
        with self._lock:
            subscribers = list(self._subscribers)

        notified = 0
        for subscriber in subscribers:
            try:
                subscriber(event)
                notified += 1
            except Exception as e:
                logger.error(
                    f"[SYNC-EVT] Subscriber failed | event={event.kind.value} | "
                    f"error={type(e).__name__}: {e} | "
                    f"correlation_id={event.correlation_id}"
                )

        logger.debug(
            f"[SYNC-EVT] Published {event.kind.value} | "
            f"institution_id={event.institution_id} | notified={notified} | "
            f"correlation_id={event.correlation_id}"
        )
        return notified
