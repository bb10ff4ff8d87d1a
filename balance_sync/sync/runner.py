"""
============================================================================
Balance Sync v1.0.0
Sync Runner - Background Execution with Completion Callbacks
============================================================================

Each orchestrator gets one single-worker executor, so at most one network
call per orchestrator is outstanding. Completion callbacks run on one
completion executor shared by every runner (the designated "main" context
for observers).

Every outcome, including unexpected exceptions, is delivered as a
SyncOutcome; nothing is raised across the asynchronous boundary.

============================================================================
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Optional

from balance_sync.models import Credentials, Institution
from balance_sync.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    """
    Result of one background operation.

    Attributes:
        operation: Orchestrator method name
        success: True if the operation completed
        result: Operation return value on success
        error: Raised exception on failure
    """
    operation: str
    success: bool
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def error_code(self) -> Optional[str]:
        if self.error is None:
            return None
        return getattr(self.error, "error_code", type(self.error).__name__)


Callback = Callable[[SyncOutcome], None]

_completion_executor: Optional[ThreadPoolExecutor] = None
_completion_lock = threading.Lock()


def _get_completion_executor() -> ThreadPoolExecutor:
    """
    Get or create the shared completion executor.

    Returns:
        Single-thread executor callbacks are delivered on
    """
    global _completion_executor

    with _completion_lock:
        if _completion_executor is None:
            _completion_executor = ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix="sync_completion"
            )
        return _completion_executor


class SyncRunner:
    """
    Runs orchestrator operations off the caller's thread.

    Example Usage:
        runner = SyncRunner(orchestrator)
        runner.sync_all(callback=lambda outcome: print(outcome.success))
        ...
        runner.shutdown()
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        completion_executor: Optional[ThreadPoolExecutor] = None
    ):
        self.orchestrator = orchestrator
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sync_worker")
        self._completion = completion_executor or _get_completion_executor()

    def _submit(
        self,
        operation: str,
        call: Callable[[], Any],
        callback: Optional[Callback]
    ) -> "Future[SyncOutcome]":
        def run() -> SyncOutcome:
            try:
                return SyncOutcome(operation=operation, success=True, result=call())
            except Exception as e:
                return SyncOutcome(operation=operation, success=False, error=e)

        future = self._worker.submit(run)

        if callback is not None:
            def on_complete(fut: "Future[SyncOutcome]") -> None:
                self._completion.submit(self._deliver, callback, fut.result())

            future.add_done_callback(on_complete)

        return future

    @staticmethod
    def _deliver(callback: Callback, outcome: SyncOutcome) -> None:
        try:
            callback(outcome)
        except Exception as e:
            logger.error(
                f"[SYNC-RUN] Completion callback failed | operation={outcome.operation} | "
                f"error={type(e).__name__}: {e}"
            )

    def authenticate(
        self,
        credentials: Credentials,
        existing_institution: Optional[Institution] = None,
        callback: Optional[Callback] = None
    ) -> "Future[SyncOutcome]":
        return self._submit(
            "authenticate",
            lambda: self.orchestrator.authenticate(credentials, existing_institution),
            callback
        )

    def sync_balances(self, callback: Optional[Callback] = None) -> "Future[SyncOutcome]":
        return self._submit("sync_balances", self.orchestrator.sync_balances, callback)

    def sync_transactions(self, callback: Optional[Callback] = None) -> "Future[SyncOutcome]":
        return self._submit("sync_transactions", self.orchestrator.sync_transactions, callback)

    def sync_all(self, callback: Optional[Callback] = None) -> "Future[SyncOutcome]":
        return self._submit("sync_all", self.orchestrator.sync_all, callback)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker; the shared completion executor keeps running."""
        self._worker.shutdown(wait=wait)
