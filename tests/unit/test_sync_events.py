"""
Unit Tests for the Sync Event Channel
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from balance_sync.sync.events import SyncEvent, SyncEventChannel, SyncEventKind


class TestSyncEventChannel:

    def test_publish_reaches_subscribers(self) -> None:
        channel = SyncEventChannel()
        received = []
        channel.subscribe(received.append)

        event = SyncEvent(kind=SyncEventKind.COMPLETED, institution_id=1)
        assert channel.publish(event) == 1
        assert received == [event]

    def test_duplicate_subscribe_ignored(self) -> None:
        channel = SyncEventChannel()
        received = []
        assert channel.subscribe(received.append) is True
        assert channel.subscribe(received.append) is False

        channel.publish(SyncEvent(kind=SyncEventKind.COMPLETED))
        assert len(received) == 1

    def test_unsubscribe(self) -> None:
        channel = SyncEventChannel()
        received = []
        channel.subscribe(received.append)

        assert channel.unsubscribe(received.append) is True
        assert channel.unsubscribe(received.append) is False
        channel.publish(SyncEvent(kind=SyncEventKind.COMPLETED))
        assert received == []
        assert channel.subscriber_count == 0

    def test_failing_subscriber_isolated(self, caplog) -> None:
        channel = SyncEventChannel()
        received = []

        def broken(event: SyncEvent) -> None:
            raise RuntimeError("observer bug")

        channel.subscribe(broken)
        channel.subscribe(received.append)

        notified = channel.publish(SyncEvent(kind=SyncEventKind.FAILED, error_code="PLNX-NET-001"))

        assert notified == 1
        assert len(received) == 1
        assert "Subscriber failed" in caplog.text

    def test_is_failure(self) -> None:
        assert SyncEvent(kind=SyncEventKind.FAILED).is_failure is True
        assert SyncEvent(kind=SyncEventKind.COMPLETED).is_failure is False
