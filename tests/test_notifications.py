"""Tests for the notification log."""

import json

import pytest

from core.models import Notification, NotificationType
from registry.notifications import NotificationLog
from registry.persistence import RegistryDB


def _notification(sequence, event=NotificationType.PATIENT_ADDED, account="0xAlice"):
    return Notification(
        sequence=sequence,
        event=event,
        account=account,
        arguments={"account": account},
    )


class TestNotificationLog:
    """Test ordering and history queries."""

    def test_empty_log(self):
        log = NotificationLog()
        assert len(log) == 0
        assert log.last_sequence == 0
        assert log.history() == []

    def test_publish_in_order(self):
        log = NotificationLog()
        log.publish(_notification(1))
        log.publish(_notification(2))

        assert len(log) == 2
        assert log.last_sequence == 2
        assert [n.sequence for n in log.history()] == [1, 2]

    def test_rejects_out_of_order(self):
        """Sequence numbers must strictly increase."""
        log = NotificationLog()
        log.publish(_notification(2))

        with pytest.raises(ValueError):
            log.publish(_notification(2))
        with pytest.raises(ValueError):
            log.publish(_notification(1))

        assert len(log) == 1

    def test_history_filters(self):
        log = NotificationLog()
        log.publish(_notification(1, NotificationType.PATIENT_ADDED, "0xAlice"))
        log.publish(_notification(2, NotificationType.PRACTITIONER_ADDED, "0xDrWho"))
        log.publish(_notification(3, NotificationType.SENSOR_DATA_COLLECTED, "0xAlice"))
        log.publish(_notification(4, NotificationType.SENSOR_DATA_COLLECTED, "0xAlice"))

        assert [n.sequence for n in log.history(account="0xAlice")] == [1, 3, 4]
        assert [n.sequence for n in log.history(event=NotificationType.SENSOR_DATA_COLLECTED)] == [3, 4]
        assert [n.sequence for n in log.history(since_sequence=2)] == [3, 4]
        assert [n.sequence for n in log.history(limit=2)] == [1, 2]
        assert [
            n.sequence
            for n in log.history(event=NotificationType.SENSOR_DATA_COLLECTED, limit=1)
        ] == [3]

    def test_history_returns_copy(self):
        log = NotificationLog()
        log.publish(_notification(1))

        log.history().clear()

        assert len(log) == 1


class TestSubscribers:
    """Test observer delivery."""

    def test_subscriber_receives_notifications(self):
        log = NotificationLog()
        received = []
        log.subscribe(received.append)

        log.publish(_notification(1))

        assert [n.sequence for n in received] == [1]

    def test_unsubscribe(self):
        log = NotificationLog()
        received = []
        unsubscribe = log.subscribe(received.append)

        log.publish(_notification(1))
        unsubscribe()
        log.publish(_notification(2))
        unsubscribe()

        assert [n.sequence for n in received] == [1]

    def test_failing_subscriber_does_not_block_others(self):
        """A raising observer is logged; the others still receive the notification."""
        log = NotificationLog()
        received = []

        def broken(notification):
            raise RuntimeError("observer down")

        log.subscribe(broken)
        log.subscribe(received.append)

        log.publish(_notification(1))

        assert len(log) == 1
        assert [n.sequence for n in received] == [1]


class TestStorage:
    """Test JSON-lines mirroring and database preload."""

    def test_jsonl_file(self, tmp_path):
        path = tmp_path / "logs" / "notifications.jsonl"
        log = NotificationLog(storage_path=str(path))

        log.publish(_notification(1))
        log.publish(_notification(2, NotificationType.PATIENT_REMOVED))

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        entries = [json.loads(line) for line in lines]
        assert entries[0]["sequence"] == 1
        assert entries[0]["event"] == "PatientAdded"
        assert entries[1]["event"] == "PatientRemoved"
        assert entries[1]["arguments"] == {"account": "0xAlice"}

    def test_unwritable_file_does_not_fail_publish(self, tmp_path):
        """A file write error is logged; history and subscribers still get the notification."""
        path = tmp_path / "notifications.jsonl"
        path.mkdir()
        log = NotificationLog(storage_path=str(path))
        received = []
        log.subscribe(received.append)

        log.publish(_notification(1))

        assert log.last_sequence == 1
        assert [n.sequence for n in received] == [1]

    def test_preload_from_db(self):
        db = RegistryDB(":memory:")
        db.save_notification(_notification(1))
        db.save_notification(_notification(2))

        log = NotificationLog(db=db)

        assert len(log) == 2
        assert log.last_sequence == 2
        with pytest.raises(ValueError):
            log.publish(_notification(2))
        db.close()
