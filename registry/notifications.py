"""
Notification Log Module
=======================
Append-only, ordered record of the notifications emitted by successful
registry writes.

External observers reconstruct history from notifications; the registry
itself keeps only latest state.
"""

import json
from pathlib import Path
from typing import Callable, List, Optional
import structlog

from core.models import Notification, NotificationType
from core.utils import mask_account

logger = structlog.get_logger(__name__)

Subscriber = Callable[[Notification], None]


class NotificationLog:
    """
    Ordered notification history with observer callbacks.

    Notifications are kept in memory in emission order, optionally mirrored
    to a JSON-lines file, and handed to every subscriber as they are
    published.
    """

    def __init__(self, storage_path: Optional[str] = None, db=None):
        """
        Initialize notification log.

        Args:
            storage_path: Optional JSON-lines file receiving one line per notification.
            db: Optional RegistryDB whose stored history is preloaded.
        """
        self.storage_path = Path(storage_path) if storage_path else None
        if self.storage_path is not None:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)

        self._history: List[Notification] = []
        self._subscribers: List[Subscriber] = []

        if db is not None:
            self._history.extend(db.list_notifications())

    def __len__(self) -> int:
        return len(self._history)

    @property
    def last_sequence(self) -> int:
        return self._history[-1].sequence if self._history else 0

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register an observer; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, notification: Notification) -> None:
        """Append a committed notification and deliver it to subscribers."""
        if notification.sequence <= self.last_sequence:
            raise ValueError(
                f"Notification sequence {notification.sequence} does not follow "
                f"{self.last_sequence}"
            )

        self._history.append(notification)

        if self.storage_path is not None:
            try:
                with open(self.storage_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(notification.to_log_entry()) + "\n")
            except OSError as e:
                logger.error(
                    "Notification log file write failed",
                    sequence=notification.sequence,
                    path=str(self.storage_path),
                    error=str(e),
                )

        logger.debug(
            "Notification emitted",
            sequence=notification.sequence,
            notification_event=notification.event.value,
            account=mask_account(notification.account),
        )

        for callback in list(self._subscribers):
            try:
                callback(notification)
            except Exception as e:
                # The operation is already committed; a failing observer cannot undo it
                logger.error(
                    "Notification subscriber failed",
                    sequence=notification.sequence,
                    error=str(e),
                )

    def history(
        self,
        event: Optional[NotificationType] = None,
        account: Optional[str] = None,
        since_sequence: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Notification]:
        """
        Query the notification history.

        Args:
            event: Only notifications of this type.
            account: Only notifications about this account.
            since_sequence: Only notifications after this sequence number.
            limit: Maximum number of notifications to return.

        Returns:
            Matching notifications in emission order.
        """
        results = self._history
        if event is not None:
            results = [n for n in results if n.event == event]
        if account is not None:
            results = [n for n in results if n.account == account]
        if since_sequence is not None:
            results = [n for n in results if n.sequence > since_sequence]
        results = list(results)
        if limit is not None:
            results = results[:limit]
        return results
