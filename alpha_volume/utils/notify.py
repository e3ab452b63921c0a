"""
User-visible notifications.

The controller reports terminal events (halt, timeout, all rounds
done) through a `Notifier`.  Notifications are informational only;
nothing in the trading logic depends on them being delivered.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Base notifier.  Subclasses deliver `message` to the user."""

    @abstractmethod
    def notify(self, message: str) -> None:
        """Deliver `message`."""


class LogNotifier(Notifier):
    """Deliver notifications as WARNING log records."""

    def notify(self, message: str) -> None:
        logger.warning("NOTICE: %s", message)


class RecordingNotifier(Notifier):
    """Keep notifications in memory, e.g. for a status readout."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def notify(self, message: str) -> None:
        self.messages.append(message)
        logger.info("Notification recorded: %s", message)
