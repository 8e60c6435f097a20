"""
Notification sinks.

Adapters that forward core notifications to a presentation layer. Sinks
return nothing the core looks at.
"""

import logging
from typing import Dict, Iterable, List, Protocol

from farm import Notification

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify(self, notification: Notification) -> None: ...


class LoggingSink:
    """Writes event notices to a logger; refresh signals go to DEBUG."""

    def __init__(self, name: str = "farm.notifications"):
        self.logger = logging.getLogger(name)

    def notify(self, notification: Notification) -> None:
        if notification.channel == "event":
            level = logging.WARNING if notification.is_alert else logging.INFO
            self.logger.log(level, notification.message)
        else:
            self.logger.debug(f"refresh {notification.channel} {notification.data}")


class CollectingSink:
    """Keeps every notification, grouped by channel."""

    def __init__(self):
        self.received: List[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.received.append(notification)

    def by_channel(self) -> Dict[str, List[Notification]]:
        grouped: Dict[str, List[Notification]] = {}
        for notification in self.received:
            grouped.setdefault(notification.channel, []).append(notification)
        return grouped

    def messages(self) -> List[str]:
        return [n.message for n in self.received if n.channel == "event"]


def dispatch(notifications: Iterable[Notification], sinks: Iterable[NotificationSink]) -> int:
    """Forward a batch to every sink. Returns the number of notifications sent."""
    sinks = list(sinks)
    count = 0
    for notification in notifications:
        for sink in sinks:
            sink.notify(notification)
        count += 1
    return count
