"""Notification capabilities handed to the reminder ticker."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def deliver(self, title: str, body: Optional[str], dedupe_key: str) -> None: ...

    def cancel(self, dedupe_key: str) -> None: ...


@dataclass
class Delivery:
    title: str
    body: Optional[str]
    dedupe_key: str


class MemoryNotifier:
    """Keeps deliveries in memory; a later delivery with the same key replaces the earlier one."""

    def __init__(self) -> None:
        self.deliveries: list[Delivery] = []
        self.cancelled: list[str] = []

    def deliver(self, title: str, body: Optional[str], dedupe_key: str) -> None:
        self.deliveries = [item for item in self.deliveries if item.dedupe_key != dedupe_key]
        self.deliveries.append(Delivery(title=title, body=body, dedupe_key=dedupe_key))

    def cancel(self, dedupe_key: str) -> None:
        before = len(self.deliveries)
        self.deliveries = [item for item in self.deliveries if item.dedupe_key != dedupe_key]
        if len(self.deliveries) != before:
            self.cancelled.append(dedupe_key)

    def active_keys(self) -> list[str]:
        return [item.dedupe_key for item in self.deliveries]


class LogNotifier:
    """Writes notifications to the log instead of a desktop or browser channel."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def deliver(self, title: str, body: Optional[str], dedupe_key: str) -> None:
        logger.log(self.level, "reminder %s: %s%s", dedupe_key, title, f" ({body})" if body else "")

    def cancel(self, dedupe_key: str) -> None:
        logger.debug("cancel %s", dedupe_key)
