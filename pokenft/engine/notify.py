"""User-visible notifications: logged through loguru and kept for the toolbar."""
from __future__ import annotations

from collections import deque

from loguru import logger

from pokenft.engine.primitives import Notification


class Notifier:
    """Callable sink for transient user notifications.

    ``notify("SUCCESS", "[{}] Finalized", txid)`` formats like loguru does, logs
    the message, and remembers the most recent ones.
    """

    def __init__(self, keep: int = 20):
        self.recent: deque[Notification] = deque(maxlen=keep)

    def __call__(self, level: str, message: str, *args) -> Notification:
        text = message.format(*args) if args else message
        note = Notification(level=level, message=text)
        self.recent.append(note)

        # depth=1 so the log line points at whoever raised the notification
        logger.opt(depth=1).log(level, "{}", text)

        return note

    @property
    def latest(self) -> Notification | None:
        return self.recent[-1] if self.recent else None
