from __future__ import annotations

import asyncio
import enum
import itertools
import time
from dataclasses import dataclass, field
from typing import Callable

DEFAULT_DURATION_MS = 5000


class NotificationVariant(str, enum.Enum):
    success = "success"
    error = "error"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    variant: NotificationVariant = NotificationVariant.success
    duration_ms: int = DEFAULT_DURATION_MS
    id: int = 0
    shown_at: float = 0.0

    def expires_at(self) -> float:
        return self.shown_at + self.duration_ms / 1000.0


@dataclass
class NotificationCenter:
    """Transient toast queue. Several notifications can be visible at once."""

    clock: Callable[[], float] = time.monotonic
    _visible: list[Notification] = field(default_factory=list)
    _timers: dict[int, asyncio.TimerHandle] = field(default_factory=dict)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def push(
        self,
        title: str,
        description: str,
        *,
        variant: NotificationVariant = NotificationVariant.success,
        duration_ms: int = DEFAULT_DURATION_MS,
    ) -> Notification:
        notification = Notification(
            title=title,
            description=description,
            variant=variant,
            duration_ms=max(0, int(duration_ms)),
            id=next(self._ids),
            shown_at=self.clock(),
        )
        self._visible.append(notification)
        self._schedule_dismiss(notification)
        return notification

    def _schedule_dismiss(self, notification: Notification) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: callers drive expiry through expire().
            return
        self._timers[notification.id] = loop.call_later(
            notification.duration_ms / 1000.0, self.dismiss, notification.id
        )

    def dismiss(self, notification_id: int) -> bool:
        timer = self._timers.pop(notification_id, None)
        if timer is not None:
            timer.cancel()
        before = len(self._visible)
        self._visible = [n for n in self._visible if n.id != notification_id]
        return len(self._visible) != before

    def expire(self, now: float | None = None) -> list[Notification]:
        """Dismiss everything whose duration has elapsed; returns what was dropped."""
        now = self.clock() if now is None else now
        expired = [n for n in self._visible if n.expires_at() <= now]
        for notification in expired:
            self.dismiss(notification.id)
        return expired

    def visible(self) -> list[Notification]:
        return list(self._visible)

    def clear(self) -> None:
        for notification_id in list(self._timers):
            self.dismiss(notification_id)
        self._visible.clear()
