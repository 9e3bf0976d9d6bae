from __future__ import annotations
import asyncio
import uuid
from typing import Callable, Optional

from schemas import Toast, ToastType


class Toaster:
    """Transient notifications, each removed by its own timer task.

    ``show`` must be called with a running event loop. ``on_change`` is
    called whenever a toast appears or goes away.
    """

    def __init__(self, duration_ms: int = 3000, on_change: Optional[Callable[[], None]] = None):
        self.duration_ms = duration_ms
        self.duration = duration_ms / 1000
        self.on_change = on_change
        self._toasts: list[Toast] = []
        self._timers: dict[str, asyncio.Task] = {}

    @property
    def toasts(self) -> list[Toast]:
        return list(self._toasts)

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()

    def show(self, message: str, type: ToastType = "success") -> Toast:
        toast = Toast(id=uuid.uuid4().hex, message=message, type=type)
        self._toasts.append(toast)
        self._timers[toast.id] = asyncio.get_running_loop().create_task(self._expire(toast.id))
        self._changed()
        return toast

    async def _expire(self, toast_id: str) -> None:
        await asyncio.sleep(self.duration)
        self._timers.pop(toast_id, None)
        self._remove(toast_id)

    def _remove(self, toast_id: str) -> None:
        remaining = [t for t in self._toasts if t.id != toast_id]
        if len(remaining) != len(self._toasts):
            self._toasts = remaining
            self._changed()

    def dismiss(self, toast_id: str) -> None:
        timer = self._timers.pop(toast_id, None)
        if timer is not None:
            timer.cancel()
        self._remove(toast_id)

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._toasts.clear()
