"""
nea_sim/scheduler.py - Single-Threaded Virtual-Time Scheduler

Periodic and one-shot callbacks over a millisecond clock that only moves when
advance() is called. Callbacks run one at a time, to completion, in due-time
order (ties broken by registration order). Nothing here sleeps or spawns
threads; a wall-clock driver just calls advance(elapsed).
"""

import heapq
import itertools
from typing import Callable, List, Optional, Tuple


class TimerHandle:
    """Cancellation token for a scheduled callback."""

    def __init__(self, name: str, period_ms: Optional[int]):
        self.name = name
        self.period_ms = period_ms
        self.cancelled = False
        self.fired = 0

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self) -> str:
        kind = f"every {self.period_ms}ms" if self.period_ms else "once"
        state = "cancelled" if self.cancelled else f"fired={self.fired}"
        return f"<TimerHandle {self.name} {kind} {state}>"


class Scheduler:
    """Cooperative timer queue."""

    def __init__(self, start_ms: int = 0):
        self.now_ms = start_ms
        self._queue: List[Tuple[int, int, TimerHandle, Callable[[], None]]] = []
        self._order = itertools.count()

    def every(self, period_ms: int, callback: Callable[[], None], name: str = "periodic") -> TimerHandle:
        """
        Fire callback every period_ms, first at now + period_ms.

        Raises:
            ValueError: period_ms is not positive
        """
        if period_ms <= 0:
            raise ValueError(f"period_ms must be positive, got {period_ms}")
        handle = TimerHandle(name, period_ms)
        self._push(self.now_ms + period_ms, handle, callback)
        return handle

    def after(self, delay_ms: int, callback: Callable[[], None], name: str = "delayed") -> TimerHandle:
        """Fire callback once at now + delay_ms."""
        handle = TimerHandle(name, None)
        self._push(self.now_ms + max(delay_ms, 0), handle, callback)
        return handle

    def _push(self, due_ms: int, handle: TimerHandle, callback: Callable[[], None]) -> None:
        heapq.heappush(self._queue, (due_ms, next(self._order), handle, callback))

    def next_due(self) -> Optional[int]:
        while self._queue and self._queue[0][2].cancelled:
            heapq.heappop(self._queue)
        return self._queue[0][0] if self._queue else None

    def advance(self, dt_ms: int) -> int:
        """
        Move the clock forward, firing every timer due on the way.

        Args:
            dt_ms: Milliseconds to advance

        Returns:
            int: Number of callbacks fired
        """
        target = self.now_ms + max(dt_ms, 0)
        fired = 0
        while True:
            due = self.next_due()
            if due is None or due > target:
                break
            due_ms, _, handle, callback = heapq.heappop(self._queue)
            self.now_ms = due_ms
            if handle.period_ms:
                self._push(due_ms + handle.period_ms, handle, callback)
            handle.fired += 1
            fired += 1
            callback()
        self.now_ms = target
        return fired

    def pending(self) -> int:
        return sum(1 for _, _, h, _ in self._queue if not h.cancelled)
