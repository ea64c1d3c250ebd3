"""Bounded in-memory history of monitor ticks."""
from __future__ import annotations

from collections import deque
from threading import Lock
from typing import TYPE_CHECKING, Deque, List, Optional
import logging

from reservewatch.engine.status import DerivedStatus

if TYPE_CHECKING:
    from .monitor import MonitorTick

logger = logging.getLogger(__name__)


class StatusBuffer:
    """
    Ring buffer of monitor ticks, oldest evicted first.

    Ticks are kept in ``derived.evaluated_at`` order. A tick evaluated before
    the newest one held is refused; ticks from the same second are kept.
    """

    def __init__(self, maxlen: int = 500):
        if maxlen < 1:
            raise ValueError(f"maxlen must be at least 1, got {maxlen}")
        self._ticks: Deque[MonitorTick] = deque(maxlen=maxlen)
        self._lock = Lock()

    @property
    def maxlen(self) -> int:
        return self._ticks.maxlen

    def __len__(self) -> int:
        with self._lock:
            return len(self._ticks)

    def append(self, tick: MonitorTick) -> bool:
        """Store a tick; returns False when it is older than the newest one held."""
        evaluated_at = tick.derived.evaluated_at
        with self._lock:
            if self._ticks and evaluated_at < self._ticks[-1].derived.evaluated_at:
                logger.warning(
                    "Refusing out-of-order tick evaluated_at=%s (newest=%s)",
                    evaluated_at,
                    self._ticks[-1].derived.evaluated_at,
                )
                return False
            self._ticks.append(tick)
            return True

    def latest(self) -> Optional[MonitorTick]:
        with self._lock:
            return self._ticks[-1] if self._ticks else None

    def ticks(self, n: Optional[int] = None, since: Optional[int] = None) -> List[MonitorTick]:
        """
        Oldest-to-newest copy of the held ticks.

        Args:
            n: Keep only the newest ``n`` (after ``since`` filtering); None keeps all
            since: Drop ticks evaluated before this unix second
        """
        with self._lock:
            selected = list(self._ticks)
        if since is not None:
            selected = [t for t in selected if t.derived.evaluated_at >= since]
        if n is not None:
            selected = selected[-n:] if n > 0 else []
        return selected

    def statuses(self, n: Optional[int] = None, since: Optional[int] = None) -> List[DerivedStatus]:
        return [tick.derived for tick in self.ticks(n, since)]
