"""
nea_sim/history.py - Append-Only History and Telemetry Ring Buffer

History holds every terminal work unit in arrival order. Entries are linked
by a hash chain so an exported log can prove nothing was dropped or edited.
TimeSeries mirrors the latest Metrics snapshot into a bounded buffer for
charting; it never computes a metric itself.
"""

import json
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np

from receipts import dual_hash, StopRule

from .constants import (
    WorkStatus,
    KPI_WINDOW,
    LOG_DISPLAY_WINDOW,
    SERIES_CAPACITY,
)

GENESIS_HASH = dual_hash("genesis")


# =============================================================================
# HISTORY
# =============================================================================

@dataclass(frozen=True)
class HistoryEntry:
    """One terminal record plus its position in the hash chain."""
    seq: int
    unit: Any  # WorkUnit
    upstream_hash: str
    hash: str


def _chain_hash(unit_dict: Dict[str, Any], upstream_hash: str) -> str:
    canonical = json.dumps(unit_dict, sort_keys=True, separators=(",", ":"))
    return dual_hash(upstream_hash + canonical)


class History:
    """Append-only log of terminal work units.

    Only windowed reads are offered; existing entries are never replaced.
    """

    def __init__(self) -> None:
        self._entries: List[HistoryEntry] = []
        self._recorded_ids: set = set()

    def append(self, unit) -> HistoryEntry:
        """
        Record a terminal unit.

        Args:
            unit: WorkUnit in a terminal status

        Returns:
            HistoryEntry with chain hash

        Raises:
            StopRule: unit is not terminal, or its id already reached a terminal status
        """
        if not unit.status.is_terminal:
            raise StopRule(f"History only records terminal units, got {unit.status.value} for {unit.id}")
        if unit.id in self._recorded_ids:
            raise StopRule(f"Unit {unit.id} already has a terminal record")

        upstream = self._entries[-1].hash if self._entries else GENESIS_HASH
        entry = HistoryEntry(
            seq=len(self._entries),
            unit=unit,
            upstream_hash=upstream,
            hash=_chain_hash(unit.to_dict(), upstream),
        )
        self._entries.append(entry)
        self._recorded_ids.add(unit.id)
        return entry

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator:
        return (e.unit for e in self._entries)

    def __contains__(self, unit_id: str) -> bool:
        return unit_id in self._recorded_ids

    def window(self, n: int = KPI_WINDOW) -> List:
        """Most recent n units, oldest first."""
        if n <= 0:
            return []
        return [e.unit for e in self._entries[-n:]]

    def recent(self, n: int = LOG_DISPLAY_WINDOW) -> List:
        """Most recent n units, newest first (display order)."""
        return list(reversed(self.window(n)))

    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    @property
    def head_hash(self) -> str:
        return self._entries[-1].hash if self._entries else GENESIS_HASH

    def verify_chain(self) -> Tuple[bool, Optional[int]]:
        """
        Recompute every link of the chain.

        Returns:
            (True, None) if intact, else (False, seq of first broken entry)
        """
        upstream = GENESIS_HASH
        for entry in self._entries:
            if entry.upstream_hash != upstream:
                return False, entry.seq
            if _chain_hash(entry.unit.to_dict(), upstream) != entry.hash:
                return False, entry.seq
            upstream = entry.hash
        return True, None


# =============================================================================
# KPI AGGREGATION
# =============================================================================

def compute_kpis(window: List) -> Dict[str, float]:
    """
    Ratio KPIs over a window of terminal units.

    Args:
        window: Terminal WorkUnits, any order

    Returns:
        dict with admission_rate, failure_rate, refusal_rate (percent) and avg_payload

    Edge case: empty window divides by 1, so all rates are 0.0.
    """
    total = len(window) or 1
    completed = sum(1 for w in window if w.status is WorkStatus.COMPLETED)
    failed = sum(1 for w in window if w.status is WorkStatus.FAILED)
    refused = sum(1 for w in window
                  if w.status in (WorkStatus.REFUSED, WorkStatus.PREEMPTED))

    if window:
        avg_payload = float(np.mean([w.initial_payload for w in window]))
    else:
        avg_payload = 0.0

    return {
        "admission_rate": completed / total * 100.0,
        "failure_rate": failed / total * 100.0,
        "refusal_rate": refused / total * 100.0,
        "avg_payload": avg_payload,
    }


# =============================================================================
# TELEMETRY TIME SERIES
# =============================================================================

@dataclass(frozen=True)
class TimeSeriesPoint:
    """One chart sample."""
    time_ms: int
    entropy: float
    coherence: float
    syntropy: float
    load: float
    throughput: float
    safety_floor: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time_ms": self.time_ms,
            "entropy": self.entropy,
            "coherence": self.coherence,
            "syntropy": self.syntropy,
            "load": self.load,
            "throughput": self.throughput,
            "safety_floor": self.safety_floor,
        }


class TimeSeries:
    """Ring buffer of the last `capacity` telemetry points."""

    def __init__(self, capacity: int = SERIES_CAPACITY) -> None:
        self._points: deque = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._points.maxlen

    def sample(self, metrics, invariants, now_ms: int) -> TimeSeriesPoint:
        """Copy the latest snapshot into the buffer."""
        floor = next((inv.limit for inv in invariants if inv.id == "inv_entropy"), 0.0)
        point = TimeSeriesPoint(
            time_ms=now_ms,
            entropy=metrics.entropy,
            coherence=metrics.coherence,
            syntropy=metrics.syntropy,
            load=metrics.load,
            throughput=metrics.throughput,
            safety_floor=floor,
        )
        self._points.append(point)
        return point

    def points(self) -> List[TimeSeriesPoint]:
        return list(self._points)

    def column(self, name: str) -> np.ndarray:
        """One field across the buffer as a float array."""
        return np.array([getattr(p, name) for p in self._points], dtype=float)

    def __len__(self) -> int:
        return len(self._points)
