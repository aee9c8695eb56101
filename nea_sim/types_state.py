"""
nea_sim/types_state.py - Work Unit, Invariant, Metrics and SimState

WorkUnit, Invariant and Metrics are frozen: every transition builds a new
instance, so a record appended to History can never change afterwards.
SimState is the one mutable container, owned by a single session.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from receipts import ReceiptLedger

from .constants import (
    WorkStatus,
    InvariantStatus,
    REASONED_STATUSES,
    ENTROPY_CEILING,
    SYNTROPY_SCALE,
    RECEIPT_SCHEMA,
)
from .history import History, TimeSeries


# =============================================================================
# WORK UNIT
# =============================================================================

@dataclass(frozen=True)
class WorkUnit:
    """One simulated unit of work."""
    id: str
    payload: float
    timestamp: int  # virtual ms at request time
    status: WorkStatus = WorkStatus.PENDING
    reason: Optional[str] = None
    failure_risk: Optional[float] = None
    initial_payload: Optional[float] = None

    def __post_init__(self):
        if self.initial_payload is None:
            object.__setattr__(self, "initial_payload", self.payload)

    def with_status(self, status: WorkStatus, reason: Optional[str] = None) -> "WorkUnit":
        """Return a copy in the given status; reason only kept for non-success terminals."""
        return replace(
            self,
            status=status,
            reason=reason if status in REASONED_STATUSES else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "payload": self.payload,
            "initial_payload": self.initial_payload,
            "timestamp": self.timestamp,
            "status": self.status.value,
            "reason": self.reason,
            "failure_risk": self.failure_risk,
        }


# =============================================================================
# INVARIANT (BOUND)
# =============================================================================

@dataclass(frozen=True)
class Invariant:
    """Named threshold with its current value and classification."""
    id: str
    name: str
    expression: str
    limit: float
    current: float
    unit: str
    status: InvariantStatus
    safety_critical: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "expression": self.expression,
            "limit": self.limit,
            "current": self.current,
            "unit": self.unit,
            "status": self.status.value,
            "safety_critical": self.safety_critical,
        }


# =============================================================================
# METRICS SNAPSHOT
# =============================================================================

@dataclass(frozen=True)
class Metrics:
    """Derived scalars, recomputed wholesale every tick."""
    tick: int = 0
    entropy: float = 0.0
    coherence: float = ENTROPY_CEILING
    syntropy: float = SYNTROPY_SCALE
    throughput: float = 0.0
    load: float = 0.0
    active_count: int = 0
    admission_rate: float = 100.0
    failure_rate: float = 0.0
    refusal_rate: float = 0.0
    total_requests: int = 0
    avg_payload: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tick": self.tick,
            "entropy": self.entropy,
            "coherence": self.coherence,
            "syntropy": self.syntropy,
            "throughput": self.throughput,
            "load": self.load,
            "active_count": self.active_count,
            "admission_rate": self.admission_rate,
            "failure_rate": self.failure_rate,
            "refusal_rate": self.refusal_rate,
            "total_requests": self.total_requests,
            "avg_payload": self.avg_payload,
        }


# =============================================================================
# SIMSTATE
# =============================================================================

@dataclass
class SimState:
    """Mutable session state. Each timer callback rewrites the fields it owns in one step."""
    active_work: List[WorkUnit] = field(default_factory=list)
    history: History = field(default_factory=History)
    series: TimeSeries = field(default_factory=TimeSeries)
    invariants: Tuple[Invariant, ...] = field(default_factory=tuple)
    metrics: Metrics = field(default_factory=Metrics)
    receipt_ledger: ReceiptLedger = field(default_factory=lambda: ReceiptLedger(RECEIPT_SCHEMA))
    now_ms: int = 0
    tick: int = 0

    # Convenience mirrors of the latest snapshot
    @property
    def entropy(self) -> float:
        return self.metrics.entropy

    @property
    def active_count(self) -> int:
        return len(self.active_work)

    def is_active(self, unit_id: str) -> bool:
        return any(w.id == unit_id for w in self.active_work)
