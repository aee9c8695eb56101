"""
nea_sim/cycle.py - Simulation Engine Tick

One call of tick() is one timer firing: entropy update, order metrics, work
advancement, invariant re-evaluation, KPI aggregation, in that order. Pure
arithmetic over clamped ranges; nothing in here raises.
"""

import logging
from typing import List

from .constants import (
    WorkStatus,
    MODE_ENTROPY_MULTIPLIER,
    MODE_CONTAINMENT,
    DOMAIN_ENTROPY_MULTIPLIER,
    ENTROPY_FLOOR,
    ENTROPY_CEILING,
    ENTROPY_DECAY,
    VIOLATION_HEALTH_PENALTY,
    SYNTROPY_SCALE,
    SYNTROPY_ENTROPY_SCALE,
    TRANSITION_SPEED,
    STRESS_ENTROPY_FACTOR,
    STRESS_TRANSITION_FACTOR,
    THROUGHPUT_PER_COMPLETION,
    KPI_WINDOW,
)
from .history import compute_kpis
from .invariants import build_invariants, current_values, reevaluate, any_violated
from .types_config import SimConfig
from .types_state import SimState, Metrics, WorkUnit

logger = logging.getLogger(__name__)


def initialize_state(config: SimConfig) -> SimState:
    """
    Fresh session state: empty work set, zero entropy, domain invariants.

    Args:
        config: SimConfig with domain and capacity

    Returns:
        SimState ready for the first tick
    """
    state = SimState()
    state.invariants = build_invariants(config.domain)
    return state


# =============================================================================
# STEP 1: ENTROPY
# =============================================================================

def next_entropy(entropy: float, active_count: int, config: SimConfig) -> float:
    """entropy + active * mode_mult * domain_mult (* stress) - decay, clamped to [0, 100]."""
    growth = (active_count
              * MODE_ENTROPY_MULTIPLIER[config.mode]
              * DOMAIN_ENTROPY_MULTIPLIER[config.domain])
    if config.stress:
        growth *= STRESS_ENTROPY_FACTOR
    return max(ENTROPY_FLOOR, min(ENTROPY_CEILING, entropy + growth - ENTROPY_DECAY))


# =============================================================================
# STEP 2: ORDER METRICS
# =============================================================================

def invariant_health(invariants) -> float:
    return VIOLATION_HEALTH_PENALTY if any_violated(invariants) else 1.0


def compute_syntropy(entropy: float, health: float, config: SimConfig) -> float:
    """Phi = containment * health * k / (1 + entropy / k2)."""
    containment = MODE_CONTAINMENT[config.mode]
    return containment * health * SYNTROPY_SCALE / (1.0 + entropy / SYNTROPY_ENTROPY_SCALE)


# =============================================================================
# STEP 3: WORK ADVANCEMENT
# =============================================================================

def transition_speed(config: SimConfig) -> float:
    speed = TRANSITION_SPEED
    if config.stress:
        speed *= STRESS_TRANSITION_FACTOR
    return speed


def advance_work(active: List[WorkUnit], speed: float):
    """
    Drain every active unit by speed.

    Returns:
        (still_active, completed) - completed units already carry COMPLETED
    """
    still_active = []
    completed = []
    for unit in active:
        drained = WorkUnit(
            id=unit.id,
            payload=unit.payload - speed,
            timestamp=unit.timestamp,
            status=unit.status,
            failure_risk=unit.failure_risk,
            initial_payload=unit.initial_payload,
        )
        if drained.payload <= 0:
            completed.append(drained.with_status(WorkStatus.COMPLETED))
        else:
            still_active.append(drained)
    return still_active, completed


# =============================================================================
# TICK
# =============================================================================

def tick(state: SimState, config: SimConfig) -> List[WorkUnit]:
    """
    One engine step.

    Args:
        state: Current SimState (mutated in place)
        config: Session config (mode, domain, stress, capacity)

    Returns:
        Units completed this tick, in active-set order
    """
    state.tick += 1

    # 1. Entropy from the load carried into this tick
    entropy = next_entropy(state.entropy, state.active_count, config)

    # 2. Order metrics against last tick's invariant health
    coherence = ENTROPY_CEILING - entropy
    syntropy = compute_syntropy(entropy, invariant_health(state.invariants), config)

    # 3. Advance work; completions leave the active set this same tick
    still_active, completed = advance_work(state.active_work, transition_speed(config))
    state.active_work = still_active
    for unit in completed:
        state.history.append(unit)
        state.receipt_ledger.emit("work_completed", {
            "unit_id": unit.id,
            "initial_payload": unit.initial_payload,
            "time_ms": state.now_ms,
            "tick": state.tick,
        })

    # 4. Invariants from fresh state
    window = state.history.window(KPI_WINDOW)
    kpis = compute_kpis(window)
    values = current_values(len(still_active), config.capacity, entropy, kpis["failure_rate"])
    state.invariants = reevaluate(state.invariants, values)

    # 5. KPIs
    state.metrics = Metrics(
        tick=state.tick,
        entropy=entropy,
        coherence=coherence,
        syntropy=syntropy,
        throughput=float(len(completed) * THROUGHPUT_PER_COMPLETION),
        load=values["inv_load"],
        active_count=len(still_active),
        admission_rate=kpis["admission_rate"],
        failure_rate=kpis["failure_rate"],
        refusal_rate=kpis["refusal_rate"],
        total_requests=len(state.history),
        avg_payload=kpis["avg_payload"],
    )

    logger.debug(
        "tick %d: entropy=%.2f active=%d completed=%d",
        state.tick, entropy, len(still_active), len(completed),
    )
    return completed
