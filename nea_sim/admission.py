"""
nea_sim/admission.py - Admission Gate

Decides, for each new work request, between:

- gated modes (NO_ERROR, BOUNDED): refuse before any state mutation when a
  bound is saturated or breached; the refusal is one terminal History record
  and the active set is untouched.
- permissive modes (TRADITIONAL, REACTIVE): always admit, then draw a
  failure with probability entropy/100 + 0.05; a drawn failure is carried out
  later by fail_unit(), which the session schedules after FAILURE_DELAY_MS.

Refusals happen before execution. Failures happen after it has started.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .constants import (
    PolicyMode,
    WorkStatus,
    PAYLOAD_MIN,
    PAYLOAD_MAX,
    ID_PREFIX,
    ID_TOKEN_LENGTH,
    ID_MAX_DRAWS,
    INSTABILITY_THRESHOLD,
    BASE_FAILURE_RISK,
    KPI_WINDOW,
    REASON_SATURATION,
    REASON_UNSTABLE,
    REASON_BOUND_BREACH_PREFIX,
    REASON_RUNTIME_EXCEPTION,
)
from .history import compute_kpis
from .invariants import current_values, reevaluate, first_violated
from .types_config import SimConfig
from .types_state import SimState, WorkUnit, Invariant


@dataclass(frozen=True)
class AdmissionOutcome:
    """Result of one request.

    unit is the terminal refusal record when admitted is False, otherwise the
    unit that just entered the active set.
    """
    admitted: bool
    unit: WorkUnit
    reason: Optional[str] = None
    failure_scheduled: bool = False


def _id_taken(state: SimState, unit_id: str) -> bool:
    return unit_id in state.history or state.is_active(unit_id)


def new_unit_id(state: SimState, rng) -> str:
    """
    Draw an id not yet used in this session (active or recorded).

    Redraws the random token up to ID_MAX_DRAWS times, then appends a numeric
    suffix to the last draw, so a source that keeps repeating still terminates.
    """
    candidate = f"{ID_PREFIX}{rng.token(ID_TOKEN_LENGTH)}"
    for _ in range(ID_MAX_DRAWS - 1):
        if not _id_taken(state, candidate):
            return candidate
        candidate = f"{ID_PREFIX}{rng.token(ID_TOKEN_LENGTH)}"
    base, n = candidate, 1
    while _id_taken(state, candidate):
        candidate = f"{base}-{n}"
        n += 1
    return candidate


def new_work_unit(state: SimState, rng) -> WorkUnit:
    """Fresh PENDING unit with a session-unique id, stamped with the session clock."""
    return WorkUnit(
        id=new_unit_id(state, rng),
        payload=float(rng.randint(PAYLOAD_MIN, PAYLOAD_MAX)),
        timestamp=state.now_ms,
    )


def project_invariants(state: SimState, config: SimConfig) -> Tuple[Invariant, ...]:
    """Invariants re-evaluated against the live state (no mutation)."""
    failure_rate = compute_kpis(state.history.window(KPI_WINDOW))["failure_rate"]
    values = current_values(state.active_count, config.capacity, state.entropy, failure_rate)
    return reevaluate(state.invariants, values)


def breach_reason(invariant: Invariant) -> str:
    return f"{REASON_BOUND_BREACH_PREFIX}{invariant.id}"


def evaluate_gate(state: SimState, config: SimConfig) -> Optional[str]:
    """
    Pre-admission check for gated modes.

    Args:
        state: Current SimState (read only)
        config: Session config (mode, capacity)

    Returns:
        Refusal reason, or None when the request may be admitted.
        Always None for permissive modes.
    """
    mode = config.mode
    if not mode.is_gated:
        return None

    saturated = state.active_count >= config.capacity
    projected = project_invariants(state, config)

    if mode is PolicyMode.NO_ERROR:
        if saturated:
            return REASON_SATURATION
        if state.entropy > INSTABILITY_THRESHOLD:
            return REASON_UNSTABLE
        breached = first_violated(projected)
        return breach_reason(breached) if breached else None

    # BOUNDED: every refusal names the bound it protects
    if saturated:
        return f"{REASON_BOUND_BREACH_PREFIX}inv_load"
    breached = first_violated(projected)
    return breach_reason(breached) if breached else None


def failure_risk(entropy: float) -> float:
    """Permissive-mode failure probability, clamped to [0, 1]."""
    return max(0.0, min(1.0, entropy / 100.0 + BASE_FAILURE_RISK))


def request_work(state: SimState, config: SimConfig, rng) -> AdmissionOutcome:
    """
    Handle one new-work event.

    Exactly one of:
      - refusal: one History append, active set unchanged
      - admission: one active-set addition (plus, maybe, a later fail_unit)

    Args:
        state: Current SimState (mutated in place)
        config: Session config
        rng: Random source (token, randint, random)

    Returns:
        AdmissionOutcome
    """
    unit = new_work_unit(state, rng)
    reason = evaluate_gate(state, config)

    if reason is not None:
        record = unit.with_status(config.mode.refusal_status, reason)
        state.history.append(record)
        state.receipt_ledger.emit("admission_decision", {
            "unit_id": record.id,
            "mode": config.mode.value,
            "domain": config.domain.value,
            "decision": record.status.value,
            "reason": reason,
            "active_count": state.active_count,
            "entropy": state.entropy,
            "time_ms": state.now_ms,
        })
        return AdmissionOutcome(admitted=False, unit=record, reason=reason)

    risk = None
    doomed = False
    if not config.mode.is_gated:
        risk = failure_risk(state.entropy)
        doomed = rng.random() < risk

    admitted = WorkUnit(
        id=unit.id,
        payload=unit.payload,
        timestamp=unit.timestamp,
        status=WorkStatus.ADMITTED,
        failure_risk=risk,
    )
    state.active_work = state.active_work + [admitted]
    state.receipt_ledger.emit("admission_decision", {
        "unit_id": admitted.id,
        "mode": config.mode.value,
        "domain": config.domain.value,
        "decision": WorkStatus.ADMITTED.value,
        "failure_risk": risk,
        "failure_scheduled": doomed,
        "active_count": state.active_count,
        "entropy": state.entropy,
        "time_ms": state.now_ms,
    })
    return AdmissionOutcome(admitted=True, unit=admitted, failure_scheduled=doomed)


def fail_unit(state: SimState, unit_id: str) -> Optional[WorkUnit]:
    """
    Delayed failure of an admitted unit.

    No-op (returns None) when the unit is no longer active, e.g. it completed
    naturally before the delay elapsed. Otherwise removes it and records
    FAILED with reason RUN-TIME_EXCEPTION.
    """
    unit = next((w for w in state.active_work if w.id == unit_id), None)
    if unit is None:
        return None

    state.active_work = [w for w in state.active_work if w.id != unit_id]
    record = unit.with_status(WorkStatus.FAILED, REASON_RUNTIME_EXCEPTION)
    state.history.append(record)
    state.receipt_ledger.emit("work_failed", {
        "unit_id": record.id,
        "reason": REASON_RUNTIME_EXCEPTION,
        "failure_risk": record.failure_risk,
        "remaining_payload": record.payload,
        "time_ms": state.now_ms,
    })
    return record
