"""
tests/test_cycle.py - Engine Tick Tests

Validates:
- Entropy growth per mode, domain and stress, clamped to [0, 100]
- Coherence and syntropy from the same tick's entropy
- Work drains by the transition speed and leaves in the tick it reaches 0
- Completed units are recorded exactly once
"""

import pytest

from nea_sim.admission import fail_unit
from nea_sim.constants import Domain, PolicyMode, WorkStatus, InvariantStatus
from nea_sim.cycle import (
    initialize_state,
    next_entropy,
    compute_syntropy,
    advance_work,
    transition_speed,
    tick,
)
from nea_sim.types_config import SimConfig
from nea_sim.types_state import Metrics, WorkUnit


def _unit(uid: str, payload: float) -> WorkUnit:
    return WorkUnit(id=uid, payload=payload, timestamp=0, status=WorkStatus.ADMITTED)


class TestNextEntropy:
    """Entropy step."""

    def test_traditional_growth(self):
        """4 active * 2.5 - 5 decay."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        assert next_entropy(0.0, 4, config) == pytest.approx(5.0)

    def test_no_error_only_decays(self):
        """NO_ERROR adds nothing; decay floors at 0."""
        config = SimConfig(mode=PolicyMode.NO_ERROR)
        assert next_entropy(3.0, 4, config) == 0.0
        assert next_entropy(12.0, 4, config) == pytest.approx(7.0)

    def test_ceiling_clamp(self):
        """99 + 10 - 5 clamps to 100."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        assert next_entropy(99.0, 4, config) == 100.0

    def test_domain_multiplier(self):
        """AEROSPACE doubles growth: 2 * 2.5 * 2 - 5."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL, domain=Domain.AEROSPACE)
        assert next_entropy(0.0, 2, config) == pytest.approx(5.0)

    def test_stress_multiplier(self):
        """REACTIVE under stress: 2 * 3.0 * 1.5 - 5."""
        config = SimConfig(mode=PolicyMode.REACTIVE, stress=True)
        assert next_entropy(0.0, 2, config) == pytest.approx(4.0)


class TestOrderMetrics:
    """Syntropy formula."""

    def test_no_error_at_zero_entropy(self):
        config = SimConfig(mode=PolicyMode.NO_ERROR)
        assert compute_syntropy(0.0, 1.0, config) == pytest.approx(10.0)

    def test_traditional_halved_at_k2(self):
        """Containment 0.5, entropy 25 halves the rest."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        assert compute_syntropy(25.0, 1.0, config) == pytest.approx(2.5)

    def test_violation_penalty(self):
        config = SimConfig(mode=PolicyMode.BOUNDED)
        assert compute_syntropy(0.0, 0.4, config) == pytest.approx(4.0)


class TestAdvanceWork:
    """Work drain."""

    def test_drains_by_speed(self):
        still, done = advance_work([_unit("A", 30.0)], 15.0)
        assert done == []
        assert still[0].payload == 15.0
        assert still[0].initial_payload == 30.0, "initial payload is kept"

    def test_completes_at_zero(self):
        """Payload reaching exactly 0 completes in that step."""
        still, done = advance_work([_unit("A", 15.0)], 15.0)
        assert still == []
        assert done[0].status is WorkStatus.COMPLETED
        assert done[0].reason is None

    def test_stress_speed(self):
        assert transition_speed(SimConfig()) == 15.0
        assert transition_speed(SimConfig(stress=True)) == pytest.approx(11.25)


class TestTick:
    """Full engine step."""

    def test_unit_completes_on_second_tick(self):
        """Payload 30 at speed 15: active after tick 1, recorded after tick 2."""
        config = SimConfig(mode=PolicyMode.NO_ERROR)
        state = initialize_state(config)
        state.active_work = [_unit("REQ-A", 30.0)]

        assert tick(state, config) == []
        assert state.is_active("REQ-A")
        assert state.active_work[0].payload == 15.0

        completed = tick(state, config)
        assert [u.id for u in completed] == ["REQ-A"]
        assert state.active_count == 0
        assert len(state.history) == 1
        assert state.metrics.throughput == 10.0
        assert state.metrics.admission_rate == 100.0

    def test_stress_needs_three_ticks(self):
        """Payload 30 at 11.25 per tick completes on tick 3."""
        config = SimConfig(mode=PolicyMode.NO_ERROR, stress=True)
        state = initialize_state(config)
        state.active_work = [_unit("REQ-A", 30.0)]
        tick(state, config)
        tick(state, config)
        assert state.is_active("REQ-A")
        tick(state, config)
        assert not state.is_active("REQ-A")

    def test_no_double_terminal_after_completion(self):
        """A delayed failure after natural completion writes nothing."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = initialize_state(config)
        state.active_work = [_unit("REQ-A", 10.0)]
        tick(state, config)

        assert fail_unit(state, "REQ-A") is None
        assert len(state.history) == 1
        assert next(iter(state.history)).status is WorkStatus.COMPLETED

    def test_metrics_rebuilt(self):
        """Entropy uses the load carried in; load uses the load carried out."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = initialize_state(config)
        state.active_work = [_unit(f"REQ-{i}", 89.0) for i in range(4)]

        tick(state, config)

        assert state.metrics.tick == 1
        assert state.metrics.entropy == pytest.approx(5.0)
        assert state.metrics.coherence == pytest.approx(95.0)
        assert state.metrics.load == 100.0
        assert state.invariants[0].status is InvariantStatus.VIOLATED

    def test_syntropy_uses_previous_violation(self):
        """Second tick sees last tick's load violation: health 0.4."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = initialize_state(config)
        state.active_work = [_unit(f"REQ-{i}", 89.0) for i in range(4)]

        tick(state, config)
        tick(state, config)

        # entropy 5 + 10 - 5 = 10; 0.5 * 0.4 * 10 / (1 + 10/25)
        assert state.metrics.entropy == pytest.approx(10.0)
        assert state.metrics.syntropy == pytest.approx(2.0 / 1.4)

    def test_idle_tick_decays_entropy(self):
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = initialize_state(config)
        state.metrics = Metrics(entropy=12.0)
        tick(state, config)
        assert state.metrics.entropy == pytest.approx(7.0)
        assert state.metrics.throughput == 0.0

    def test_completion_receipt(self):
        config = SimConfig(mode=PolicyMode.NO_ERROR)
        state = initialize_state(config)
        state.active_work = [_unit("REQ-A", 15.0)]
        tick(state, config)
        types = [r["receipt_type"] for r in state.receipt_ledger]
        assert types == ["work_completed"]
