"""
tests/test_admission.py - Admission Gate Tests

Validates:
- Gated modes refuse before mutation, one terminal record per refusal
- Refusal order: saturation, instability, projected breach
- BOUNDED refusals are PREEMPTED and name the breached bound
- Permissive modes always admit exactly one unit
- Delayed failure records RUN-TIME_EXCEPTION once, and only if still active
- Unit ids stay unique within a session even when random tokens repeat
"""

import pytest

from nea_sim.admission import (
    request_work,
    fail_unit,
    evaluate_gate,
    failure_risk,
    new_unit_id,
)
from nea_sim.constants import (
    Domain,
    PolicyMode,
    WorkStatus,
    REASON_SATURATION,
    REASON_UNSTABLE,
    REASON_RUNTIME_EXCEPTION,
    ID_MAX_DRAWS,
)
from nea_sim.cycle import initialize_state, tick
from nea_sim.rng import ScriptedRandom, SeededRandom
from nea_sim.types_config import SimConfig
from nea_sim.types_state import Metrics, WorkUnit


def _unit(uid: str, payload: float = 60.0, status: WorkStatus = WorkStatus.ADMITTED) -> WorkUnit:
    return WorkUnit(id=uid, payload=payload, timestamp=0, status=status)


def _state(config: SimConfig, entropy: float = 0.0, active: int = 0):
    state = initialize_state(config)
    state.metrics = Metrics(entropy=entropy)
    state.active_work = [_unit(f"ACT-{i}") for i in range(active)]
    return state


class TestNoErrorGate:
    """NO_ERROR refusal order."""

    def test_saturation_refused(self):
        """Four active units at capacity 4: fifth request is SATURATION_REJECT."""
        config = SimConfig(mode=PolicyMode.NO_ERROR)
        state = _state(config, active=4)
        before = list(state.active_work)

        outcome = request_work(state, config, ScriptedRandom())

        assert not outcome.admitted
        assert outcome.reason == REASON_SATURATION
        assert outcome.unit.status is WorkStatus.REFUSED
        assert state.active_work == before, "refusal must not touch the active set"
        assert len(state.history) == 1

    def test_saturation_checked_before_instability(self):
        """Saturated and unstable at once reports saturation."""
        config = SimConfig(mode=PolicyMode.NO_ERROR)
        state = _state(config, entropy=50.0, active=4)
        assert evaluate_gate(state, config) == REASON_SATURATION

    def test_unstable_state_refused(self):
        """Entropy above 10 refuses with UNSTABLE_STATE_REFUSAL."""
        config = SimConfig(mode=PolicyMode.NO_ERROR)
        state = _state(config, entropy=10.5)
        outcome = request_work(state, config, ScriptedRandom())
        assert outcome.reason == REASON_UNSTABLE
        assert state.active_count == 0

    def test_entropy_exactly_ten_admitted(self):
        """The instability threshold is strict."""
        config = SimConfig(mode=PolicyMode.NO_ERROR)
        state = _state(config, entropy=10.0)
        outcome = request_work(state, config, ScriptedRandom())
        assert outcome.admitted, f"expected admission, got {outcome.reason}"

    def test_projected_breach_refused(self):
        """AEROSPACE entropy 9: stable by threshold, but breaches the 8 limit."""
        config = SimConfig(mode=PolicyMode.NO_ERROR, domain=Domain.AEROSPACE)
        state = _state(config, entropy=9.0)
        outcome = request_work(state, config, ScriptedRandom())
        assert outcome.reason == "BOUND_BREACH_inv_entropy"
        assert outcome.unit.status is WorkStatus.REFUSED

    def test_two_refusals_two_records(self):
        """Each refusal is its own terminal record with its own id."""
        config = SimConfig(mode=PolicyMode.NO_ERROR)
        state = _state(config, active=4)
        rng = ScriptedRandom()

        first = request_work(state, config, rng)
        second = request_work(state, config, rng)

        assert len(state.history) == 2
        assert first.unit.id != second.unit.id
        assert all(u.status is WorkStatus.REFUSED for u in state.history)

    def test_admitted_unit_has_no_failure_risk(self):
        """Gated admissions are never scheduled to fail."""
        config = SimConfig(mode=PolicyMode.NO_ERROR)
        state = _state(config)
        outcome = request_work(state, config, ScriptedRandom(floats=[0.0]))
        assert outcome.admitted
        assert not outcome.failure_scheduled
        assert outcome.unit.failure_risk is None


class TestBoundedGate:
    """BOUNDED mode preemption."""

    def test_medical_entropy_breach(self):
        """Entropy 15 against MEDICAL limit 12 preempts with the entropy bound."""
        config = SimConfig(mode=PolicyMode.BOUNDED, domain=Domain.MEDICAL)
        state = _state(config, entropy=15.0)

        outcome = request_work(state, config, ScriptedRandom())

        assert outcome.reason == "BOUND_BREACH_inv_entropy"
        assert outcome.unit.status is WorkStatus.PREEMPTED
        assert state.active_count == 0

    def test_saturation_names_load_bound(self):
        """At capacity, BOUNDED reports the load bound."""
        config = SimConfig(mode=PolicyMode.BOUNDED)
        state = _state(config, active=4)
        assert evaluate_gate(state, config) == "BOUND_BREACH_inv_load"

    def test_failure_budget_breach(self):
        """A history full of failures breaches the failure budget."""
        config = SimConfig(mode=PolicyMode.BOUNDED)
        state = _state(config)
        state.history.append(_unit("OLD-1", status=WorkStatus.FAILED))
        assert evaluate_gate(state, config) == "BOUND_BREACH_inv_failure"

    def test_high_entropy_below_limit_admitted(self):
        """BOUNDED has no fixed instability threshold, only the bound."""
        config = SimConfig(mode=PolicyMode.BOUNDED)
        state = _state(config, entropy=19.0)
        assert evaluate_gate(state, config) is None


class TestPermissiveModes:
    """TRADITIONAL / REACTIVE always admit."""

    @pytest.mark.parametrize("mode", [PolicyMode.TRADITIONAL, PolicyMode.REACTIVE])
    def test_always_adds_exactly_one(self, mode):
        """Even saturated and at high entropy, one request adds one unit."""
        config = SimConfig(mode=mode)
        state = _state(config, entropy=90.0, active=10)

        outcome = request_work(state, config, ScriptedRandom())

        assert outcome.admitted
        assert state.active_count == 11
        assert len(state.history) == 0, "admission writes no terminal record"

    def test_payload_and_id_from_rng(self):
        """Payload comes from randint, id is REQ- plus a token."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = _state(config)
        outcome = request_work(state, config, ScriptedRandom(ints=[50]))
        assert outcome.unit.payload == 50.0
        assert outcome.unit.initial_payload == 50.0
        assert outcome.unit.id == "REQ-000001"

    def test_low_draw_schedules_failure(self):
        """A draw below entropy/100 + 0.05 dooms the unit."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = _state(config)
        outcome = request_work(state, config, ScriptedRandom(floats=[0.01]))
        assert outcome.failure_scheduled
        assert outcome.unit.failure_risk == pytest.approx(0.05)

    def test_high_draw_does_not(self):
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = _state(config, entropy=20.0)
        outcome = request_work(state, config, ScriptedRandom(floats=[0.5]))
        assert not outcome.failure_scheduled

    def test_failure_fraction_near_five_percent(self):
        """At entropy 0 roughly 5% of admissions are doomed."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = _state(config)
        rng = SeededRandom(7)
        n = 2000

        doomed = sum(request_work(state, config, rng).failure_scheduled for _ in range(n))

        fraction = doomed / n
        assert 0.03 < fraction < 0.07, f"failure fraction {fraction:.3f} not near 0.05"


class TestFailureRisk:
    """Risk formula."""

    def test_base_risk(self):
        assert failure_risk(0.0) == pytest.approx(0.05)

    def test_scales_with_entropy(self):
        assert failure_risk(40.0) == pytest.approx(0.45)

    def test_clamped_to_one(self):
        """100 entropy would give 1.05; probability stays at 1."""
        assert failure_risk(100.0) == 1.0


class TestFailUnit:
    """Delayed failure."""

    def test_records_runtime_exception(self):
        """An active unit is removed and recorded FAILED."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = _state(config, active=2)

        record = fail_unit(state, "ACT-0")

        assert record.status is WorkStatus.FAILED
        assert record.reason == REASON_RUNTIME_EXCEPTION
        assert not state.is_active("ACT-0")
        assert state.active_count == 1
        assert len(state.history) == 1

    def test_not_active_is_noop(self):
        """A unit that already left the active set is not recorded again."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = _state(config, active=1)
        fail_unit(state, "ACT-0")

        assert fail_unit(state, "ACT-0") is None
        assert len(state.history) == 1, "no double terminal record"

    def test_unknown_id_is_noop(self):
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = _state(config)
        assert fail_unit(state, "REQ-NOPE00") is None
        assert len(state.history) == 0


class TestReceipts:
    """Every decision lands in the ledger."""

    def test_refusal_and_admission_receipts(self):
        config = SimConfig(mode=PolicyMode.NO_ERROR)
        state = _state(config, active=3)
        rng = ScriptedRandom()

        request_work(state, config, rng)
        request_work(state, config, rng)

        decisions = [r["decision"] for r in state.receipt_ledger
                     if r["receipt_type"] == "admission_decision"]
        assert decisions == ["ADMITTED", "REFUSED"]


class RepeatingRandom(ScriptedRandom):
    """Random source whose tokens come from a fixed list, the last one repeating forever."""

    def __init__(self, tokens=("ABC123",), **kwargs):
        super().__init__(**kwargs)
        self.tokens = list(tokens)
        self.token_draws = 0

    def token(self, length: int) -> str:
        self.token_draws += 1
        if len(self.tokens) > 1:
            return self.tokens.pop(0)
        return self.tokens[0]


class TestUniqueIds:
    """A repeated random token never produces a second unit with the same id."""

    def test_repeated_refusals_get_distinct_ids(self):
        config = SimConfig(mode=PolicyMode.NO_ERROR)
        state = _state(config, active=4)
        rng = RepeatingRandom()

        first = request_work(state, config, rng)
        second = request_work(state, config, rng)

        assert not first.admitted and not second.admitted
        assert first.unit.id != second.unit.id, "a colliding token must not reuse an id"
        assert len(state.history) == 2, "both refusals recorded"

    def test_colliding_admissions_complete(self):
        """Two admitted units with the same drawn token both reach COMPLETED."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = _state(config)
        rng = RepeatingRandom()

        a = request_work(state, config, rng).unit
        b = request_work(state, config, rng).unit
        assert a.id != b.id
        assert state.active_count == 2

        for _ in range(500):
            if not state.active_work:
                break
            tick(state, config)

        assert state.active_work == [], "units should drain"
        completed = {u.id for u in state.history if u.status is WorkStatus.COMPLETED}
        assert completed == {a.id, b.id}, "one COMPLETED record per unit"
        assert state.history.verify_chain() == (True, None)

    def test_recorded_id_not_reused(self):
        """A fresh draw that matches a finished unit gets a new id."""
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = _state(config)
        state.history.append(_unit("REQ-ABC123", status=WorkStatus.COMPLETED))

        outcome = request_work(state, config, RepeatingRandom())

        assert outcome.unit.id != "REQ-ABC123"
        assert outcome.unit.id.startswith("REQ-ABC123-"), outcome.unit.id

    def test_fail_unit_removes_only_its_unit(self):
        config = SimConfig(mode=PolicyMode.TRADITIONAL)
        state = _state(config)
        rng = RepeatingRandom()
        a = request_work(state, config, rng).unit
        b = request_work(state, config, rng).unit

        fail_unit(state, a.id)

        assert [w.id for w in state.active_work] == [b.id], "the twin must stay active"
        assert [u.id for u in state.history] == [a.id]

    def test_redraw_before_suffix(self):
        state = _state(SimConfig(mode=PolicyMode.TRADITIONAL))
        state.history.append(_unit("REQ-ABC123", status=WorkStatus.COMPLETED))
        rng = RepeatingRandom(tokens=["ABC123", "ABC123", "XYZ789"])

        assert new_unit_id(state, rng) == "REQ-XYZ789"
        assert rng.token_draws == 3

    def test_suffix_after_bounded_draws(self):
        """A source stuck on one token is drawn at most ID_MAX_DRAWS times."""
        state = _state(SimConfig(mode=PolicyMode.TRADITIONAL), active=0)
        state.history.append(_unit("REQ-ABC123", status=WorkStatus.COMPLETED))
        state.active_work = [_unit("REQ-ABC123-1")]
        rng = RepeatingRandom()

        assert new_unit_id(state, rng) == "REQ-ABC123-2"
        assert rng.token_draws == ID_MAX_DRAWS
