"""
nea_sim/session.py - Simulation Session Controller

A SimulationSession owns one SimState, one random source and one scheduler.
Three independent periodic callbacks run on the scheduler:

    engine tick      every 800 ms / 600 ms (per mode)
    telemetry sample every 1000 ms
    auto injection   every 1200 ms (400 ms under stress), when enabled

plus one-shot delayed failures in permissive modes. Every callback reads and
rewrites the state inside a single synchronous call.
"""

import logging
from collections import Counter
from dataclasses import replace
from functools import partial
from typing import Any, Dict, List, Optional

from .admission import AdmissionOutcome, request_work, fail_unit
from .constants import PolicyMode, Domain, WorkStatus, FAILURE_DELAY_MS
from .cycle import initialize_state, tick
from .export import build_snapshot
from .invariants import apply_domain
from .rng import SeededRandom
from .scheduler import Scheduler, TimerHandle
from .types_config import SimConfig
from .types_result import SimResult

logger = logging.getLogger(__name__)


class SimulationSession:
    """Single-session controller; the only owner of its state."""

    def __init__(self, config: Optional[SimConfig] = None, rng=None,
                 scheduler: Optional[Scheduler] = None):
        self.config = config or SimConfig()
        self.rng = rng if rng is not None else SeededRandom(self.config.random_seed)
        self.scheduler = scheduler or Scheduler()
        self.state = initialize_state(self.config)
        self.state.now_ms = self.scheduler.now_ms

        self._tick_timer: Optional[TimerHandle] = None
        self._telemetry_timer: Optional[TimerHandle] = None
        self._inject_timer: Optional[TimerHandle] = None
        self.delayed_failures: List[TimerHandle] = []

        self._start_tick_timer()
        self._telemetry_timer = self.scheduler.every(
            self.config.telemetry_period_ms, self._on_telemetry, name="telemetry")
        if self.config.auto_inject:
            self._start_inject_timer()

    # -------------------------------------------------------------------------
    # Timers
    # -------------------------------------------------------------------------

    def _sync_clock(self) -> None:
        self.state.now_ms = self.scheduler.now_ms

    def _start_tick_timer(self) -> None:
        if self._tick_timer is not None:
            self._tick_timer.cancel()
        self._tick_timer = self.scheduler.every(
            self.config.tick_period_ms, self._on_tick, name="engine_tick")

    def _start_inject_timer(self) -> None:
        if self._inject_timer is not None:
            self._inject_timer.cancel()
        self._inject_timer = self.scheduler.every(
            self.config.inject_period_ms, self._on_auto_inject, name="auto_inject")

    def _stop_inject_timer(self) -> None:
        if self._inject_timer is not None:
            self._inject_timer.cancel()
            self._inject_timer = None

    def _on_tick(self) -> None:
        self._sync_clock()
        tick(self.state, self.config)

    def _on_telemetry(self) -> None:
        self._sync_clock()
        self.state.series.sample(self.state.metrics, self.state.invariants, self.state.now_ms)

    def _on_auto_inject(self) -> None:
        self.request_work()

    def _on_delayed_failure(self, unit_id: str) -> None:
        self._sync_clock()
        self.delayed_failures = [h for h in self.delayed_failures
                                 if not (h.fired or h.cancelled)]
        record = fail_unit(self.state, unit_id)
        if record is None:
            logger.debug("delayed failure for %s skipped: no longer active", unit_id)

    # -------------------------------------------------------------------------
    # Operator actions
    # -------------------------------------------------------------------------

    def request_work(self) -> AdmissionOutcome:
        """Inject one work unit through the admission gate."""
        self._sync_clock()
        outcome = request_work(self.state, self.config, self.rng)
        if outcome.failure_scheduled:
            handle = self.scheduler.after(
                FAILURE_DELAY_MS,
                partial(self._on_delayed_failure, outcome.unit.id),
                name=f"fail:{outcome.unit.id}",
            )
            self.delayed_failures.append(handle)
        if not outcome.admitted:
            logger.debug("refused %s: %s", outcome.unit.id, outcome.reason)
        return outcome

    def set_mode(self, mode: PolicyMode) -> None:
        """Switch policy; the tick timer is restarted at the new mode's period."""
        if mode is self.config.mode:
            return
        previous = self.config.mode
        old_period = self.config.tick_period_ms
        self.config = replace(self.config, mode=mode)
        if self.config.tick_period_ms != old_period:
            self._start_tick_timer()
        self._record_switch("mode_switch", previous.value, mode.value)

    def set_domain(self, domain: Domain) -> None:
        """Replace every invariant limit with the domain table in one assignment."""
        if domain is self.config.domain:
            return
        previous = self.config.domain
        self.config = replace(self.config, domain=domain)
        self.state.invariants = apply_domain(self.state.invariants, domain)
        self._record_switch("domain_switch", previous.value, domain.value)

    def set_stress(self, enabled: bool) -> None:
        if enabled == self.config.stress:
            return
        self.config = replace(self.config, stress=enabled)
        if self._inject_timer is not None:
            self._start_inject_timer()
        self._record_switch("stress_switch", not enabled, enabled)

    def set_auto_inject(self, enabled: bool) -> None:
        if enabled == self.config.auto_inject:
            return
        self.config = replace(self.config, auto_inject=enabled)
        if enabled:
            self._start_inject_timer()
        else:
            self._stop_inject_timer()
        self._record_switch("auto_inject_switch", not enabled, enabled)

    def _record_switch(self, receipt_type: str, previous: Any, current: Any) -> None:
        self.state.receipt_ledger.emit(receipt_type, {
            "from": previous,
            "to": current,
            "time_ms": self.scheduler.now_ms,
        })
        logger.info("%s: %s -> %s", receipt_type, previous, current)

    # -------------------------------------------------------------------------
    # Time and observation
    # -------------------------------------------------------------------------

    def advance(self, dt_ms: int) -> int:
        """Advance virtual time, firing due callbacks. Returns callbacks fired."""
        fired = self.scheduler.advance(dt_ms)
        self._sync_clock()
        return fired

    @property
    def now_ms(self) -> int:
        return self.scheduler.now_ms

    def statistics(self) -> Dict[str, Any]:
        """Whole-session counts (not windowed)."""
        statuses = Counter(u.status for u in self.state.history)
        reasons = Counter(u.reason for u in self.state.history if u.reason)
        chain_ok, broken_at = self.state.history.verify_chain()
        return {
            "mode": self.config.mode.value,
            "domain": self.config.domain.value,
            "ticks": self.state.tick,
            "terminal_records": len(self.state.history),
            "completed": statuses[WorkStatus.COMPLETED],
            "failed": statuses[WorkStatus.FAILED],
            "refused": statuses[WorkStatus.REFUSED],
            "preempted": statuses[WorkStatus.PREEMPTED],
            "in_flight": self.state.active_count,
            "reasons": dict(reasons),
            "final_metrics": self.state.metrics.to_dict(),
            "chain_valid": chain_ok,
            "chain_broken_at": broken_at,
            "ledger_root": self.state.receipt_ledger.root(),
        }

    def snapshot(self) -> Dict[str, Any]:
        """Read-only view for the presentation layer."""
        return build_snapshot(self)

    def result(self) -> SimResult:
        stats = self.statistics()
        self.state.receipt_ledger.emit("sim_result", {
            "scenario": self.config.scenario_name,
            "duration_ms": self.now_ms,
            "completed": stats["completed"],
            "failed": stats["failed"],
            "refused": stats["refused"] + stats["preempted"],
        })
        return SimResult(
            final_state=self.state,
            series=[p.to_dict() for p in self.state.series.points()],
            statistics=stats,
            config=self.config,
            duration_ms=self.now_ms,
        )


# =============================================================================
# HEADLESS RUNS
# =============================================================================

def run_simulation(config: SimConfig, duration_ms: int = 60_000, rng=None) -> SimResult:
    """
    Run one session for duration_ms of virtual time.

    Args:
        config: SimConfig (auto_inject drives the load)
        duration_ms: Virtual milliseconds to simulate
        rng: Optional random source (defaults to SeededRandom(config.random_seed))

    Returns:
        SimResult with final state, telemetry series and statistics
    """
    session = SimulationSession(config, rng=rng)
    session.advance(duration_ms)
    return session.result()


def run_multiverse(configs: List[SimConfig], duration_ms: int = 60_000) -> List[SimResult]:
    """Run several configurations in sequence, each in its own session."""
    return [run_simulation(config, duration_ms) for config in configs]
