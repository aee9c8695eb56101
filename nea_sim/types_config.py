"""
nea_sim/types_config.py - SimConfig Dataclass and Scenario Presets

Immutable configuration for a simulation session.
Frozen dataclass; the session swaps it wholesale via dataclasses.replace when
the operator flips mode, domain or stress.
"""

from dataclasses import dataclass
from typing import Optional

from .constants import (
    PolicyMode,
    Domain,
    CAPACITY_THRESHOLD,
    TELEMETRY_PERIOD_MS,
    AUTO_INJECT_PERIOD_MS,
    STRESS_INJECT_PERIOD_MS,
    MODE_TICK_PERIOD_MS,
)


@dataclass(frozen=True)
class SimConfig:
    """Simulation configuration (immutable)."""
    mode: PolicyMode = PolicyMode.NO_ERROR
    domain: Domain = Domain.GENERAL
    stress: bool = False
    auto_inject: bool = False
    capacity: int = CAPACITY_THRESHOLD
    random_seed: int = 42
    telemetry_period_ms: int = TELEMETRY_PERIOD_MS
    auto_inject_period_ms: int = AUTO_INJECT_PERIOD_MS
    stress_inject_period_ms: int = STRESS_INJECT_PERIOD_MS
    # None = use the mode's native period (800 ms / 600 ms)
    tick_period_override_ms: Optional[int] = None
    scenario_name: str = "CUSTOM"

    @property
    def tick_period_ms(self) -> int:
        if self.tick_period_override_ms is not None:
            return self.tick_period_override_ms
        return MODE_TICK_PERIOD_MS[self.mode]

    @property
    def inject_period_ms(self) -> int:
        return self.stress_inject_period_ms if self.stress else self.auto_inject_period_ms


# =============================================================================
# SCENARIO PRESETS
# =============================================================================

SCENARIO_TRADITIONAL = SimConfig(
    mode=PolicyMode.TRADITIONAL,
    auto_inject=True,
    random_seed=42,
    scenario_name="TRADITIONAL",
)

SCENARIO_NO_ERROR = SimConfig(
    mode=PolicyMode.NO_ERROR,
    auto_inject=True,
    random_seed=42,
    scenario_name="NO_ERROR",
)

SCENARIO_REACTIVE_STRESS = SimConfig(
    mode=PolicyMode.REACTIVE,
    stress=True,
    auto_inject=True,
    random_seed=43,
    scenario_name="REACTIVE_STRESS",
)

SCENARIO_BOUNDED_STRESS = SimConfig(
    mode=PolicyMode.BOUNDED,
    stress=True,
    auto_inject=True,
    random_seed=43,
    scenario_name="BOUNDED_STRESS",
)

SCENARIO_AEROSPACE_BOUNDED = SimConfig(
    mode=PolicyMode.BOUNDED,
    domain=Domain.AEROSPACE,
    auto_inject=True,
    random_seed=44,
    scenario_name="AEROSPACE_BOUNDED",
)

SCENARIO_MEDICAL_REACTIVE = SimConfig(
    mode=PolicyMode.REACTIVE,
    domain=Domain.MEDICAL,
    auto_inject=True,
    random_seed=45,
    scenario_name="MEDICAL_REACTIVE",
)

SCENARIOS = {
    cfg.scenario_name: cfg for cfg in (
        SCENARIO_TRADITIONAL,
        SCENARIO_NO_ERROR,
        SCENARIO_REACTIVE_STRESS,
        SCENARIO_BOUNDED_STRESS,
        SCENARIO_AEROSPACE_BOUNDED,
        SCENARIO_MEDICAL_REACTIVE,
    )
}
