"""
nea_sim - NEA Studio Simulation Package

Public API for the admission-control simulation.
Flat, focused files. One file = one responsibility.
"""

# =============================================================================
# TYPES (Dataclasses)
# =============================================================================
from .types_config import (
    SimConfig,
    SCENARIO_TRADITIONAL,
    SCENARIO_NO_ERROR,
    SCENARIO_REACTIVE_STRESS,
    SCENARIO_BOUNDED_STRESS,
    SCENARIO_AEROSPACE_BOUNDED,
    SCENARIO_MEDICAL_REACTIVE,
    SCENARIOS,
)
from .types_state import SimState, WorkUnit, Invariant, Metrics
from .types_result import SimResult

# =============================================================================
# CONSTANTS
# =============================================================================
from .constants import (
    WorkStatus,
    InvariantStatus,
    PolicyMode,
    Domain,
    DOMAIN_LIMITS,
    RECEIPT_SCHEMA,
    CAPACITY_THRESHOLD,
)

# =============================================================================
# CORE SIMULATION
# =============================================================================
from .cycle import initialize_state, tick
from .admission import AdmissionOutcome, request_work, fail_unit, evaluate_gate
from .invariants import build_invariants, apply_domain, classify_status
from .history import History, TimeSeries, compute_kpis
from .scheduler import Scheduler, TimerHandle
from .rng import SeededRandom, ScriptedRandom
from .session import SimulationSession, run_simulation, run_multiverse

# =============================================================================
# EXPORT
# =============================================================================
from .export import (
    build_snapshot,
    event_log_rows,
    export_json,
    generate_report,
    compare_results,
)

__all__ = [
    # Types
    "SimConfig", "SimState", "SimResult", "WorkUnit", "Invariant", "Metrics",
    "SCENARIO_TRADITIONAL", "SCENARIO_NO_ERROR", "SCENARIO_REACTIVE_STRESS",
    "SCENARIO_BOUNDED_STRESS", "SCENARIO_AEROSPACE_BOUNDED",
    "SCENARIO_MEDICAL_REACTIVE", "SCENARIOS",
    # Constants
    "WorkStatus", "InvariantStatus", "PolicyMode", "Domain",
    "DOMAIN_LIMITS", "RECEIPT_SCHEMA", "CAPACITY_THRESHOLD",
    # Core
    "initialize_state", "tick",
    "AdmissionOutcome", "request_work", "fail_unit", "evaluate_gate",
    "build_invariants", "apply_domain", "classify_status",
    "History", "TimeSeries", "compute_kpis",
    "Scheduler", "TimerHandle", "SeededRandom", "ScriptedRandom",
    "SimulationSession", "run_simulation", "run_multiverse",
    # Export
    "build_snapshot", "event_log_rows", "export_json", "generate_report",
    "compare_results",
]
