"""
nea_sim/constants.py - Policy, Domain and Simulation Constants

All constants for the admission-control simulation. Centralized for tuning.
Pure data plus the closed enums the rest of the package switches on.
"""

from enum import Enum


# =============================================================================
# WORK UNIT LIFECYCLE
# =============================================================================

class WorkStatus(Enum):
    """Lifecycle status of a simulated work unit."""
    PENDING = "PENDING"
    ADMITTED = "ADMITTED"
    REFUSED = "REFUSED"
    PREEMPTED = "PREEMPTED"
    FAILED = "FAILED"
    COMPLETED = "COMPLETED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    WorkStatus.REFUSED,
    WorkStatus.PREEMPTED,
    WorkStatus.FAILED,
    WorkStatus.COMPLETED,
})

# Statuses that carry a diagnostic reason
REASONED_STATUSES = frozenset({
    WorkStatus.REFUSED,
    WorkStatus.PREEMPTED,
    WorkStatus.FAILED,
})


class InvariantStatus(Enum):
    """Threshold classification of a bound."""
    STABLE = "STABLE"
    WARNING = "WARNING"
    VIOLATED = "VIOLATED"


# =============================================================================
# POLICY MODES
# =============================================================================

class PolicyMode(Enum):
    """Admission policy.

    TRADITIONAL and REACTIVE admit everything and fail afterwards.
    NO_ERROR and BOUNDED refuse before any state mutation.
    """
    TRADITIONAL = "TRADITIONAL"
    REACTIVE = "REACTIVE"
    NO_ERROR = "NO_ERROR"
    BOUNDED = "BOUNDED"

    @property
    def is_gated(self) -> bool:
        return self in (PolicyMode.NO_ERROR, PolicyMode.BOUNDED)

    @property
    def refusal_status(self) -> WorkStatus:
        return WorkStatus.PREEMPTED if self is PolicyMode.BOUNDED else WorkStatus.REFUSED

    @property
    def counterpart(self) -> "PolicyMode":
        """The mode from the other family in the same dashboard variant."""
        return _COUNTERPARTS[self]


_COUNTERPARTS = {
    PolicyMode.TRADITIONAL: PolicyMode.NO_ERROR,
    PolicyMode.NO_ERROR: PolicyMode.TRADITIONAL,
    PolicyMode.REACTIVE: PolicyMode.BOUNDED,
    PolicyMode.BOUNDED: PolicyMode.REACTIVE,
}

# Entropy growth per active unit per tick
MODE_ENTROPY_MULTIPLIER = {
    PolicyMode.TRADITIONAL: 2.5,
    PolicyMode.REACTIVE: 3.0,
    PolicyMode.NO_ERROR: 0.0,
    PolicyMode.BOUNDED: 0.5,
}

# Fraction of disorder the policy keeps inside its boundary (syntropy numerator)
MODE_CONTAINMENT = {
    PolicyMode.TRADITIONAL: 0.5,
    PolicyMode.REACTIVE: 0.6,
    PolicyMode.NO_ERROR: 1.0,
    PolicyMode.BOUNDED: 1.0,
}

MODE_TICK_PERIOD_MS = {
    PolicyMode.TRADITIONAL: 800,
    PolicyMode.REACTIVE: 600,
    PolicyMode.NO_ERROR: 800,
    PolicyMode.BOUNDED: 600,
}


# =============================================================================
# OPERATING DOMAINS
# =============================================================================

class Domain(Enum):
    """Operating-context preset that rescales invariant limits."""
    GENERAL = "GENERAL"
    MEDICAL = "MEDICAL"
    AEROSPACE = "AEROSPACE"
    FINTECH = "FINTECH"


DOMAIN_ENTROPY_MULTIPLIER = {
    Domain.GENERAL: 1.0,
    Domain.MEDICAL: 1.5,
    Domain.AEROSPACE: 2.0,
    Domain.FINTECH: 1.25,
}

# Invariant limits per domain, keyed by invariant id
DOMAIN_LIMITS = {
    Domain.GENERAL: {"inv_load": 100.0, "inv_entropy": 20.0, "inv_failure": 10.0},
    Domain.MEDICAL: {"inv_load": 75.0, "inv_entropy": 12.0, "inv_failure": 2.0},
    Domain.AEROSPACE: {"inv_load": 50.0, "inv_entropy": 8.0, "inv_failure": 1.0},
    Domain.FINTECH: {"inv_load": 90.0, "inv_entropy": 15.0, "inv_failure": 5.0},
}

INVARIANT_IDS = ("inv_load", "inv_entropy", "inv_failure")


# =============================================================================
# ENTROPY / ORDER METRICS
# =============================================================================

ENTROPY_FLOOR = 0.0
ENTROPY_CEILING = 100.0
ENTROPY_DECAY = 5.0              # Natural decay subtracted every tick
WARNING_FRACTION = 0.75          # WARNING at 75% of limit
VIOLATION_HEALTH_PENALTY = 0.4   # Invariant health when any bound is VIOLATED
SYNTROPY_SCALE = 10.0            # k: syntropy ceiling
SYNTROPY_ENTROPY_SCALE = 25.0    # k2: entropy at which syntropy halves


# =============================================================================
# WORK TRANSITION
# =============================================================================

TRANSITION_SPEED = 15.0          # Payload drained per tick
PAYLOAD_MIN = 30
PAYLOAD_MAX = 89
THROUGHPUT_PER_COMPLETION = 10

STRESS_ENTROPY_FACTOR = 1.5
STRESS_TRANSITION_FACTOR = 0.75


# =============================================================================
# ADMISSION GATE
# =============================================================================

CAPACITY_THRESHOLD = 4
INSTABILITY_THRESHOLD = 10.0     # NO_ERROR refuses when entropy exceeds this
BASE_FAILURE_RISK = 0.05
FAILURE_DELAY_MS = 300

ID_PREFIX = "REQ-"
ID_TOKEN_LENGTH = 6
ID_MAX_DRAWS = 8  # token redraws before falling back to a numeric suffix

REASON_SATURATION = "SATURATION_REJECT"
REASON_UNSTABLE = "UNSTABLE_STATE_REFUSAL"
REASON_BOUND_BREACH_PREFIX = "BOUND_BREACH_"
REASON_RUNTIME_EXCEPTION = "RUN-TIME_EXCEPTION"


# =============================================================================
# TIMERS
# =============================================================================

TELEMETRY_PERIOD_MS = 1000
AUTO_INJECT_PERIOD_MS = 1200
STRESS_INJECT_PERIOD_MS = 400


# =============================================================================
# HISTORY / TELEMETRY WINDOWS
# =============================================================================

KPI_WINDOW = 100
LOG_DISPLAY_WINDOW = 20
SERIES_CAPACITY = 40


# =============================================================================
# RECEIPT SCHEMA
# =============================================================================

RECEIPT_SCHEMA = [
    "admission_decision", "work_failed", "work_completed",
    "mode_switch", "domain_switch", "stress_switch", "auto_inject_switch",
    "sim_result",
]
