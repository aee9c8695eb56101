"""
nea_sim/invariants.py - Bound Definitions, Domain Limits and Status Rule

Each bound has a symbolic definition (sympy) used only to render the
human-readable expression shown next to it. Status is never derived from the
expression; it comes from classify_status(current, limit).

    VIOLATED  current >= limit
    WARNING   current >= 0.75 * limit
    STABLE    otherwise
"""

from dataclasses import dataclass, replace
from typing import Dict, Iterable, Optional, Tuple

from sympy import symbols, sstr, StrictLessThan, Integer, Float
from sympy.core.expr import Expr

from .constants import (
    Domain,
    InvariantStatus,
    DOMAIN_LIMITS,
    WARNING_FRACTION,
)
from .types_state import Invariant


# -----------------------------------------------------------------------------
# Symbols
# -----------------------------------------------------------------------------
W, C, E, F, N = symbols("W C E F N", real=True, nonnegative=True)


@dataclass(frozen=True)
class BoundDef:
    """Static part of an invariant."""
    id: str
    name: str
    symbolic: Expr
    unit: str
    safety_critical: bool


BOUND_DEFS: Tuple[BoundDef, ...] = (
    BoundDef(
        id="inv_load",
        name="Capacity Saturation",
        symbolic=100 * W / C,
        unit="%",
        safety_critical=False,
    ),
    BoundDef(
        id="inv_entropy",
        name="Entropy Ceiling",
        symbolic=E,
        unit="%",
        safety_critical=True,
    ),
    BoundDef(
        id="inv_failure",
        name="Failure Budget",
        symbolic=100 * F / N,
        unit="%",
        safety_critical=True,
    ),
)


def classify_status(current: float, limit: float) -> InvariantStatus:
    """Pure threshold rule shared by the engine and the gate."""
    if current >= limit:
        return InvariantStatus.VIOLATED
    if current >= WARNING_FRACTION * limit:
        return InvariantStatus.WARNING
    return InvariantStatus.STABLE


def render_expression(bound: BoundDef, limit: float) -> str:
    """
    Render 'G(<expr> < limit)' for display.

    Args:
        bound: Static bound definition
        limit: Domain limit

    Returns:
        str: e.g. "G(100*W/C < 75)"
    """
    lim = Integer(int(limit)) if float(limit).is_integer() else Float(limit)
    return f"G({sstr(StrictLessThan(bound.symbolic, lim), full_prec=False)})"


def current_values(active_count: int, capacity: int, entropy: float,
                   failure_rate: float) -> Dict[str, float]:
    """Fresh current values for every bound, keyed by invariant id."""
    return {
        "inv_load": 100.0 * active_count / max(capacity, 1),
        "inv_entropy": entropy,
        "inv_failure": failure_rate,
    }


def build_invariants(domain: Domain, values: Optional[Dict[str, float]] = None,
                     limits: Optional[Dict[str, float]] = None) -> Tuple[Invariant, ...]:
    """
    Build the complete invariant tuple for a domain.

    Args:
        domain: Operating domain whose limit table applies
        values: Current values by id (defaults to 0.0)
        limits: Explicit limit table overriding the domain's

    Returns:
        Tuple of Invariant in fixed table order
    """
    values = values or {}
    table = limits if limits is not None else DOMAIN_LIMITS[domain]
    out = []
    for bound in BOUND_DEFS:
        limit = float(table[bound.id])
        current = float(values.get(bound.id, 0.0))
        out.append(Invariant(
            id=bound.id,
            name=bound.name,
            expression=render_expression(bound, limit),
            limit=limit,
            current=current,
            unit=bound.unit,
            status=classify_status(current, limit),
            safety_critical=bound.safety_critical,
        ))
    return tuple(out)


def reevaluate(invariants: Iterable[Invariant], values: Dict[str, float]) -> Tuple[Invariant, ...]:
    """New tuple with fresh current values and status; limits untouched."""
    out = []
    for inv in invariants:
        current = float(values.get(inv.id, inv.current))
        out.append(replace(inv, current=current, status=classify_status(current, inv.limit)))
    return tuple(out)


def apply_domain(invariants: Iterable[Invariant], domain: Domain) -> Tuple[Invariant, ...]:
    """
    Replace every limit with the domain's table in one step.

    Current values are kept and status is reclassified against the new limits.
    """
    values = {inv.id: inv.current for inv in invariants}
    return build_invariants(domain, values)


def any_violated(invariants: Iterable[Invariant]) -> bool:
    return any(inv.status is InvariantStatus.VIOLATED for inv in invariants)


def first_violated(invariants: Iterable[Invariant]) -> Optional[Invariant]:
    for inv in invariants:
        if inv.status is InvariantStatus.VIOLATED:
            return inv
    return None
