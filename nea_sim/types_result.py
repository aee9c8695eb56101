"""
nea_sim/types_result.py - SimResult Dataclass

Immutable result of a headless run.
"""

from dataclasses import dataclass

from .types_config import SimConfig
from .types_state import SimState


@dataclass(frozen=True)
class SimResult:
    """Immutable simulation result."""
    final_state: SimState
    series: list
    statistics: dict
    config: SimConfig
    duration_ms: int
