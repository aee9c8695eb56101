"""
nea_sim/export.py - Snapshots, Event Log Rows, JSON Export and Reports

Everything the presentation layer reads goes through here. Read only: no
function in this module mutates a session or recomputes a metric.
"""

import json
from typing import Any, Dict, List

import numpy as np

from .constants import PolicyMode, WorkStatus, LOG_DISPLAY_WINDOW, CAPACITY_THRESHOLD
from .types_result import SimResult


# Narrative shown beside each policy family ("architectural differential")
MODE_PROFILES = {
    "permissive": {
        "title": "Reactive-Failure Logic",
        "error_model": "Catch-and-Recover",
        "state_trust": "Optimistic",
        "entropy_impact": "Unbounded Leak",
        "summary": ("State corruption is identified only after execution. Entropy is "
                    "treated as noise to be caught by post-facto exception handling."),
    },
    "gated": {
        "title": "Entropy-Bounded Logic",
        "error_model": "Admission-Preempt",
        "state_trust": "Guaranteed",
        "entropy_impact": "Boundary Contained",
        "summary": ("Transitions are projected against invariants before commitment. "
                    "Refusals occur before execution; once started, completion is guaranteed."),
    },
}


def mode_profile(mode: PolicyMode) -> Dict[str, str]:
    return MODE_PROFILES["gated" if mode.is_gated else "permissive"]


def format_clock(time_ms: int) -> str:
    """Virtual ms -> MM:SS.mmm"""
    minutes, rem = divmod(int(time_ms), 60_000)
    seconds, millis = divmod(rem, 1000)
    return f"{minutes:02d}:{seconds:02d}.{millis:03d}"


def event_log_rows(history, n: int = LOG_DISPLAY_WINDOW) -> List[Dict[str, Any]]:
    """
    Newest-first rows for the event stream panel.

    Each row shows the reason for refusals/failures and the payload otherwise.
    """
    rows = []
    for unit in history.recent(n):
        rows.append({
            "time": format_clock(unit.timestamp),
            "id": unit.id,
            "status": unit.status.value,
            "detail": unit.reason or f"Payload: {unit.initial_payload:g}",
            "severity": _severity(unit.status),
        })
    return rows


def _severity(status: WorkStatus) -> str:
    if status is WorkStatus.COMPLETED:
        return "ok"
    if status is WorkStatus.FAILED:
        return "error"
    return "refused"


def build_snapshot(session) -> Dict[str, Any]:
    """
    Read-only snapshot of a running session.

    Args:
        session: SimulationSession

    Returns:
        dict with config, metrics, invariants, active work, event log and series
    """
    state = session.state
    config = session.config
    return {
        "time_ms": session.now_ms,
        "mode": config.mode.value,
        "domain": config.domain.value,
        "stress": config.stress,
        "auto_inject": config.auto_inject,
        "capacity": config.capacity,
        "metrics": state.metrics.to_dict(),
        "invariants": [inv.to_dict() for inv in state.invariants],
        "active_work": [w.to_dict() for w in state.active_work],
        "event_log": event_log_rows(state.history),
        "series": [p.to_dict() for p in state.series.points()],
        "profile": mode_profile(config.mode),
    }


def series_summary(series: List[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    """Mean / max / last per charted field."""
    summary = {}
    if not series:
        return summary
    for field in ("entropy", "coherence", "syntropy", "load", "throughput"):
        values = np.array([p[field] for p in series], dtype=float)
        summary[field] = {
            "mean": float(np.mean(values)),
            "max": float(np.max(values)),
            "last": float(values[-1]),
        }
    return summary


def export_json(result: SimResult) -> str:
    """
    Format SimResult as JSON.

    Args:
        result: SimResult to export

    Returns:
        str: JSON formatted output
    """
    state = result.final_state
    export_data = {
        "config": {
            "scenario": result.config.scenario_name,
            "mode": result.config.mode.value,
            "domain": result.config.domain.value,
            "stress": result.config.stress,
            "capacity": result.config.capacity,
            "random_seed": result.config.random_seed,
        },
        "duration_ms": result.duration_ms,
        "statistics": result.statistics,
        "invariants": [inv.to_dict() for inv in state.invariants],
        "series": result.series,
        "series_summary": series_summary(result.series),
        "history": [u.to_dict() for u in state.history],
        "history_head_hash": state.history.head_hash,
    }
    return json.dumps(export_data, indent=2)


def generate_report(result: SimResult) -> str:
    """
    Generate human-readable summary.

    Args:
        result: SimResult to summarize

    Returns:
        str: Multi-line report
    """
    stats = result.statistics
    metrics = stats["final_metrics"]
    profile = mode_profile(result.config.mode)
    load_pct = metrics["active_count"] / max(result.config.capacity or CAPACITY_THRESHOLD, 1) * 100

    lines = [
        f"NEA Studio Run: {result.config.scenario_name}",
        "=" * 50,
        f"Mode: {stats['mode']} ({profile['title']})",
        f"Domain: {stats['domain']}",
        f"Stress: {'on' if result.config.stress else 'off'}",
        f"Virtual time: {format_clock(result.duration_ms)} ({stats['ticks']} ticks)",
        "",
        "Outcomes:",
        f"  Completed: {stats['completed']}",
        f"  Failed:    {stats['failed']}",
        f"  Refused:   {stats['refused']}",
        f"  Preempted: {stats['preempted']}",
        f"  In flight: {stats['in_flight']} ({load_pct:.0f}% load)",
        "",
        "KPIs (last window):",
        f"  Coherence:      {metrics['coherence']:.1f}%",
        f"  Syntropy:       {metrics['syntropy']:.2f}",
        f"  Admission rate: {metrics['admission_rate']:.1f}%",
        f"  Failure rate:   {metrics['failure_rate']:.1f}%",
        f"  Refusal rate:   {metrics['refusal_rate']:.1f}%",
    ]

    if stats["reasons"]:
        lines.append("")
        lines.append("Reasons:")
        for reason, count in sorted(stats["reasons"].items(), key=lambda kv: -kv[1]):
            lines.append(f"  {reason}: {count}")

    summary = series_summary(result.series)
    if summary:
        lines.append("")
        lines.append("Telemetry:")
        for field, agg in summary.items():
            lines.append(f"  {field:<11} mean={agg['mean']:.2f} max={agg['max']:.2f} last={agg['last']:.2f}")

    lines.append("")
    lines.append("Invariants:")
    for inv in result.final_state.invariants:
        flag = " [safety]" if inv.safety_critical else ""
        lines.append(f"  {inv.id:<12} {inv.current:7.2f}/{inv.limit:g}{inv.unit} {inv.status.value}{flag}  {inv.expression}")

    lines.append("")
    lines.append(f"Event chain: {'intact' if stats['chain_valid'] else 'BROKEN at ' + str(stats['chain_broken_at'])}")
    return "\n".join(lines)


def compare_results(results: List[SimResult]) -> Dict[str, Dict[str, Any]]:
    """Side-by-side outcome table keyed by mode."""
    table = {}
    for result in results:
        stats = result.statistics
        total = stats["terminal_records"] or 1
        table[stats["mode"]] = {
            "completed": stats["completed"],
            "failed": stats["failed"],
            "refused": stats["refused"] + stats["preempted"],
            "failure_share": stats["failed"] / total * 100.0,
            "refusal_share": (stats["refused"] + stats["preempted"]) / total * 100.0,
            "final_entropy": stats["final_metrics"]["entropy"],
            "final_syntropy": stats["final_metrics"]["syntropy"],
        }
    return table
