"""
dashboard.py - NEA Studio Streamlit Dashboard

Presentation only. Everything shown comes from SimulationSession.snapshot();
operator actions call the session's public methods. The virtual clock is
advanced by the wall-clock time elapsed between refreshes.

Run:
  streamlit run dashboard.py
"""

import time

import pandas as pd
import streamlit as st

import config_schema
from formalizer import SpecFormalizer, FormalizerStyle, render_markdown
from nea_sim import Domain, PolicyMode, SimConfig, SimulationSession
from nea_sim.constants import WorkStatus

REFRESH_SECONDS = 0.5
MAX_CATCH_UP_MS = 5_000


def _new_session(mode: PolicyMode = PolicyMode.NO_ERROR) -> SimulationSession:
    return SimulationSession(SimConfig(mode=mode))


def _catch_up(session: SimulationSession) -> None:
    """Advance virtual time by wall-clock elapsed since the last refresh."""
    now = time.monotonic()
    last = st.session_state.get("last_wall", now)
    elapsed_ms = min(int((now - last) * 1000), MAX_CATCH_UP_MS)
    st.session_state.last_wall = now
    if elapsed_ms > 0 and st.session_state.running:
        session.advance(elapsed_ms)


# =============================================================================
# PAGE SETUP
# =============================================================================

st.set_page_config(page_title="NEA Studio", layout="wide")

if "session" not in st.session_state:
    st.session_state.session = _new_session()
    st.session_state.running = True
    st.session_state.formal_spec = None

session: SimulationSession = st.session_state.session


# =============================================================================
# SIDEBAR CONTROLS
# =============================================================================

st.sidebar.header("NEA Studio")

modes = [m.value for m in PolicyMode]
mode = st.sidebar.selectbox("Policy mode", modes, index=modes.index(session.config.mode.value))
session.set_mode(PolicyMode(mode))

domains = [d.value for d in Domain]
domain = st.sidebar.selectbox("Domain", domains, index=domains.index(session.config.domain.value))
session.set_domain(Domain(domain))

session.set_stress(st.sidebar.toggle("Stress", value=session.config.stress))
session.set_auto_inject(st.sidebar.toggle("Automated injection", value=session.config.auto_inject))
st.session_state.running = st.sidebar.toggle("Clock running", value=st.session_state.running)

if st.sidebar.button("Request work"):
    session.request_work()

if st.sidebar.button("Reset session"):
    st.session_state.session = _new_session(session.config.mode)
    st.session_state.pop("last_wall", None)
    st.rerun()

st.sidebar.markdown("---")
st.sidebar.download_button(
    "Download receipts (JSON)",
    data=pd.DataFrame(session.state.receipt_ledger.to_list()).to_json(orient="records", indent=2),
    file_name="nea_receipts.json",
)


# =============================================================================
# LIVE PANELS
# =============================================================================

@st.fragment(run_every=REFRESH_SECONDS)
def live_panels() -> None:
    _catch_up(session)
    snap = session.snapshot()
    metrics = snap["metrics"]
    profile = snap["profile"]

    st.subheader(f"{snap['mode']} / {snap['domain']}" + ("  (stress)" if snap["stress"] else ""))

    cols = st.columns(6)
    cols[0].metric("Entropy", f"{metrics['entropy']:.1f}")
    cols[1].metric("Coherence", f"{metrics['coherence']:.1f}%")
    cols[2].metric("Syntropy", f"{metrics['syntropy']:.2f}")
    cols[3].metric("Load", f"{metrics['load']:.0f}%", help=f"{metrics['active_count']}/{snap['capacity']} active")
    cols[4].metric("Admission", f"{metrics['admission_rate']:.0f}%")
    cols[5].metric("Failure", f"{metrics['failure_rate']:.0f}%")

    chart_col, inv_col = st.columns([1.6, 1.0])

    with chart_col:
        if snap["series"]:
            frame = pd.DataFrame(snap["series"])
            frame["t (s)"] = frame["time_ms"] / 1000.0
            st.line_chart(frame.set_index("t (s)")[["entropy", "coherence", "syntropy", "safety_floor"]])
        else:
            st.caption("Waiting for first telemetry sample...")

    with inv_col:
        st.markdown("**Invariants**")
        st.dataframe(
            pd.DataFrame(snap["invariants"])[["name", "expression", "current", "limit", "status"]],
            hide_index=True,
            use_container_width=True,
        )

    work_col, log_col = st.columns([1.0, 1.6])

    with work_col:
        st.markdown("**Active work**")
        if snap["active_work"]:
            for unit in snap["active_work"]:
                done = 1.0 - max(unit["payload"], 0.0) / unit["initial_payload"]
                st.progress(min(max(done, 0.0), 1.0), text=unit["id"])
        else:
            st.caption("Idle")

    with log_col:
        st.markdown("**Event stream**")
        if snap["event_log"]:
            st.dataframe(pd.DataFrame(snap["event_log"]), hide_index=True, use_container_width=True)
        else:
            st.caption("No terminal events yet")

    with st.expander(profile["title"]):
        st.write(profile["summary"])
        st.caption(f"Error model: {profile['error_model']} | State trust: {profile['state_trust']} | "
                   f"Entropy: {profile['entropy_impact']}")


live_panels()


# =============================================================================
# FORMALIZER
# =============================================================================

st.markdown("---")
st.subheader("Spec formalizer")

style = st.radio("Output", [s.value for s in FormalizerStyle], horizontal=True)
description = st.text_area("System description", height=120)

if st.button("Formalize"):
    formalizer = SpecFormalizer(
        api_key=config_schema.resolve_api_key(),
        model_name=config_schema.resolve_model(),
        style=FormalizerStyle(style),
    )
    with st.spinner("Formalizing..."):
        st.session_state.formal_spec = formalizer.formalize(description)
    if st.session_state.formal_spec is None:
        st.error("No specification produced. Check the description and GEMINI_API_KEY.")

if st.session_state.formal_spec:
    st.markdown(render_markdown(st.session_state.formal_spec))

terminal = sum(1 for u in session.state.history if u.status is not WorkStatus.COMPLETED)
st.caption(f"{len(session.state.history)} terminal records, {terminal} not completed. "
           f"Virtual time {session.now_ms / 1000:.1f}s")
