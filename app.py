"""
Dynamic Partition Visualizer — First-Fit, Best-Fit & Worst-Fit

This application compares dynamic memory partitioning strategies over a
fixed 16 MiB address space. Every program is loaded into six memories at
once:
    - First-Fit, Best-Fit and Worst-Fit without compaction
    - First-Fit, Best-Fit and Worst-Fit with compaction on failure

Built with Streamlit for the web interface and Plotly for visualizations.
Run with: streamlit run app.py
"""

# =============================================================================
# IMPORTS
# =============================================================================

import streamlit as st                       # Web application framework

from partviz.charts import ledger_figure, metrics_figure, region_rows
from partviz.config import configure_logging, load_settings
from partviz.engine import PartitionError
from partviz.persistence import load_session, save_session
from partviz.simulator import SimulationSession
from partviz.utils import format_mib

settings = load_settings()
logger = configure_logging(settings.log_level)


# =============================================================================
# SESSION HELPERS
# =============================================================================

def _new_session() -> SimulationSession:
    """
    Load the saved session, or start a fresh one.

    A state file that cannot be read is logged and ignored so the app
    always starts.
    """
    try:
        session = load_session(settings.state_path, settings)
    except ValueError as e:
        logger.warning("Could not load saved state from %s: %s", settings.state_path, e)
        session = None
    return session or SimulationSession(settings)


def _save():
    try:
        save_session(st.session_state.session, settings.state_path)
    except OSError as e:
        logger.error("Could not save state to %s: %s", settings.state_path, e)
        st.sidebar.warning(f"State not saved: {e}")


# =============================================================================
# STREAMLIT UI - Web Application Interface
# =============================================================================

st.set_page_config(page_title="Dynamic Partition Visualizer", layout="wide")
st.title("Dynamic Partition Visualizer — First-Fit, Best-Fit & Worst-Fit")

# Session persists across Streamlit reruns
if "session" not in st.session_state:
    st.session_state.session = _new_session()

session: SimulationSession = st.session_state.session

# -----------------------------------------------------------------------------
# SIDEBAR - Program Catalog
# -----------------------------------------------------------------------------

st.sidebar.header("Programs")
st.sidebar.caption(
    f"Size = segments + {format_mib(settings.program_overhead)} MiB heap/stack overhead"
)

for program in session.programs:
    cols = st.sidebar.columns([3, 2])
    cols[0].write(f"**{program.name}** ({format_mib(program.requested_size)} MiB)")
    if cols[1].button("Insert", key=f"insert-{program.name}"):
        try:
            results = session.place_everywhere(program.name)
        except (KeyError, PartitionError) as e:
            st.sidebar.error(str(e))
        else:
            failed = [session.simulator(k).label for k, r in results.items() if not r.success]
            if failed:
                st.sidebar.warning(f"{program.name} did not fit in: " + ", ".join(failed))
            else:
                st.sidebar.success(f"{program.name} inserted in all memories")
            _save()

st.sidebar.markdown("---")

# -----------------------------------------------------------------------------
# SIDEBAR - Add Program
# -----------------------------------------------------------------------------

st.sidebar.header("Add Program")
with st.sidebar.form("add-program", clear_on_submit=True):
    new_name = st.text_input("Name")
    new_size = st.number_input("Memory (MiB)", min_value=0.0, value=0.5, step=0.1)
    if st.form_submit_button("Add"):
        try:
            session.add_program(new_name, [new_size])
        except ValueError as e:
            st.error(str(e))
        else:
            _save()
            st.rerun()

st.sidebar.markdown("---")

# Reset button to clear all six memories
if st.sidebar.button("Reset Memories"):
    session.reset()
    _save()
    st.sidebar.success("All memories reset")


# =============================================================================
# MAIN CONTENT AREA - Six Memories
# =============================================================================

def render_variant(sim, container):
    """Draw one memory: metrics, bar, table and controls."""
    with container:
        st.subheader(sim.label)

        metrics = sim.metrics()
        st.caption(
            f"Used: {metrics['percent_used']}% | "
            f"External fragmentation: {format_mib(metrics['free'])} MiB | "
            f"Free blocks: {metrics['free_regions']}"
        )

        st.plotly_chart(
            ledger_figure(sim.snapshot(), sim.ledger.capacity),
            use_container_width=True,
            key=f"chart-{sim.key}",
        )

        c1, c2 = st.columns(2)
        if c1.button("Compact", key=f"compact-{sim.key}"):
            try:
                sim.compact()
            except PartitionError as e:
                st.error(str(e))
            else:
                _save()
                st.rerun()

        running = sorted({r.owner.program_name for r in sim.snapshot()
                          if not r.is_free and not r.reserved})
        target = c2.selectbox("Program", running or ["-"], key=f"target-{sim.key}")
        if c2.button("Finish Program", key=f"release-{sim.key}", disabled=not running):
            try:
                released = sim.release(target)
            except PartitionError as e:
                st.error(str(e))
            else:
                if released:
                    _save()
                    st.rerun()
                st.warning(f"Program not found: {target}")

        st.table(region_rows(sim.snapshot()))

        with st.expander("Event Log"):
            for ev in sim.ledger.event_log[-20:][::-1]:
                st.write(ev)


variants = session.variants()

st.header("Without Compaction")
for sim, col in zip(variants[:3], st.columns(3)):
    render_variant(sim, col)

st.header("With Compaction")
for sim, col in zip(variants[3:], st.columns(3)):
    render_variant(sim, col)

# ----- Comparison chart -----
st.header("Comparison")
all_metrics = session.metrics()
st.plotly_chart(
    metrics_figure(all_metrics, {s.key: s.label for s in variants}),
    use_container_width=True,
)

# =============================================================================
# FOOTER - Usage Tips
# =============================================================================

st.markdown("---")
st.markdown(
    "**Usage tips**:\n"
    "- Click **Insert** next to a program to load it into all six memories.\n"
    "- Finish programs to create holes, then insert again to compare strategies.\n"
    "- First-Fit scans from the top of memory (next to the S.O.) downward.\n"
    "- Memories with compaction compact automatically when nothing fits."
)
logger.debug("Rendered %d variants", len(variants))
