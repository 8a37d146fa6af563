from __future__ import annotations

import asyncio
import json

import streamlit as st

from irisopt.charts import build_size_chart, build_speedup_chart, build_time_chart
from irisopt.client import LLVMServiceClient
from irisopt.comparison import comparison_frame
from irisopt.config import ServiceSettings
from irisopt.errors import COMPILE_FIX_TIP, WorkflowBusyError
from irisopt.models import (
    BEAM_SIZE_MAX,
    BEAM_SIZE_MIN,
    DEFAULT_BEAM_SIZE,
    OptimizationRequestConfig,
    OptLevel,
    SourceArtifact,
    TargetArch,
    TargetMetric,
    clamp_beam_size,
)
from irisopt.report import RESULTS_FILENAME, render_markdown, result_to_dict, verdict
from irisopt.samples import EXAMPLE_PASS_SEQUENCES, EXAMPLE_PROGRAMS, sample_filename
from irisopt.utils import (
    NOT_AVAILABLE,
    format_duration,
    format_feature_value,
    format_metric,
    format_percent,
    format_ratio,
    format_size,
)
from irisopt.workflow import Failed, Idle, Loading, SequencingMode, Succeeded, WorkflowSession


st.set_page_config(page_title="IRis Optimizer", layout="wide")

MODE_LABELS = {
    SequencingMode.single_step: "Direct comparison (one call)",
    SequencingMode.two_step: "Extract features, then compare",
    SequencingMode.features_then_optimize: "Extract features, then ML optimize only",
}


def _style() -> None:
    st.markdown(
        """
<style>
  .hero {
    background: linear-gradient(135deg, #1e1b4b 0%, #312e81 50%, #6d28d9 100%);
    color: #f8fafc;
    padding: 24px 28px;
    border-radius: 16px;
    box-shadow: 0 12px 28px rgba(2, 6, 23, 0.35);
    margin-bottom: 16px;
  }
  .hero-title { font-size: 32px; font-weight: 700; letter-spacing: 0.2px; }
  .hero-sub { font-size: 14px; opacity: 0.85; margin-top: 6px; }
  .kpi-card {
    background: #0f172a;
    color: #e2e8f0;
    padding: 14px 16px;
    border-radius: 12px;
    box-shadow: inset 0 0 0 1px rgba(148, 163, 184, 0.2);
    min-height: 86px;
  }
  .kpi-label { font-size: 11px; text-transform: uppercase; letter-spacing: 1px; opacity: 0.7; }
  .kpi-value { font-size: 22px; font-weight: 700; margin-top: 6px; }
  .kpi-sub { font-size: 12px; opacity: 0.6; margin-top: 4px; }
  .section-title { font-size: 18px; font-weight: 600; margin: 10px 0 6px; }
  .good { color: #4ade80; }
  .bad { color: #f87171; }
  .pass-chip {
    display: inline-block; padding: 4px 10px; margin: 3px; border-radius: 999px;
    background: #ede9fe; color: #5b21b6; font-size: 13px;
  }
</style>
""",
        unsafe_allow_html=True,
    )


def _session() -> WorkflowSession:
    if "workflow" not in st.session_state:
        st.session_state["workflow"] = WorkflowSession(LLVMServiceClient(ServiceSettings.from_env()))
    return st.session_state["workflow"]


def _kpi(col, label: str, value: str, sub: str = "") -> None:
    col.markdown(
        f"""<div class="kpi-card"><div class="kpi-label">{label}</div>
        <div class="kpi-value">{value}</div><div class="kpi-sub">{sub}</div></div>""",
        unsafe_allow_html=True,
    )


_style()

st.markdown(
    """
<div class="hero">
  <div class="hero-title">IRis Optimizer</div>
  <div class="hero-sub">Upload C/C++ → extract IR features → predict a pass sequence → compare with -O0..-O3 on RISC-V.</div>
</div>
""",
    unsafe_allow_html=True,
)

workflow = _session()

# Sidebar workflow
st.sidebar.header("Workflow")

if "healthy" not in st.session_state or st.sidebar.button("Re-check backend"):
    st.session_state["healthy"] = asyncio.run(LLVMServiceClient(ServiceSettings.from_env()).check_health())
if st.session_state["healthy"]:
    st.sidebar.success("Backend: Connected")
else:
    st.sidebar.error("Backend: Disconnected")

st.sidebar.markdown("**1) Configure Run**")
mode = st.sidebar.selectbox("Workflow", list(MODE_LABELS), format_func=MODE_LABELS.get)
beam_size = clamp_beam_size(
    st.sidebar.number_input("Beam size", BEAM_SIZE_MIN, BEAM_SIZE_MAX, DEFAULT_BEAM_SIZE, step=1)
)
target_metric = st.sidebar.selectbox(
    "Optimize for", list(TargetMetric), format_func=lambda m: m.value.replace("_", " ").title()
)
target_arch = st.sidebar.selectbox("Target architecture", list(TargetArch), format_func=lambda a: a.value)
use_ml = st.sidebar.toggle("Use ML pass predictor", value=True)
manual_passes = None
if not use_ml:
    preset = st.sidebar.selectbox(
        "Pass sequence",
        range(len(EXAMPLE_PASS_SEQUENCES)),
        format_func=lambda i: f"Sequence {i + 1} ({len(EXAMPLE_PASS_SEQUENCES[i])} passes)",
    )
    manual_passes = st.sidebar.multiselect(
        "Passes", sorted({p for seq in EXAMPLE_PASS_SEQUENCES for p in seq}), default=EXAMPLE_PASS_SEQUENCES[preset]
    )

with st.sidebar.expander("Explain what's happening"):
    st.markdown(
        "1. Upload: choose a C/C++ file or an example program.\n"
        "2. Features: the service lowers the code to LLVM IR and extracts features.\n"
        "3. Predict: the ML model proposes a pass sequence (beam search).\n"
        "4. Compare: the optimized binary is benchmarked against -O0..-O3."
    )


st.markdown("<div class='section-title'>Source</div>", unsafe_allow_html=True)
col1, col2 = st.columns([2, 1])
with col1:
    uploaded = st.file_uploader("Upload a C/C++ file", type=["c", "cpp"])
with col2:
    example = st.selectbox("Or use an example program", ["(none)"] + list(EXAMPLE_PROGRAMS))

artifact = None
try:
    if uploaded is not None:
        artifact = SourceArtifact.from_upload(uploaded.name, uploaded.getvalue())
    elif example != "(none)":
        artifact = SourceArtifact.from_text(sample_filename(example), EXAMPLE_PROGRAMS[example])
except ValueError as exc:
    st.error(str(exc))

if artifact is not None:
    st.caption(f"**{artifact.filename}** · {artifact.size / 1024:.2f} KB")
    with st.expander("Preview source"):
        st.code(artifact.text, language="c")

b1, b2, b3 = st.columns([1, 1, 4])
run_button = b1.button("Compare Optimizations", disabled=artifact is None or workflow.busy, type="primary")
clear_button = b2.button("Clear")
retry_button = b3.button("Retry", disabled=not isinstance(workflow.state, Failed))

if clear_button:
    workflow.clear()

if run_button and artifact is not None:
    config = OptimizationRequestConfig(
        beam_size=beam_size,
        target_metric=target_metric,
        target_arch=target_arch,
        use_ml_predictor=use_ml,
        ir_passes=manual_passes or None,
    )
    with st.spinner("Analyzing..."):
        try:
            asyncio.run(workflow.submit(artifact, config, mode))
        except WorkflowBusyError as exc:
            st.warning(exc.message)

if retry_button:
    with st.spinner("Retrying..."):
        asyncio.run(workflow.retry())

state = workflow.state

if isinstance(state, Loading):
    st.info(f"Analyzing {state.artifact_name}...")
    st.stop()

if isinstance(state, Failed):
    st.markdown("<div class='section-title'>Error</div>", unsafe_allow_html=True)
    if state.is_compiler_failure:
        st.error("Your C code has compilation errors:")
        st.code(state.diagnostic or state.message, language="text")
        st.caption(f"Tip: {COMPILE_FIX_TIP}")
    else:
        st.error(state.message)
    st.stop()

if isinstance(state, Idle):
    st.markdown("<div class='section-title'>Standard LLVM Optimization Levels</div>", unsafe_allow_html=True)
    cols = st.columns(4)
    for col, (level, text) in zip(
        cols,
        [
            (OptLevel.O0, "No optimization"),
            (OptLevel.O1, "Basic optimization"),
            (OptLevel.O2, "Moderate optimization"),
            (OptLevel.O3, "Aggressive optimization"),
        ],
    ):
        _kpi(col, "Baseline", level.value, text)
    st.stop()

if not isinstance(state, Succeeded):
    st.stop()

result = state.result
record = result.comparison
ml = result.ml_metrics

if record is not None:
    st.markdown("<div class='section-title'>Comparison Summary</div>", unsafe_allow_html=True)
    cols = st.columns(4)
    _kpi(
        cols[0],
        "ML Beats Standard Levels",
        record.faster_than.label(),
        ", ".join(lv.value for lv in record.faster_than.levels) or "None",
    )
    _kpi(cols[1], "Best Performance", verdict(record.vs_best.ml_beats_best) if record.vs_best else NOT_AVAILABLE)
    _kpi(
        cols[2],
        "ML Smaller Than",
        record.smaller_than.label(),
        ", ".join(lv.value for lv in record.smaller_than.levels) or "None",
    )
    _kpi(
        cols[3],
        "Best Size Optimization",
        verdict(record.vs_best_size.ml_beats_best_size) if record.vs_best_size else NOT_AVAILABLE,
    )
    for flag in record.degenerate:
        st.warning(f"{flag.level}: {flag.metric} not computed ({flag.reason})")

st.markdown("<div class='section-title'>ML Optimization Results</div>", unsafe_allow_html=True)
cols = st.columns(3)
_kpi(cols[0], "Execution Time", format_metric(ml.execution_time_avg, format_duration))
_kpi(cols[1], "Binary Size", format_metric(ml.binary_size, format_size))
_kpi(cols[2], "Compile Time", format_metric(ml.compile_time, format_duration))

st.markdown("---")
tabs = st.tabs(["Standard Levels", "Charts", "Pass Sequence", "IR Features", "Export"])

with tabs[0]:
    cols = st.columns(2)
    for idx, level in enumerate(OptLevel):
        data = result.baselines.get(level)
        entry = record.levels.get(level) if record is not None else None
        with cols[idx % 2]:
            st.markdown(f"**{level.value}**")
            st.write(f"Execution time: {format_metric(data.execution_time_avg if data else None, format_duration)}")
            st.write(f"Binary size: {format_metric(data.binary_size if data else None, format_size)}")
            if entry is not None:
                if entry.speedup is not None:
                    css = "good" if entry.ml_faster else "bad"
                    label = "Faster" if entry.ml_faster else "Slower"
                    st.markdown(
                        f"ML speedup: <span class='{css}'>{format_ratio(entry.speedup)} {label}</span>",
                        unsafe_allow_html=True,
                    )
                if entry.size_reduction is not None:
                    css = "good" if entry.ml_smaller else "bad"
                    label = "Smaller" if entry.ml_smaller else "Larger"
                    st.markdown(
                        f"ML size reduction: <span class='{css}'>{format_percent(entry.size_reduction)} {label}</span>",
                        unsafe_allow_html=True,
                    )
            elif data is None:
                st.caption(NOT_AVAILABLE)

with tabs[1]:
    df = comparison_frame(record, ml, result.baselines)
    c1, c2 = st.columns(2)
    with c1:
        st.plotly_chart(build_time_chart(df), use_container_width=True)
    with c2:
        st.plotly_chart(build_size_chart(df), use_container_width=True)
    if record is not None:
        st.plotly_chart(build_speedup_chart(df), use_container_width=True)
    st.dataframe(df)

with tabs[2]:
    if result.predicted_passes:
        st.markdown(
            "".join(f"<span class='pass-chip'>{p}</span>" for p in result.predicted_passes),
            unsafe_allow_html=True,
        )
        st.text_area("Copy passes", value=", ".join(result.predicted_passes), height=80)
    else:
        st.info("The service did not report a pass sequence.")

with tabs[3]:
    st.caption(f"{result.feature_count} features extracted from the source and fed to the ML model")
    if result.features:
        st.dataframe(
            [{"feature": k.replace("_", " "), "value": format_feature_value(v)} for k, v in result.features.items()]
        )
    else:
        st.info("No features reported.")

with tabs[4]:
    st.download_button(
        "Download results JSON",
        data=json.dumps(result_to_dict(result), indent=2),
        file_name=RESULTS_FILENAME,
        mime="application/json",
    )
    st.text_area("Report (Markdown)", value=render_markdown(result), height=300)
