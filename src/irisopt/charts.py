from __future__ import annotations

from pathlib import Path
from typing import Dict

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from .comparison import ML_ROW, comparison_frame
from .workflow import WorkflowResult

ML_COLOR = "#a855f7"
STANDARD_COLOR = "#64748b"


def _colors(df: pd.DataFrame) -> Dict[str, str]:
    return {level: ML_COLOR if level == ML_ROW else STANDARD_COLOR for level in df["level"]}


def build_time_chart(df: pd.DataFrame) -> go.Figure:
    data = df.dropna(subset=["execution_time_avg"])
    fig = px.bar(
        data,
        x="level",
        y="execution_time_avg",
        color="level",
        color_discrete_map=_colors(data),
        title="Execution Time (s)",
    )
    fig.update_layout(showlegend=False, yaxis_title="seconds")
    return fig


def build_size_chart(df: pd.DataFrame) -> go.Figure:
    data = df.dropna(subset=["binary_size"])
    fig = px.bar(
        data,
        x="level",
        y="binary_size",
        color="level",
        color_discrete_map=_colors(data),
        title="Binary Size (bytes)",
    )
    fig.update_layout(showlegend=False, yaxis_title="bytes")
    return fig


def build_speedup_chart(df: pd.DataFrame) -> go.Figure:
    data = df[df["level"] != ML_ROW].dropna(subset=["speedup"])
    fig = go.Figure()
    fig.add_trace(go.Bar(name="ML speedup", x=data["level"], y=data["speedup"]))
    fig.add_hline(y=1.0, line_dash="dash", annotation_text="parity")
    fig.update_layout(title="ML Speedup vs Standard Levels (x)")
    return fig


def render_charts(result: WorkflowResult, out_dir: Path) -> Dict[str, str]:
    out_dir.mkdir(parents=True, exist_ok=True)
    outputs: Dict[str, str] = {}
    df = comparison_frame(result.comparison, result.ml_metrics, result.baselines)

    fig = build_time_chart(df)
    path = out_dir / "execution_time.html"
    fig.write_html(path)
    outputs["execution_time"] = str(path)

    fig = build_size_chart(df)
    path = out_dir / "binary_size.html"
    fig.write_html(path)
    outputs["binary_size"] = str(path)

    if result.comparison is not None:
        fig = build_speedup_chart(df)
        path = out_dir / "speedup.html"
        fig.write_html(path)
        outputs["speedup"] = str(path)

    return outputs
