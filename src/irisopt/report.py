from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from .comparison import ComparisonRecord, derive_comparison
from .models import OptimizationRequestConfig, OptLevel, PerLevelMetrics
from .utils import (
    NOT_AVAILABLE,
    format_duration,
    format_feature_value,
    format_metric,
    format_percent,
    format_ratio,
    format_size,
)
from .workflow import SequencingMode, WorkflowResult

RESULTS_FILENAME = "iris_results.json"


def verdict(ml_wins: Optional[bool]) -> str:
    if ml_wins is None:
        return NOT_AVAILABLE
    return "ML Wins" if ml_wins else "Standard Wins"


def _summary_lines(record: ComparisonRecord) -> List[str]:
    faster = ", ".join(level.value for level in record.faster_than.levels) or "None"
    smaller = ", ".join(level.value for level in record.smaller_than.levels) or "None"
    lines = [
        f"- ML beats standard levels: **{record.faster_than.label()}** ({faster})",
        f"- ML smaller than: **{record.smaller_than.label()}** ({smaller})",
    ]
    if record.vs_best is not None:
        speedup = format_metric(record.vs_best.speedup_vs_best, format_ratio)
        lines.append(
            f"- Best performance: **{verdict(record.vs_best.ml_beats_best)}** "
            f"(best standard `{record.vs_best.best_standard}`, speedup vs best {speedup})"
        )
    if record.vs_best_size is not None:
        reduction = format_metric(record.vs_best_size.size_reduction_vs_best, format_percent)
        lines.append(
            f"- Best size optimization: **{verdict(record.vs_best_size.ml_beats_best_size)}** "
            f"(best standard `{record.vs_best_size.best_size_standard}`, "
            f"{format_size(record.vs_best_size.best_size_bytes)}, reduction vs best {reduction})"
        )
    for flag in record.degenerate:
        lines.append(f"- Not computed: `{flag.level}` {flag.metric} ({flag.reason})")
    return lines


def _level_table(result: WorkflowResult) -> List[str]:
    lines = [
        "| Level | Execution time | Binary size | ML speedup | ML size reduction |",
        "|---|---|---|---|---|",
    ]
    record = result.comparison
    for level in OptLevel:
        metrics = result.baselines.get(level)
        if metrics is None:
            lines.append(f"| {level.value} | {NOT_AVAILABLE} | {NOT_AVAILABLE} | {NOT_AVAILABLE} | {NOT_AVAILABLE} |")
            continue
        entry = record.levels.get(level) if record is not None else None
        speedup = NOT_AVAILABLE
        reduction = NOT_AVAILABLE
        if entry is not None and entry.speedup is not None:
            speedup = f"{format_ratio(entry.speedup)} {'Faster' if entry.ml_faster else 'Slower'}"
        if entry is not None and entry.size_reduction is not None:
            reduction = f"{format_percent(entry.size_reduction)} {'Smaller' if entry.ml_smaller else 'Larger'}"
        lines.append(
            f"| {level.value} | {format_metric(metrics.execution_time_avg, format_duration)} "
            f"| {format_metric(metrics.binary_size, format_size)} | {speedup} | {reduction} |"
        )
    return lines


def render_markdown(result: WorkflowResult) -> str:
    ml = result.ml_metrics
    lines = [
        "# IRis Optimization Report",
        "",
        f"Source: `{result.artifact_name}`",
        f"Mode: `{result.mode.value}`",
        f"Target: `{result.config.target_arch.value}`, optimizing for `{result.config.target_metric.value}`, "
        f"beam size {result.config.beam_size}",
        f"Generated: `{result.generated_at}`",
        "",
        "## ML Optimization",
        f"- Execution time: {format_metric(ml.execution_time_avg, format_duration)}",
        f"- Binary size: {format_metric(ml.binary_size, format_size)}",
        f"- Compile time: {format_metric(ml.compile_time, format_duration)}",
        f"- Optimization time: {format_metric(ml.optimization_time, format_duration)}",
    ]

    if result.comparison is not None:
        lines.extend(["", "## Comparison Summary"])
        lines.extend(_summary_lines(result.comparison))
        lines.extend(["", "## Standard Optimization Levels", ""])
        lines.extend(_level_table(result))

    lines.extend(["", "## Predicted Pass Sequence"])
    if result.predicted_passes:
        lines.append(" -> ".join(f"`{p}`" for p in result.predicted_passes))
    else:
        lines.append("- None reported")

    lines.extend(["", f"## IR Features ({result.feature_count})"])
    if result.features:
        for name, value in sorted(result.features.items()):
            lines.append(f"- {name.replace('_', ' ')}: {format_feature_value(value)}")
    else:
        lines.append("- No features reported")

    return "\n".join(lines)


def result_to_dict(result: WorkflowResult) -> Dict[str, Any]:
    return {
        "artifact_name": result.artifact_name,
        "mode": result.mode.value,
        "generated_at": result.generated_at,
        "config": result.config.model_dump(mode="json"),
        "features": result.features,
        "ml_optimization": result.ml_metrics.model_dump(mode="json"),
        "standard_optimizations": {
            level.value: metrics.model_dump(mode="json") for level, metrics in result.baselines.items()
        },
        "predicted_passes": list(result.predicted_passes),
        "comparison": result.comparison.to_dict() if result.comparison is not None else None,
        "raw": result.raw,
    }


def result_from_dict(data: Dict[str, Any]) -> WorkflowResult:
    """Rebuild a result from an exported file; the comparison is always re-derived."""
    ml = PerLevelMetrics.model_validate(data["ml_optimization"])
    baselines = {
        OptLevel.parse(name): PerLevelMetrics.model_validate(metrics)
        for name, metrics in (data.get("standard_optimizations") or {}).items()
    }
    mode = SequencingMode(data.get("mode", SequencingMode.single_step.value))
    comparison = None
    if mode != SequencingMode.features_then_optimize:
        comparison = derive_comparison(ml, baselines)
    return WorkflowResult(
        mode=mode,
        artifact_name=data.get("artifact_name", "unknown"),
        config=OptimizationRequestConfig.model_validate(data.get("config") or {}),
        ml_metrics=ml,
        features=data.get("features") or {},
        baselines=baselines,
        comparison=comparison,
        predicted_passes=tuple(data.get("predicted_passes") or ()),
        raw=data.get("raw") or {},
        generated_at=data.get("generated_at", ""),
    )


def load_result(path: Path) -> WorkflowResult:
    return result_from_dict(json.loads(path.read_text(encoding="utf-8")))


def write_report(result: WorkflowResult, out_dir: Path) -> Dict[str, str]:
    out_dir.mkdir(parents=True, exist_ok=True)
    json_path = out_dir / RESULTS_FILENAME
    json_path.write_text(json.dumps(result_to_dict(result), indent=2), encoding="utf-8")
    md_path = out_dir / "report.md"
    md_path.write_text(render_markdown(result), encoding="utf-8")
    return {"json": str(json_path), "markdown": str(md_path)}
