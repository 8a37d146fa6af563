from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer

from .charts import render_charts
from .client import LLVMServiceClient
from .config import ServiceSettings
from .errors import COMPILE_FIX_TIP, IrisError, classify_service_error
from .models import (
    BEAM_SIZE_MAX,
    BEAM_SIZE_MIN,
    DEFAULT_BEAM_SIZE,
    OptimizationRequestConfig,
    SourceArtifact,
    TargetArch,
    TargetMetric,
)
from .report import load_result, render_markdown, write_report
from .samples import write_samples
from .utils import format_duration, format_metric, format_size
from .workflow import Failed, SequencingMode, Succeeded, WorkflowSession

app = typer.Typer(add_completion=False)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log service calls")) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _client() -> LLVMServiceClient:
    return LLVMServiceClient(ServiceSettings.from_env())


def _load_artifact(path: Path) -> SourceArtifact:
    try:
        return SourceArtifact.from_path(path)
    except (OSError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)


def _run(coro):
    try:
        return asyncio.run(coro)
    except IrisError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(code=1)


def _report_failure(state: Failed) -> None:
    if state.is_compiler_failure:
        typer.echo("Your C code has compilation errors:", err=True)
        typer.echo(state.diagnostic or state.message, err=True)
        typer.echo(f"Tip: {COMPILE_FIX_TIP}", err=True)
    else:
        typer.echo(f"Error: {state.message}", err=True)


@app.command()
def health() -> None:
    healthy = asyncio.run(_client().check_health())
    typer.echo("Backend: Connected" if healthy else "Backend: Disconnected")
    if not healthy:
        raise typer.Exit(code=1)


@app.command()
def features(
    source: Path = typer.Argument(..., help="C/C++ source file"),
    target_arch: TargetArch = typer.Option(TargetArch.riscv64, "--target-arch"),
) -> None:
    artifact = _load_artifact(source)
    response = _run(_client().extract_features(artifact.text, target_arch))
    if not response.success:
        error = classify_service_error(response.error, "Failed to extract features")
        _report_failure(Failed(kind=error.kind, message=error.message, diagnostic=getattr(error, "diagnostic", None)))
        raise typer.Exit(code=1)
    typer.echo(json.dumps({"feature_count": response.feature_count, "features": response.features}, indent=2))


@app.command()
def compare(
    source: Path = typer.Argument(..., help="C/C++ source file"),
    mode: SequencingMode = typer.Option(SequencingMode.single_step, "--mode"),
    beam_size: int = typer.Option(DEFAULT_BEAM_SIZE, "--beam-size", min=BEAM_SIZE_MIN, max=BEAM_SIZE_MAX),
    target_metric: TargetMetric = typer.Option(TargetMetric.execution_time, "--target-metric"),
    target_arch: TargetArch = typer.Option(TargetArch.riscv64, "--target-arch"),
    passes: Optional[List[str]] = typer.Option(
        None, "--manual-passes", help="Manual pass (repeatable); disables the ML predictor"
    ),
    out_dir: Path = typer.Option(Path("./iris_outputs"), help="Output directory"),
) -> None:
    artifact = _load_artifact(source)
    config = OptimizationRequestConfig(
        beam_size=beam_size,
        target_metric=target_metric,
        target_arch=target_arch,
        use_ml_predictor=not passes,
        ir_passes=passes or None,
    )
    session = WorkflowSession(_client())
    state = asyncio.run(session.submit(artifact, config, mode))

    if isinstance(state, Failed):
        _report_failure(state)
        raise typer.Exit(code=1)
    if not isinstance(state, Succeeded):
        typer.echo("Error: workflow did not complete", err=True)
        raise typer.Exit(code=1)

    outputs = write_report(state.result, out_dir)
    charts = render_charts(state.result, out_dir / "charts")
    typer.echo(render_markdown(state.result))
    typer.echo("")
    typer.echo(f"Wrote {outputs['json']}")
    typer.echo(f"Wrote {outputs['markdown']}")
    typer.echo(f"Charts in {out_dir / 'charts'} ({len(charts)} files)")


@app.command()
def standard(
    source: Path = typer.Argument(..., help="C/C++ source file"),
    target_arch: TargetArch = typer.Option(TargetArch.riscv64, "--target-arch"),
) -> None:
    artifact = _load_artifact(source)
    response = _run(_client().run_standard(artifact.text, target_arch=target_arch))
    if not response.success:
        typer.echo(f"Error: {response.error or 'Standard optimization failed'}", err=True)
        raise typer.Exit(code=1)
    for level, metrics in sorted((response.results or {}).items(), key=lambda item: item[0].ordinal):
        typer.echo(
            f"{level.value}: time={format_metric(metrics.execution_time_avg, format_duration)} "
            f"size={format_metric(metrics.binary_size, format_size)}"
        )


@app.command()
def report(
    input: Path = typer.Option(..., "--input", help="Path to iris_results.json"),
    out_dir: Optional[Path] = typer.Option(None, help="Also rewrite report.md and charts here"),
) -> None:
    result = load_result(input)
    if out_dir is not None:
        write_report(result, out_dir)
        render_charts(result, out_dir / "charts")
        typer.echo(f"Report written to {out_dir}")
    else:
        typer.echo(render_markdown(result))


@app.command(name="samples")
def samples(
    out_dir: Path = typer.Option(Path("./iris_samples"), help="Output directory"),
) -> None:
    paths = write_samples(out_dir)
    typer.echo(f"Wrote {len(paths)} example programs to {out_dir}")


if __name__ == "__main__":
    app()
