"""Derive ML-vs-standard comparison statistics from per-level metrics."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import pandas as pd

from .errors import MissingMetricsError
from .models import OptLevel, PerLevelMetrics

ML_ROW = "ML"


@dataclass(frozen=True)
class DegenerateMetric:
    level: str
    metric: str
    reason: str


@dataclass(frozen=True)
class LevelComparison:
    level: OptLevel
    speedup: Optional[float]
    ml_faster: Optional[bool]
    size_reduction: Optional[float]
    ml_smaller: Optional[bool]


@dataclass(frozen=True)
class BestTimeComparison:
    best_standard: str
    best_time: float
    ml_beats_best: Optional[bool]
    speedup_vs_best: Optional[float]


@dataclass(frozen=True)
class BestSizeComparison:
    best_size_standard: str
    best_size_bytes: int
    ml_beats_best_size: Optional[bool]
    size_reduction_vs_best: Optional[float]


@dataclass(frozen=True)
class LevelTally:
    levels: Tuple[OptLevel, ...]
    total: int

    @property
    def count(self) -> int:
        return len(self.levels)

    def label(self) -> str:
        return f"{self.count} / {self.total}"


@dataclass(frozen=True)
class ComparisonRecord:
    levels: Dict[OptLevel, LevelComparison]
    vs_best: Optional[BestTimeComparison]
    vs_best_size: Optional[BestSizeComparison]
    faster_than: LevelTally
    smaller_than: LevelTally
    degenerate: Tuple[DegenerateMetric, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, object]:
        """Service-shaped view: ``-O0``..``-O3`` entries plus ``vs_best``/``vs_best_size``."""
        data: Dict[str, object] = {}
        for level, entry in self.levels.items():
            data[level.value] = {
                "speedup": entry.speedup,
                "ml_faster": entry.ml_faster,
                "size_reduction": entry.size_reduction,
                "ml_smaller": entry.ml_smaller,
            }
        if self.vs_best is not None:
            data["vs_best"] = {
                "best_standard": self.vs_best.best_standard,
                "best_time": self.vs_best.best_time,
                "ml_beats_best": self.vs_best.ml_beats_best,
                "speedup_vs_best": self.vs_best.speedup_vs_best,
            }
        if self.vs_best_size is not None:
            data["vs_best_size"] = {
                "best_size_standard": self.vs_best_size.best_size_standard,
                "best_size_bytes": self.vs_best_size.best_size_bytes,
                "ml_beats_best_size": self.vs_best_size.ml_beats_best_size,
                "size_reduction_vs_best": self.vs_best_size.size_reduction_vs_best,
            }
        if self.degenerate:
            data["degenerate"] = [
                {"level": d.level, "metric": d.metric, "reason": d.reason} for d in self.degenerate
            ]
        return data


def _speedup(baseline_time: float, ml_time: float) -> Optional[float]:
    if ml_time <= 0:
        return None
    return baseline_time / ml_time


def _size_reduction(baseline_size: int, ml_size: int) -> Optional[float]:
    if baseline_size <= 0:
        return None
    return (baseline_size - ml_size) / baseline_size


def _best_level(
    baselines: Mapping[OptLevel, PerLevelMetrics],
    value: Callable[[PerLevelMetrics], Optional[float]],
) -> Optional[OptLevel]:
    candidates = [
        (value(metrics), level.ordinal, level)
        for level, metrics in baselines.items()
        if value(metrics) is not None
    ]
    if not candidates:
        return None
    # Ties go to the lowest ordinal.
    return min(candidates, key=lambda item: (item[0], item[1]))[2]


def derive_comparison(
    ml: PerLevelMetrics,
    baselines: Mapping[OptLevel, PerLevelMetrics],
) -> ComparisonRecord:
    ml_time = ml.execution_time_avg
    ml_size = ml.binary_size
    if ml_time is None or ml_size is None:
        raise MissingMetricsError("ML optimization result is missing execution time or binary size")

    # A level that failed on the service side carries neither metric and is treated as absent.
    ordered = {
        level: baselines[level]
        for level in sorted(baselines, key=lambda lv: lv.ordinal)
        if baselines[level].execution_time_avg is not None or baselines[level].binary_size is not None
    }
    degenerate: List[DegenerateMetric] = []
    levels: Dict[OptLevel, LevelComparison] = {}

    for level, metrics in ordered.items():
        speedup = None
        if metrics.execution_time_avg is not None:
            speedup = _speedup(metrics.execution_time_avg, ml_time)
            if speedup is None:
                degenerate.append(DegenerateMetric(level.value, "speedup", "ML execution time is zero"))

        size_reduction = None
        if metrics.binary_size is not None:
            size_reduction = _size_reduction(metrics.binary_size, ml_size)
            if size_reduction is None:
                degenerate.append(DegenerateMetric(level.value, "size_reduction", "baseline binary size is zero"))

        levels[level] = LevelComparison(
            level=level,
            speedup=speedup,
            ml_faster=None if speedup is None else speedup > 1.0,
            size_reduction=size_reduction,
            ml_smaller=None if size_reduction is None else size_reduction > 0.0,
        )

    vs_best = None
    best_time_level = _best_level(ordered, lambda m: m.execution_time_avg)
    if best_time_level is not None:
        best_time = ordered[best_time_level].execution_time_avg
        speedup_vs_best = _speedup(best_time, ml_time)
        if speedup_vs_best is None:
            degenerate.append(DegenerateMetric("vs_best", "speedup", "ML execution time is zero"))
        vs_best = BestTimeComparison(
            best_standard=best_time_level.short,
            best_time=best_time,
            ml_beats_best=None if speedup_vs_best is None else ml_time < best_time,
            speedup_vs_best=speedup_vs_best,
        )

    vs_best_size = None
    best_size_level = _best_level(ordered, lambda m: m.binary_size)
    if best_size_level is not None:
        best_size = ordered[best_size_level].binary_size
        reduction_vs_best = _size_reduction(best_size, ml_size)
        if reduction_vs_best is None:
            degenerate.append(DegenerateMetric("vs_best_size", "size_reduction", "baseline binary size is zero"))
        vs_best_size = BestSizeComparison(
            best_size_standard=best_size_level.short,
            best_size_bytes=best_size,
            ml_beats_best_size=None if reduction_vs_best is None else ml_size < best_size,
            size_reduction_vs_best=reduction_vs_best,
        )

    timed = [entry for entry in levels.values() if entry.ml_faster is not None]
    sized = [entry for entry in levels.values() if entry.ml_smaller is not None]
    return ComparisonRecord(
        levels=levels,
        vs_best=vs_best,
        vs_best_size=vs_best_size,
        faster_than=LevelTally(tuple(e.level for e in timed if e.ml_faster), len(timed)),
        smaller_than=LevelTally(tuple(e.level for e in sized if e.ml_smaller), len(sized)),
        degenerate=tuple(degenerate),
    )


def comparison_frame(
    record: Optional[ComparisonRecord],
    ml: PerLevelMetrics,
    baselines: Mapping[OptLevel, PerLevelMetrics],
) -> pd.DataFrame:
    rows = []
    for level in sorted(baselines, key=lambda lv: lv.ordinal):
        metrics = baselines[level]
        entry = record.levels.get(level) if record is not None else None
        rows.append(
            {
                "level": level.value,
                "execution_time_avg": metrics.execution_time_avg,
                "binary_size": metrics.binary_size,
                "compile_time": metrics.compile_time,
                "speedup": entry.speedup if entry else None,
                "size_reduction": entry.size_reduction if entry else None,
                "ml_faster": entry.ml_faster if entry else None,
                "ml_smaller": entry.ml_smaller if entry else None,
            }
        )
    rows.append(
        {
            "level": ML_ROW,
            "execution_time_avg": ml.execution_time_avg,
            "binary_size": ml.binary_size,
            "compile_time": ml.compile_time,
            "speedup": None,
            "size_reduction": None,
            "ml_faster": None,
            "ml_smaller": None,
        }
    )
    return pd.DataFrame(rows)
