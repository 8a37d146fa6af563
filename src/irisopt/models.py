from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

BEAM_SIZE_MIN = 1
BEAM_SIZE_MAX = 20
DEFAULT_BEAM_SIZE = 5

SUPPORTED_SUFFIXES = (".c", ".cpp")

DEFAULT_MANUAL_PASSES = ["mem2reg", "simplifycfg", "instcombine"]


class TargetMetric(str, Enum):
    execution_time = "execution_time"
    binary_size = "binary_size"


class TargetArch(str, Enum):
    riscv64 = "riscv64"
    riscv32 = "riscv32"


class OptLevel(str, Enum):
    O0 = "-O0"
    O1 = "-O1"
    O2 = "-O2"
    O3 = "-O3"

    @property
    def ordinal(self) -> int:
        return int(self.value[-1])

    @property
    def short(self) -> str:
        return self.value.lstrip("-")

    @classmethod
    def parse(cls, name: str) -> "OptLevel":
        """Accept the spellings the service uses: -O2, O2, O_2."""
        cleaned = name.strip().lstrip("-").replace("_", "").upper()
        for level in cls:
            if level.short == cleaned:
                return level
        raise ValueError(f"Unknown optimization level: {name!r}")


STANDARD_LEVELS = tuple(OptLevel)


@dataclass(frozen=True)
class SourceArtifact:
    filename: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    @classmethod
    def from_upload(cls, filename: str, data: bytes) -> "SourceArtifact":
        if not filename.lower().endswith(SUPPORTED_SUFFIXES):
            raise ValueError(f"Unsupported file type: {filename} (expected .c or .cpp)")
        if not data:
            raise ValueError(f"Uploaded file is empty: {filename}")
        return cls(filename=filename, content=bytes(data))

    @classmethod
    def from_path(cls, path: Path) -> "SourceArtifact":
        return cls.from_upload(path.name, path.read_bytes())

    @classmethod
    def from_text(cls, filename: str, code: str) -> "SourceArtifact":
        return cls.from_upload(filename, code.encode("utf-8"))


def clamp_beam_size(value: Optional[int]) -> int:
    if value is None:
        return DEFAULT_BEAM_SIZE
    return max(BEAM_SIZE_MIN, min(BEAM_SIZE_MAX, int(value)))


class OptimizationRequestConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    beam_size: int = Field(DEFAULT_BEAM_SIZE, ge=BEAM_SIZE_MIN, le=BEAM_SIZE_MAX)
    target_metric: TargetMetric = TargetMetric.execution_time
    target_arch: TargetArch = TargetArch.riscv64
    use_ml_predictor: bool = True
    opt_level_hint: str = "O_2"
    ir_passes: Optional[List[str]] = None

    def to_payload(self, code: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": code,
            "target_arch": self.target_arch.value,
            "beam_size": self.beam_size,
            "target_metric": self.target_metric.value,
        }
        if self.use_ml_predictor:
            # Leaving ir_passes out lets the service's model predict them.
            payload["use_transformer"] = True
            payload["opt_level_hint"] = self.opt_level_hint
        else:
            payload["use_transformer"] = False
            payload["ir_passes"] = list(self.ir_passes or DEFAULT_MANUAL_PASSES)
        return payload


class _Response(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PerLevelMetrics(_Response):
    execution_time_avg: Optional[float] = Field(None, ge=0)
    binary_size: Optional[int] = Field(None, ge=0)
    compile_time: Optional[float] = Field(None, ge=0)
    optimization_time: Optional[float] = Field(None, ge=0)
    ir_passes: Optional[List[str]] = None
    pass_count: Optional[int] = Field(None, ge=0)
    error: Optional[str] = None

    @field_validator("binary_size", "pass_count", mode="before")
    @classmethod
    def coerce_whole_number(cls, value):
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value

    @property
    def has_core_metrics(self) -> bool:
        return self.execution_time_avg is not None and self.binary_size is not None


class FeatureExtractionResponse(_Response):
    success: bool = False
    features: Optional[Dict[str, Any]] = None
    feature_count: Optional[int] = None
    error: Optional[str] = None


class OptimizationResponse(_Response):
    success: bool = False
    metrics: Optional[PerLevelMetrics] = None
    passes_used: Optional[List[str]] = None
    error: Optional[str] = None


def _normalize_levels(value):
    if not isinstance(value, dict):
        return value
    normalized = {}
    for key, metrics in value.items():
        # A level reported as null (or any non-object) failed and counts as absent.
        if not isinstance(metrics, dict):
            continue
        try:
            normalized[OptLevel.parse(str(key))] = metrics
        except ValueError:
            continue
    return normalized


class StandardOptimizationResponse(_Response):
    success: bool = False
    results: Optional[Dict[OptLevel, PerLevelMetrics]] = None
    error: Optional[str] = None

    @field_validator("results", mode="before")
    @classmethod
    def normalize_levels(cls, value):
        return _normalize_levels(value)


class ComparisonResponse(_Response):
    success: bool = False
    features: Optional[Dict[str, Any]] = None
    ml_optimization: Optional[PerLevelMetrics] = None
    standard_optimizations: Optional[Dict[OptLevel, PerLevelMetrics]] = None
    comparison: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @field_validator("standard_optimizations", mode="before")
    @classmethod
    def normalize_levels(cls, value):
        return _normalize_levels(value)


class HealthResponse(_Response):
    status: str = "unknown"

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"
