"""
Optimization workflow orchestration.

A :class:`WorkflowSession` owns the single "current result" slot for one user
session. Runs move ``Idle -> Loading -> Succeeded | Failed``; ``clear()``
returns to ``Idle`` at any point. Responses that arrive after the session was
cleared (or restarted) are recognised by their generation number and dropped.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .client import LLVMServiceClient
from .comparison import ComparisonRecord, derive_comparison
from .errors import (
    CompilationDiagnosticError,
    ErrorKind,
    IrisError,
    MissingMetricsError,
    WorkflowBusyError,
    classify_service_error,
)
from .models import OptimizationRequestConfig, OptLevel, PerLevelMetrics, SourceArtifact
from .utils import utc_now_iso

logger = logging.getLogger(__name__)


class SequencingMode(str, Enum):
    two_step = "two_step"
    single_step = "single_step"
    features_then_optimize = "features_then_optimize"


@dataclass(frozen=True)
class WorkflowResult:
    mode: SequencingMode
    artifact_name: str
    config: OptimizationRequestConfig
    ml_metrics: PerLevelMetrics
    features: Dict[str, Any] = field(default_factory=dict)
    baselines: Dict[OptLevel, PerLevelMetrics] = field(default_factory=dict)
    comparison: Optional[ComparisonRecord] = None
    predicted_passes: Tuple[str, ...] = ()
    raw: Dict[str, Any] = field(default_factory=dict)
    generated_at: str = field(default_factory=utc_now_iso)

    @property
    def feature_count(self) -> int:
        return len(self.features)


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Loading:
    mode: SequencingMode
    artifact_name: str
    generation: int


@dataclass(frozen=True)
class Succeeded:
    result: WorkflowResult


@dataclass(frozen=True)
class Failed:
    kind: ErrorKind
    message: str
    diagnostic: Optional[str] = None

    @property
    def is_compiler_failure(self) -> bool:
        return self.kind == ErrorKind.compilation_diagnostic


WorkflowState = Union[Idle, Loading, Succeeded, Failed]


def _failed_from(exc: IrisError) -> Failed:
    return Failed(kind=exc.kind, message=exc.message, diagnostic=getattr(exc, "diagnostic", None))


def _require_ml_metrics(ml: Optional[PerLevelMetrics]) -> PerLevelMetrics:
    if ml is None:
        raise MissingMetricsError("Service response did not include ML optimization metrics")
    if ml.error:
        # The ML-optimized build itself failed; the message is compiler output.
        raise CompilationDiagnosticError(ml.error)
    if not ml.has_core_metrics:
        raise MissingMetricsError("ML optimization result is missing execution time or binary size")
    return ml


class WorkflowSession:
    def __init__(self, client: LLVMServiceClient) -> None:
        self._client = client
        self._state: WorkflowState = Idle()
        self._generation = 0
        self._last_submission: Optional[Tuple[SourceArtifact, OptimizationRequestConfig, SequencingMode]] = None

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def busy(self) -> bool:
        return isinstance(self._state, Loading)

    @property
    def last_result(self) -> Optional[WorkflowResult]:
        if isinstance(self._state, Succeeded):
            return self._state.result
        return None

    def _transition(self, new_state: WorkflowState) -> None:
        logger.info("Workflow %s -> %s", type(self._state).__name__, type(new_state).__name__)
        self._state = new_state

    def clear(self) -> None:
        # Any in-flight response now belongs to an older generation.
        self._generation += 1
        self._transition(Idle())

    async def submit(
        self,
        artifact: SourceArtifact,
        config: OptimizationRequestConfig,
        mode: SequencingMode = SequencingMode.single_step,
    ) -> WorkflowState:
        if self.busy:
            raise WorkflowBusyError("A workflow run is already in progress; wait for it or clear the session")

        if isinstance(self._state, Succeeded):
            self._transition(Idle())
        self._generation += 1
        generation = self._generation
        self._last_submission = (artifact, config, mode)
        self._transition(Loading(mode=mode, artifact_name=artifact.filename, generation=generation))

        try:
            result = await self._run(artifact, config, SequencingMode(mode))
        except IrisError as exc:
            logger.warning("Workflow run %d failed (%s): %s", generation, exc.kind.value, exc.message)
            outcome: WorkflowState = _failed_from(exc)
        except Exception as exc:
            if generation != self._generation:
                logger.warning("Ignoring error from stale run %d: %r", generation, exc)
                return self._state
            self._transition(Failed(kind=ErrorKind.service, message=str(exc) or type(exc).__name__))
            raise
        else:
            outcome = Succeeded(result)

        if generation != self._generation:
            logger.info("Discarding stale response for run %d (current generation %d)", generation, self._generation)
            return self._state
        self._transition(outcome)
        return outcome

    async def retry(self) -> WorkflowState:
        if self.busy:
            raise WorkflowBusyError("A workflow run is already in progress")
        if not isinstance(self._state, Failed) or self._last_submission is None:
            raise ValueError("Nothing to retry: the last run did not fail")
        artifact, config, mode = self._last_submission
        return await self.submit(artifact, config, mode)

    async def _run(
        self,
        artifact: SourceArtifact,
        config: OptimizationRequestConfig,
        mode: SequencingMode,
    ) -> WorkflowResult:
        code = artifact.text
        raw: Dict[str, Any] = {}
        features: Dict[str, Any] = {}

        if mode in (SequencingMode.two_step, SequencingMode.features_then_optimize):
            extracted = await self._client.extract_features(code, config.target_arch)
            raw["features"] = extracted.model_dump(mode="json")
            if not extracted.success:
                raise classify_service_error(extracted.error, "Failed to extract features")
            features = dict(extracted.features or {})
            logger.info("Extracted %d features from %s", len(features), artifact.filename)

        if mode == SequencingMode.features_then_optimize:
            optimized = await self._client.optimize(code, config)
            raw["optimize"] = optimized.model_dump(mode="json")
            if not optimized.success:
                raise classify_service_error(optimized.error, "An unknown error occurred during optimization.")
            ml = _require_ml_metrics(optimized.metrics)
            return WorkflowResult(
                mode=mode,
                artifact_name=artifact.filename,
                config=config,
                ml_metrics=ml,
                features=features,
                predicted_passes=tuple(optimized.passes_used or ml.ir_passes or ()),
                raw=raw,
            )

        compared = await self._client.compare(code, config)
        raw["compare"] = compared.model_dump(mode="json")
        if not compared.success:
            raise classify_service_error(compared.error, "Failed to compare optimizations")
        ml = _require_ml_metrics(compared.ml_optimization)
        baselines: Mapping[OptLevel, PerLevelMetrics] = compared.standard_optimizations or {}
        missing = [level.value for level in OptLevel if level not in baselines]
        if missing:
            logger.warning("Comparison is partial; missing standard levels: %s", ", ".join(missing))

        return WorkflowResult(
            mode=mode,
            artifact_name=artifact.filename,
            config=config,
            ml_metrics=ml,
            features=dict(compared.features) if compared.features is not None else features,
            baselines=dict(baselines),
            comparison=derive_comparison(ml, baselines),
            predicted_passes=tuple(ml.ir_passes or ()),
            raw=raw,
        )
