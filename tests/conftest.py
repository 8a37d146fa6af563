import asyncio
from typing import List, Optional

import pytest

from irisopt.models import (
    ComparisonResponse,
    FeatureExtractionResponse,
    OptimizationRequestConfig,
    OptimizationResponse,
    SourceArtifact,
)


class FakeClient:
    """Stands in for LLVMServiceClient; records which endpoints were hit."""

    def __init__(
        self,
        features: Optional[dict] = None,
        optimize: Optional[dict] = None,
        compare: Optional[dict] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.features_body = features or {"success": True, "features": {"num_blocks": 4}, "feature_count": 1}
        self.optimize_body = optimize
        self.compare_body = compare
        self.gate = gate
        self.calls: List[str] = []

    async def _wait(self):
        if self.gate is not None:
            await self.gate.wait()

    async def extract_features(self, code, target_arch):
        self.calls.append("features")
        return FeatureExtractionResponse.model_validate(self.features_body)

    async def optimize(self, code, config):
        self.calls.append("optimize")
        await self._wait()
        return OptimizationResponse.model_validate(self.optimize_body)

    async def compare(self, code, config):
        self.calls.append("compare")
        await self._wait()
        return ComparisonResponse.model_validate(self.compare_body)


def _level(time_s: float, size: int) -> dict:
    return {
        "execution_time_avg": time_s,
        "binary_size": size,
        "compile_time": 0.05,
        "optimization_time": 0.01,
        "ir_passes": [],
        "pass_count": 0,
    }


@pytest.fixture
def baseline_bodies() -> dict:
    return {
        "-O0": _level(2.8, 20480),
        "-O1": _level(1.9, 16384),
        "-O2": _level(1.4, 15360),
        "-O3": _level(1.289, 14336),
    }


@pytest.fixture
def ml_body() -> dict:
    return {
        "execution_time_avg": 1.127,
        "binary_size": 12288,
        "compile_time": 0.08,
        "optimization_time": 0.02,
        "ir_passes": ["mem2reg", "licm", "gvn"],
        "pass_count": 3,
    }


@pytest.fixture
def compare_body(ml_body, baseline_bodies) -> dict:
    return {
        "success": True,
        "features": {"num_instructions": 120, "num_loops": 2},
        "ml_optimization": ml_body,
        "standard_optimizations": baseline_bodies,
        "comparison": {},
    }


@pytest.fixture
def artifact() -> SourceArtifact:
    return SourceArtifact.from_text("loop.c", "int main() { return 0; }\n")


@pytest.fixture
def config() -> OptimizationRequestConfig:
    return OptimizationRequestConfig(beam_size=5)
