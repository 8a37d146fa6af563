import pytest
from pydantic import ValidationError

from irisopt.config import ServiceSettings
from irisopt.errors import CompilationDiagnosticError, ServiceError, classify_service_error
from irisopt.models import OptimizationRequestConfig, OptLevel, PerLevelMetrics, SourceArtifact, clamp_beam_size


@pytest.mark.parametrize("beam_size", [0, 21, -3])
def test_beam_size_out_of_range_is_rejected(beam_size):
    with pytest.raises(ValidationError):
        OptimizationRequestConfig(beam_size=beam_size)


def test_clamp_beam_size():
    assert clamp_beam_size(0) == 1
    assert clamp_beam_size(99) == 20
    assert clamp_beam_size(None) == 5
    assert OptimizationRequestConfig(beam_size=clamp_beam_size(50)).beam_size == 20


def test_source_artifact_accepts_only_c_sources():
    artifact = SourceArtifact.from_upload("kernel.cpp", b"int f();")
    assert artifact.size == 8
    with pytest.raises(ValueError):
        SourceArtifact.from_upload("notes.txt", b"hello")
    with pytest.raises(ValueError):
        SourceArtifact.from_upload("empty.c", b"")


def test_opt_level_spellings():
    assert OptLevel.parse("-O2") is OptLevel.O2
    assert OptLevel.parse("O_3") is OptLevel.O3
    assert OptLevel.O1.short == "O1"
    with pytest.raises(ValueError):
        OptLevel.parse("Os")


def test_per_level_metrics_tolerates_missing_fields():
    metrics = PerLevelMetrics.model_validate({"binary_size": 4096.0, "extra": 1})
    assert metrics.binary_size == 4096
    assert metrics.execution_time_avg is None
    assert not metrics.has_core_metrics


def test_diagnostic_marker_is_stripped():
    error = classify_service_error("Comparison failed: Compilation failed: a.c:3: error: x undeclared")
    assert isinstance(error, CompilationDiagnosticError)
    assert error.diagnostic == "Compilation failed: a.c:3: error: x undeclared"


def test_diagnostic_prefix_is_stripped_once():
    error = classify_service_error("Comparison failed: Compilation failed: ld: Comparison failed: twice")
    assert error.diagnostic == "Compilation failed: ld: Comparison failed: twice"


def test_plain_service_error_is_verbatim():
    error = classify_service_error("Model checkpoint not loaded")
    assert type(error) is ServiceError
    assert error.message == "Model checkpoint not loaded"


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("IRIS_API_URL", "https://iris.example.org")
    monkeypatch.setenv("IRIS_API_TIMEOUT", "30")
    settings = ServiceSettings.from_env()
    assert settings.endpoint("features") == "https://iris.example.org/api/llvm/features"
    assert settings.timeout_seconds == 30.0

    monkeypatch.setenv("IRIS_API_TIMEOUT", "soon")
    with pytest.raises(ValueError):
        ServiceSettings.from_env()


def test_settings_default_has_no_timeout(monkeypatch):
    monkeypatch.delenv("IRIS_API_URL", raising=False)
    monkeypatch.delenv("IRIS_API_TIMEOUT", raising=False)
    settings = ServiceSettings.from_env()
    assert settings.timeout_seconds is None
    assert settings.endpoint("health") == "http://localhost:5001/api/llvm/health"
