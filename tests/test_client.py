import asyncio
import io
import urllib.error

import pytest

from irisopt import client as client_module
from irisopt.client import LLVMServiceClient
from irisopt.config import ServiceSettings
from irisopt.errors import NetworkError, ServiceError
from irisopt.models import OptimizationRequestConfig, OptLevel, TargetArch


class RecordingTransport:
    def __init__(self, status=200, body=None, exc=None):
        self.status = status
        self.body = body if body is not None else {"success": True}
        self.exc = exc
        self.requests = []

    async def __call__(self, method, url, payload):
        self.requests.append((method, url, payload))
        if self.exc is not None:
            raise self.exc
        return self.status, self.body


def _client(transport):
    return LLVMServiceClient(ServiceSettings(base_url="http://iris.test/"), transport=transport)


def test_compare_payload_lets_model_predict_passes(compare_body):
    transport = RecordingTransport(body=compare_body)
    config = OptimizationRequestConfig(beam_size=7, target_arch=TargetArch.riscv32)

    response = asyncio.run(_client(transport).compare("int main(){}", config))

    method, url, payload = transport.requests[0]
    assert (method, url) == ("POST", "http://iris.test/api/llvm/compare")
    assert payload["use_transformer"] is True
    assert payload["beam_size"] == 7
    assert payload["target_arch"] == "riscv32"
    assert payload["target_metric"] == "execution_time"
    assert "ir_passes" not in payload
    assert set(response.standard_optimizations) == set(OptLevel)


def test_manual_passes_disable_predictor():
    transport = RecordingTransport(body={"success": True, "metrics": {"execution_time_avg": 0.5}})
    config = OptimizationRequestConfig(use_ml_predictor=False)
    asyncio.run(_client(transport).optimize("int main(){}", config))
    payload = transport.requests[0][2]
    assert payload["use_transformer"] is False
    assert payload["ir_passes"] == ["mem2reg", "simplifycfg", "instcombine"]


def test_unknown_fields_are_tolerated():
    body = {"success": True, "features": {"loops": 1}, "feature_count": 1, "model_version": "v3"}
    response = asyncio.run(_client(RecordingTransport(body=body)).extract_features("x"))
    assert response.success
    assert response.features == {"loops": 1}


def test_error_status_is_never_success():
    transport = RecordingTransport(status=500, body={"success": True})
    response = asyncio.run(_client(transport).extract_features("x"))
    assert response.success is False
    assert response.error == "HTTP 500"


def test_malformed_body_is_service_error():
    transport = RecordingTransport(body={"success": True, "ml_optimization": {"binary_size": -4}})
    with pytest.raises(ServiceError):
        asyncio.run(_client(transport).compare("x", OptimizationRequestConfig()))


def test_health_requires_healthy_status():
    assert asyncio.run(_client(RecordingTransport(body={"status": "healthy"})).check_health()) is True
    assert asyncio.run(_client(RecordingTransport(body={"status": "degraded"})).check_health()) is False
    transport = RecordingTransport(exc=NetworkError(cause="refused"))
    assert asyncio.run(_client(transport).check_health()) is False
    assert transport.requests[0][:2] == ("GET", "http://iris.test/api/llvm/health")


def test_urllib_failure_maps_to_network_error(monkeypatch):
    def refuse(req, timeout=None):
        raise urllib.error.URLError("connection refused")

    monkeypatch.setattr(client_module.urllib.request, "urlopen", refuse)
    client = LLVMServiceClient(ServiceSettings(base_url="http://127.0.0.1:9"))
    with pytest.raises(NetworkError) as info:
        asyncio.run(client.extract_features("int main(){}"))
    assert "connection refused" in info.value.cause


def test_standard_levels_are_normalized():
    body = {"success": True, "results": {"O_0": {"execution_time_avg": 2.0}, "O3": {"binary_size": 100}}}
    response = asyncio.run(_client(RecordingTransport(body=body)).run_standard("x"))
    assert set(response.results) == {OptLevel.O0, OptLevel.O3}


def test_http_error_status_body_is_parsed(monkeypatch):
    def fail(req, timeout=None):
        body = io.BytesIO(b'{"success": false, "error": "boom"}')
        raise urllib.error.HTTPError(req.full_url, 500, "err", {}, body)

    monkeypatch.setattr(client_module.urllib.request, "urlopen", fail)
    client = LLVMServiceClient(ServiceSettings(base_url="http://iris.test"))
    response = asyncio.run(client.extract_features("int main(){}"))
    assert response.success is False
    assert response.error == "boom"


def test_non_json_body_is_network_error(monkeypatch):
    class HtmlResponse:
        status = 502

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def read(self):
            return b"<html>Bad Gateway</html>"

    monkeypatch.setattr(client_module.urllib.request, "urlopen", lambda req, timeout=None: HtmlResponse())
    client = LLVMServiceClient(ServiceSettings(base_url="http://iris.test"))
    with pytest.raises(NetworkError) as info:
        asyncio.run(client.extract_features("int main(){}"))
    assert "not JSON" in info.value.cause


def test_null_standard_level_counts_as_absent(compare_body):
    compare_body["standard_optimizations"]["-O1"] = None
    response = asyncio.run(_client(RecordingTransport(body=compare_body)).compare("x", OptimizationRequestConfig()))
    assert response.success
    assert OptLevel.O1 not in response.standard_optimizations
