from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .config import ServiceSettings
from .errors import NetworkError, ServiceError
from .models import (
    STANDARD_LEVELS,
    ComparisonResponse,
    FeatureExtractionResponse,
    HealthResponse,
    OptimizationRequestConfig,
    OptimizationResponse,
    StandardOptimizationResponse,
    TargetArch,
)

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)

# (method, url, json body or None) -> (http status, decoded json body)
Transport = Callable[[str, str, Optional[Dict[str, Any]]], Awaitable[Tuple[int, Any]]]


def _http_json(method: str, url: str, payload: Optional[Dict[str, Any]], timeout: Optional[float]) -> Tuple[int, Any]:
    data = None
    headers = {"Accept": "application/json"}
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
        headers["Content-Type"] = "application/json"
    req = urllib.request.Request(url, data=data, headers=headers, method=method)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as response:
            status = response.status
            raw = response.read()
    except urllib.error.HTTPError as exc:
        # Error statuses still carry the service's {"success": false, "error": ...} body.
        status = exc.code
        raw = exc.read()
    except (urllib.error.URLError, OSError) as exc:
        raise NetworkError(cause=str(exc)) from exc

    try:
        return status, json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise NetworkError(cause=f"HTTP {status}: response body is not JSON") from exc


def urllib_transport(settings: ServiceSettings) -> Transport:
    async def transport(method: str, url: str, payload: Optional[Dict[str, Any]]) -> Tuple[int, Any]:
        return await asyncio.to_thread(_http_json, method, url, payload, settings.timeout_seconds)

    return transport


class LLVMServiceClient:
    """Async client for the LLVM optimization service endpoints."""

    def __init__(self, settings: Optional[ServiceSettings] = None, transport: Optional[Transport] = None) -> None:
        self.settings = settings or ServiceSettings.from_env()
        self._transport = transport or urllib_transport(self.settings)

    async def _call(
        self,
        endpoint: str,
        model: Type[ResponseT],
        payload: Optional[Dict[str, Any]] = None,
    ) -> ResponseT:
        url = self.settings.endpoint(endpoint)
        method = "POST" if payload is not None else "GET"
        logger.info("%s %s", method, url)
        status, body = await self._transport(method, url, payload)
        logger.info("%s %s -> HTTP %d", method, url, status)
        if not isinstance(body, dict):
            raise ServiceError(f"Unexpected response from {endpoint}: expected a JSON object")
        try:
            parsed = model.model_validate(body)
        except ValidationError as exc:
            raise ServiceError(f"Malformed response from {endpoint}: {exc.error_count()} invalid field(s)") from exc
        if status >= 400 and getattr(parsed, "success", None) is True:
            # An error status never counts as success, whatever the body says.
            parsed = parsed.model_copy(update={"success": False, "error": parsed.error or f"HTTP {status}"})
        return parsed

    async def extract_features(
        self, code: str, target_arch: TargetArch = TargetArch.riscv64
    ) -> FeatureExtractionResponse:
        return await self._call(
            "features",
            FeatureExtractionResponse,
            {"code": code, "target_arch": TargetArch(target_arch).value},
        )

    async def optimize(self, code: str, config: OptimizationRequestConfig) -> OptimizationResponse:
        return await self._call("optimize", OptimizationResponse, config.to_payload(code))

    async def run_standard(
        self,
        code: str,
        opt_levels: Iterable[str] = tuple(level.value for level in STANDARD_LEVELS),
        target_arch: TargetArch = TargetArch.riscv64,
    ) -> StandardOptimizationResponse:
        return await self._call(
            "standard",
            StandardOptimizationResponse,
            {"code": code, "opt_levels": list(opt_levels), "target_arch": TargetArch(target_arch).value},
        )

    async def compare(self, code: str, config: OptimizationRequestConfig) -> ComparisonResponse:
        return await self._call("compare", ComparisonResponse, config.to_payload(code))

    async def check_health(self) -> bool:
        try:
            health = await self._call("health", HealthResponse)
        except (NetworkError, ServiceError) as exc:
            logger.warning("Health check failed: %s", exc)
            return False
        return health.healthy
