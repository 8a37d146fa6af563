from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Optional

DEFAULT_API_URL = "http://localhost:5001"
DEFAULT_API_PREFIX = "/api/llvm"

ENDPOINT_PATHS: Dict[str, str] = {
    "features": "/features",
    "optimize": "/optimize",
    "standard": "/standard",
    "compare": "/compare",
    "health": "/health",
}


def _parse_timeout(raw: Optional[str]) -> Optional[float]:
    if raw is None or raw.strip() == "":
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"IRIS_API_TIMEOUT must be a number of seconds, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"IRIS_API_TIMEOUT must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class ServiceSettings:
    base_url: str = DEFAULT_API_URL
    api_prefix: str = DEFAULT_API_PREFIX
    # None leaves remote calls unbounded; a hung call keeps the workflow loading.
    timeout_seconds: Optional[float] = None

    @classmethod
    def from_env(cls) -> "ServiceSettings":
        return cls(
            base_url=os.getenv("IRIS_API_URL", DEFAULT_API_URL),
            api_prefix=os.getenv("IRIS_API_PREFIX", DEFAULT_API_PREFIX),
            timeout_seconds=_parse_timeout(os.getenv("IRIS_API_TIMEOUT")),
        )

    def endpoint(self, name: str) -> str:
        try:
            path = ENDPOINT_PATHS[name]
        except KeyError:
            raise ValueError(f"Unknown endpoint: {name}") from None
        prefix = "/" + self.api_prefix.strip("/") if self.api_prefix.strip("/") else ""
        return f"{self.base_url.rstrip('/')}{prefix}{path}"
