from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional, TypeVar

T = TypeVar("T")

NOT_AVAILABLE = "N/A"

KIB = 1024
MIB = 1024 * 1024


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _fixed(value: Decimal, places: int) -> str:
    # Round on the shortest decimal repr so 1.2345 renders as 1.235, not 1.234.
    quantum = Decimal(1).scaleb(-places)
    return str(value.quantize(quantum, rounding=ROUND_HALF_UP))


def format_duration(seconds: float) -> str:
    value = Decimal(str(seconds))
    if seconds < 0.001:
        return f"{_fixed(value * 1_000_000, 2)} µs"
    if seconds < 1:
        return f"{_fixed(value * 1000, 2)} ms"
    return f"{_fixed(value, 3)} s"


def format_size(num_bytes: int) -> str:
    if num_bytes < KIB:
        return f"{int(num_bytes)} B"
    if num_bytes < MIB:
        return f"{_fixed(Decimal(num_bytes) / KIB, 2)} KB"
    return f"{_fixed(Decimal(num_bytes) / MIB, 2)} MB"


def format_ratio(speedup: float) -> str:
    return f"{_fixed(Decimal(str(speedup)), 2)}x"


def format_percent(fraction: float) -> str:
    return f"{_fixed(Decimal(str(fraction)) * 100, 1)}%"


def format_metric(value: Optional[T], formatter: Callable[[T], str]) -> str:
    """Format a metric that the service may have left out."""
    if value is None:
        return NOT_AVAILABLE
    return formatter(value)


def format_feature_value(value) -> str:
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, (int, float)):
        return _fixed(Decimal(str(value)), 2)
    return str(value)
