from __future__ import annotations

from enum import Enum
from typing import Optional

NETWORK_GUIDANCE = "Failed to connect to the server. Please ensure the backend is running and accessible."
COMPILE_FIX_TIP = (
    "Please fix the compilation errors in your C code and try again. "
    "Make sure your code compiles with standard C compilers."
)

COMPILER_FAILURE_MARKERS = ("Compilation failed", "compilation errors")

# Longest first: the feature prefix already contains "Compilation failed: ".
DIAGNOSTIC_PREFIXES = (
    "Feature extraction failed: Compilation failed: Failed to compile C source: ",
    "Comparison failed: ",
)


class ErrorKind(str, Enum):
    network = "network"
    service = "service"
    compilation_diagnostic = "compilation_diagnostic"
    degenerate_metric = "degenerate_metric"
    missing_metrics = "missing_metrics"


class IrisError(Exception):
    kind: ErrorKind = ErrorKind.service

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NetworkError(IrisError):
    """The optimization service could not be reached or returned an unreadable body."""

    kind = ErrorKind.network

    def __init__(self, message: str = NETWORK_GUIDANCE, cause: Optional[str] = None) -> None:
        self.cause = cause
        super().__init__(message)


class ServiceError(IrisError):
    """The service answered with ``success: false``; the message is kept verbatim."""

    kind = ErrorKind.service


class CompilationDiagnosticError(ServiceError):
    """
    A service error carrying compiler output.

    Attributes
    ----------
    diagnostic : str
        The message with the known wrapper prefixes removed, for display as a
        preformatted block.
    """

    kind = ErrorKind.compilation_diagnostic

    def __init__(self, message: str) -> None:
        self.diagnostic = strip_diagnostic(message)
        super().__init__(message)


class MissingMetricsError(IrisError):
    kind = ErrorKind.missing_metrics


class WorkflowBusyError(IrisError):
    """A run is already in flight for this session."""


def is_compiler_failure(message: str) -> bool:
    return any(marker in message for marker in COMPILER_FAILURE_MARKERS)


def strip_diagnostic(message: str) -> str:
    text = message
    for prefix in DIAGNOSTIC_PREFIXES:
        text = text.replace(prefix, "", 1)
    return text.strip()


def classify_service_error(message: Optional[str], fallback: str = "Unknown service error") -> ServiceError:
    text = message or fallback
    if is_compiler_failure(text):
        return CompilationDiagnosticError(text)
    return ServiceError(text)
