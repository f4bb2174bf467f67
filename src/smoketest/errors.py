from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass
class SmokeError(Exception):
    """Base class for every failure the smoke run knows how to name.

    Anything raised in the main flow ends up in the failure controller; these
    carry a stable `code` so event logs and tests can tell them apart.
    """

    message: str = ""
    code: str = "error"
    details: Optional[Mapping[str, Any]] = None

    def __str__(self) -> str:
        if self.message:
            return f"{self.code}: {self.message}"
        return self.code


@dataclass
class PreconditionError(SmokeError):
    code: str = "precondition"


@dataclass
class PrepareError(SmokeError):
    code: str = "prepare_failed"


@dataclass
class LaunchError(SmokeError):
    code: str = "launch_failed"


@dataclass
class CrashError(SmokeError):
    code: str = "driver_crashed"
    returncode: Optional[int] = None


@dataclass
class SessionError(SmokeError):
    code: str = "session_failed"
    attempts: int = 0


@dataclass
class InvalidPatternError(SmokeError):
    code: str = "invalid_pattern"


@dataclass
class WatchTimeoutError(SmokeError):
    code: str = "watch_timeout"
    pattern: str = ""
    elapsed_s: float = 0.0

    def __str__(self) -> str:
        return f"Timed out after {self.elapsed_s:.3f}s waiting for pattern ({self.pattern})"


@dataclass
class PhaseError(SmokeError):
    code: str = "phase_failed"
    phase: str = ""


@dataclass
class DiagnosticCaptureError(SmokeError):
    """Browser log or screenshot capture failed; logged, never fatal."""

    code: str = "diagnostic_capture"
