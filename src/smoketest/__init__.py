from .config import Credentials, SmokeConfig
from .errors import (
    CrashError,
    DiagnosticCaptureError,
    InvalidPatternError,
    LaunchError,
    PhaseError,
    PreconditionError,
    PrepareError,
    SessionError,
    SmokeError,
    WatchTimeoutError,
)
from .failure import CleanupOnce, FailureController
from .interfaces import Phase, RunContext, Session
from .logwatch import LogWatch, LogWatchRegistry
from .phases import PhaseSequencer, ScriptedPhase, Step, default_phases
from .runner import SmokeRunner
from .session import SessionNegotiator
from .supervisor import ProcessHandle, ProcessSupervisor
from .tailer import LogTailer

__all__ = [
    "CleanupOnce",
    "CrashError",
    "Credentials",
    "DiagnosticCaptureError",
    "FailureController",
    "InvalidPatternError",
    "LaunchError",
    "LogTailer",
    "LogWatch",
    "LogWatchRegistry",
    "Phase",
    "PhaseError",
    "PhaseSequencer",
    "PreconditionError",
    "PrepareError",
    "ProcessHandle",
    "ProcessSupervisor",
    "RunContext",
    "ScriptedPhase",
    "Session",
    "SessionError",
    "SessionNegotiator",
    "SmokeConfig",
    "SmokeError",
    "SmokeRunner",
    "Step",
    "WatchTimeoutError",
    "default_phases",
]
