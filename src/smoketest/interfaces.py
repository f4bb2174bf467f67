from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Optional

from .config import Credentials, SmokeConfig
from .console import RunLogger
from .driver import AutomationDriver
from .jsonlog import EventLog


@dataclass
class Session:
    session_id: str
    created_at: float
    latency_s: float
    attempts: int


@dataclass
class RunContext:
    """State shared by every part of a single smoke run.

    Built once at startup and passed explicitly; the failure controller reads
    it at the moment something goes wrong, so keep it current.
    """

    config: SmokeConfig
    log: RunLogger
    events: EventLog
    credentials: Credentials = field(default_factory=Credentials)
    started_at: float = field(default_factory=time.monotonic)
    test_started_at: Optional[float] = None
    ready_for_screenshot: bool = False
    driver: Optional[AutomationDriver] = None
    session: Optional[Session] = None
    cleanup: Optional[Callable[[], object]] = None

    def since_boot(self) -> float:
        return time.monotonic() - self.started_at

    def since_test_start(self) -> float:
        # Before the test phase begins this counts from boot.
        ref = self.test_started_at if self.test_started_at is not None else self.started_at
        return time.monotonic() - ref


class Phase(ABC):
    """One ordered block of scripted UI interactions.

    Contract: run() either returns normally or raises; it never swallows a
    driver failure. Phases run strictly in sequence against ctx.driver.
    """

    name: str

    @abstractmethod
    def run(self, ctx: RunContext) -> None:
        raise NotImplementedError
