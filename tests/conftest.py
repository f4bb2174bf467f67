from __future__ import annotations

import io
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
from PIL import Image
from rich.console import Console

from src.smoketest.config import Credentials, SmokeConfig
from src.smoketest.console import RunLogger
from src.smoketest.driver import AutomationDriver, BrowserLogEntry
from src.smoketest.interfaces import RunContext
from src.smoketest.jsonlog import EventLog


def png_bytes(size: tuple[int, int] = (64, 48)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, (30, 120, 200)).save(buf, format="PNG")
    return buf.getvalue()


def wait_until(pred: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if pred():
            return True
        time.sleep(interval)
    return pred()


class FakeDriver(AutomationDriver):
    """In-memory stand-in for the chromedriver client."""

    def __init__(
        self,
        create_failures: int = 0,
        screenshot_failures: int = 0,
        on_create: Optional[Callable[[], None]] = None,
    ):
        self.create_failures = create_failures
        self.screenshot_failures = screenshot_failures
        self.on_create = on_create
        self.create_calls = 0
        self.deleted_sessions = 0
        self.closed_windows = 0
        self.calls: List[tuple] = []
        self.entries: List[BrowserLogEntry] = []
        self.log_error: Optional[Exception] = None
        self.screenshot_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.step_errors: Dict[str, Exception] = {}
        self._session: Optional[str] = None

    @property
    def session_id(self) -> Optional[str]:
        return self._session

    def create_session(self) -> str:
        self.create_calls += 1
        if self.create_calls <= self.create_failures:
            raise ConnectionError(f"connection refused (call {self.create_calls})")
        self._session = f"sess-{self.create_calls}"
        if self.on_create is not None:
            self.on_create()
        return self._session

    def delete_session(self) -> None:
        self.deleted_sessions += 1
        self._session = None
        if self.delete_error is not None:
            raise self.delete_error

    def close_window(self) -> None:
        self.closed_windows += 1

    def browser_log(self) -> List[BrowserLogEntry]:
        if self.log_error is not None:
            raise self.log_error
        return list(self.entries)

    def screenshot_png(self) -> bytes:
        if self.screenshot_error is not None:
            raise self.screenshot_error
        if self.screenshot_failures > 0:
            self.screenshot_failures -= 1
            raise RuntimeError("renderer not ready")
        return png_bytes()

    def _step(self, op: str, *args: Any) -> None:
        self.calls.append((op, *args))
        err = self.step_errors.get(args[0]) if args else None
        if err is not None:
            raise err

    def wait_for(self, selector: str, timeout_s: float) -> None:
        self._step("wait", selector)

    def click(self, selector: str, timeout_s: float) -> None:
        self._step("click", selector)

    def type_text(self, selector: str, text: str, timeout_s: float) -> None:
        self._step("type", selector, text)


def quiet_logger(logfile: Optional[Path] = None) -> RunLogger:
    return RunLogger(
        logfile=logfile,
        out=Console(file=io.StringIO(), width=200, highlight=False),
        err=Console(file=io.StringIO(), width=200, highlight=False),
    )


def output(log: RunLogger) -> str:
    return log.out.file.getvalue()


def errors(log: RunLogger) -> str:
    return log.err.file.getvalue()


@pytest.fixture
def make_ctx(tmp_path: Path) -> Callable[..., RunContext]:
    def _make(driver: Optional[AutomationDriver] = None, **cfg: Any) -> RunContext:
        config = SmokeConfig(workdir=tmp_path, **cfg)
        return RunContext(
            config=config,
            log=quiet_logger(),
            events=EventLog(tmp_path / "events.jsonl"),
            credentials=Credentials(api_key="key-123", password="hunter2"),
            driver=driver,
        )

    return _make
