"""Single exit path for a smoke run.

`FailureController.fail` is the only place a fatal error is handled. It
captures what diagnostics it can, runs cleanup, and hands back the exit
status; each diagnostic step logs its own failure and lets the next one run.
"""

from __future__ import annotations

import logging
import threading
import traceback
from typing import Callable, Optional

from .console import format_duration
from .errors import SmokeError
from .interfaces import RunContext
from .screenshots import take_screenshot


logger = logging.getLogger("smoketest.failure")


class CleanupOnce:
    """Wraps the cleanup callback so it runs at most once per process.

    A second caller arriving while cleanup is in progress blocks until the
    first finishes, then returns without running it again.
    """

    def __init__(self, fn: Callable[[], None]):
        self._fn = fn
        self._lock = threading.Lock()
        self._ran = False

    @property
    def ran(self) -> bool:
        return self._ran

    def __call__(self) -> bool:
        with self._lock:
            if self._ran:
                return False
            self._ran = True
            self._fn()
            return True


def describe(err: BaseException) -> str:
    if isinstance(err, SmokeError):
        return str(err)
    return f"{type(err).__name__}: {err}"


class FailureController:
    def __init__(self, ctx: RunContext):
        self.ctx = ctx
        self._lock = threading.Lock()
        self._failed = False

    @property
    def failed(self) -> bool:
        return self._failed

    def fail(self, err: BaseException) -> int:
        with self._lock:
            if self._failed:
                logger.debug("ignoring additional fatal error: %s", describe(err))
                return 1
            self._failed = True

        ctx = self.ctx
        text = describe(err)
        ctx.log.banner(f"Fatal error: {text}")
        if err.__traceback__ is not None:
            logger.debug("".join(traceback.format_exception(type(err), err, err.__traceback__)))

        ctx.log.errf(f"Failed in {format_duration(ctx.since_test_start())}")
        ctx.events.emit(
            "fatal",
            code=getattr(err, "code", type(err).__name__),
            error=text,
            elapsed_s=round(ctx.since_test_start(), 3),
        )

        if ctx.driver is not None:
            self._dump_browser_log()
            self._failure_screenshot(text)

        self.run_cleanup()
        return 1

    def succeed(self) -> int:
        self.run_cleanup()
        return 0

    def run_cleanup(self) -> None:
        cleanup = self.ctx.cleanup
        if cleanup is None:
            return
        try:
            ran = cleanup()
        except Exception as exc:
            self.ctx.log.errf(f"Cleanup failed: {describe(exc)}")
            self.ctx.events.emit("cleanup", ok=False, error=describe(exc))
            return
        if ran is not False:
            self.ctx.events.emit("cleanup", ok=True)

    def _dump_browser_log(self) -> None:
        ctx = self.ctx
        try:
            entries = ctx.driver.browser_log()
        except Exception as exc:
            ctx.log.errf(f"Could not get browser log: {exc}")
            ctx.events.emit("diagnostic", kind="browser_log", ok=False, error=str(exc))
            return

        ctx.log.logf("Browser log:")
        for entry in entries:
            ctx.log.browser_entry(entry.timestamp_ms, entry.level, entry.message)

    def _failure_screenshot(self, text: str) -> Optional[str]:
        ctx = self.ctx
        ctx.log.logf("Taking failure screenshot...")
        try:
            path = take_screenshot(ctx, text, caption=text)
        except Exception as exc:
            ctx.log.errf(f"Could not take failure screenshot: {exc}")
            ctx.events.emit("diagnostic", kind="screenshot", ok=False, error=str(exc))
            return None
        ctx.log.logf(f"Failure screenshot saved to {path}")
        return str(path)
