from __future__ import annotations

import threading
import time
from typing import List

from conftest import FakeDriver, errors, output
from src.smoketest.driver import BrowserLogEntry
from src.smoketest.errors import WatchTimeoutError
from src.smoketest.failure import CleanupOnce, FailureController
from src.smoketest.screenshots import screenshot_name


def _counter() -> tuple[List[int], CleanupOnce]:
    calls: List[int] = []
    return calls, CleanupOnce(lambda: calls.append(1))


def test_fail_captures_diagnostics_then_cleans_up(make_ctx) -> None:
    driver = FakeDriver()
    driver.entries = [
        BrowserLogEntry(timestamp_ms=time.time() * 1000, level="SEVERE", message="boom\\nat line 2"),
        BrowserLogEntry(timestamp_ms=time.time() * 1000, level="INFO", message="hello"),
    ]
    ctx = make_ctx(driver)
    ctx.ready_for_screenshot = True
    calls, ctx.cleanup = _counter()

    err = WatchTimeoutError(pattern="Setup done", elapsed_s=60.0)
    status = FailureController(ctx).fail(err)

    assert status == 1
    assert calls == [1]
    assert "Fatal error: Timed out after 60.000s waiting for pattern (Setup done)" in errors(ctx.log)
    assert "Failed in" in errors(ctx.log)

    out = output(ctx.log)
    assert "Browser log:" in out
    assert "SEVERE boom\nat line 2" in out
    assert out.count("♪") == 2

    shot = ctx.config.screenshots_path / f"{screenshot_name(str(err))}.png"
    assert shot.is_file()

    fatal = [e for e in ctx.events.read() if e["event"] == "fatal"]
    assert fatal and fatal[0]["code"] == "watch_timeout"


def test_diagnostic_failures_do_not_block_cleanup(make_ctx) -> None:
    driver = FakeDriver()
    driver.log_error = RuntimeError("log endpoint gone")
    driver.screenshot_error = RuntimeError("no window")
    ctx = make_ctx(driver)
    ctx.ready_for_screenshot = True
    calls, ctx.cleanup = _counter()

    status = FailureController(ctx).fail(RuntimeError("phase exploded"))

    assert status == 1
    assert calls == [1]
    err = errors(ctx.log)
    assert "Could not get browser log: log endpoint gone" in err
    assert "Could not take failure screenshot" in err
    assert not ctx.config.screenshots_path.exists()


def test_no_driver_means_no_screenshot(make_ctx) -> None:
    ctx = make_ctx(None)
    status = FailureController(ctx).fail(RuntimeError("early"))

    assert status == 1
    assert "Taking failure screenshot" not in output(ctx.log)
    assert not ctx.config.screenshots_path.exists()


def test_cleanup_runs_once_across_success_and_failure(make_ctx) -> None:
    ctx = make_ctx(FakeDriver())
    calls, ctx.cleanup = _counter()
    controller = FailureController(ctx)

    assert controller.succeed() == 0
    assert controller.fail(RuntimeError("late crash")) == 1
    controller.run_cleanup()

    assert calls == [1]


def test_second_fatal_error_is_ignored(make_ctx) -> None:
    ctx = make_ctx(None)
    calls, ctx.cleanup = _counter()
    controller = FailureController(ctx)

    assert controller.fail(RuntimeError("first")) == 1
    assert controller.fail(RuntimeError("second")) == 1

    assert calls == [1]
    assert errors(ctx.log).count("Fatal error") == 1


def test_failing_cleanup_is_logged_and_not_retried(make_ctx) -> None:
    ctx = make_ctx(None)
    attempts: List[int] = []

    def _broken() -> None:
        attempts.append(1)
        raise OSError("kill failed")

    ctx.cleanup = CleanupOnce(_broken)
    controller = FailureController(ctx)
    assert controller.fail(RuntimeError("x")) == 1
    controller.run_cleanup()

    assert attempts == [1]
    assert "Cleanup failed" in errors(ctx.log)


def test_cleanup_once_under_concurrent_callers() -> None:
    calls: List[int] = []
    started = threading.Event()

    def _slow() -> None:
        started.set()
        time.sleep(0.05)
        calls.append(1)

    once = CleanupOnce(_slow)
    threads = [threading.Thread(target=once) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert calls == [1]
    assert once.ran is True


def test_screenshot_name_is_filesystem_safe() -> None:
    name = screenshot_name("phase_failed: install: element <a href='/x'> not clickable")
    assert "/" not in name and "<" not in name and ":" not in name
    assert name.startswith("phase_failed_ install_ element")
    assert screenshot_name("///") == "screenshot"
    assert len(screenshot_name("x" * 500)) == 120
