from __future__ import annotations

import atexit
import logging
import queue
import threading
import time
from typing import Callable, Mapping, Optional, Sequence, Tuple

from .config import SmokeConfig
from .console import RunLogger, format_duration
from .driver import AutomationDriver, SeleniumDriver
from .errors import SmokeError
from .failure import CleanupOnce, FailureController, describe
from .interfaces import Phase, RunContext
from .jsonlog import EventLog
from .logwatch import LogWatchRegistry
from .phases import PhaseSequencer, phases_from_config
from .prepare import reset_workspace, resolve_app_binary, run_prep_tasks
from .screenshots import take_screenshot
from .session import SessionNegotiator, constant_backoff
from .supervisor import ProcessHandle, ProcessSupervisor
from .tailer import LogTailer


logger = logging.getLogger("smoketest.runner")

DriverFactory = Callable[[SmokeConfig, str], AutomationDriver]
Outcome = Tuple[str, Optional[BaseException]]


def selenium_driver_factory(cfg: SmokeConfig, app_binary: str) -> AutomationDriver:
    return SeleniumDriver(cfg.endpoint, app_binary, app_args=[f"app={cfg.workdir}"])


class SmokeRunner:
    """Owns one smoke run from precondition check to exit status.

    The scripted flow runs on a worker thread. It and the driver's crash
    watcher both report a terminal outcome to one queue; `run()` acts on the
    first outcome it receives, so a crash cuts the flow short even while it is
    blocked waiting on a log line or a session handshake.
    """

    def __init__(
        self,
        config: SmokeConfig,
        *,
        log: Optional[RunLogger] = None,
        events: Optional[EventLog] = None,
        environ: Optional[Mapping[str, str]] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        driver_factory: DriverFactory = selenium_driver_factory,
        phases: Optional[Sequence[Phase]] = None,
        prepare: Callable[[SmokeConfig, RunLogger], str] = run_prep_tasks,
        resolve_binary: Callable[[SmokeConfig, RunLogger], str] = resolve_app_binary,
        register_atexit: bool = True,
    ):
        self.config = config
        self.log = log or RunLogger()
        self.events = events or EventLog(config.events_file)
        self.ctx = RunContext(
            config=config,
            log=self.log,
            events=self.events,
            credentials=config.credentials(environ),
        )
        self.supervisor = supervisor or ProcessSupervisor(self.log, self.events, grace_s=config.shutdown_grace_s)
        self.driver_factory = driver_factory
        self.phases = list(phases) if phases is not None else phases_from_config(config.phases)
        self.prepare = prepare
        self.resolve_binary = resolve_binary
        self.register_atexit = register_atexit

        self.controller = FailureController(self.ctx)
        self.negotiator = SessionNegotiator(self.ctx, backoff=constant_backoff(config.session_backoff_s))
        self.registry = LogWatchRegistry(display=self.log.app_line, on_seen=self.log.logf, events=self.events)
        self.tailer: Optional[LogTailer] = None
        self.handle: Optional[ProcessHandle] = None
        self._outcomes: "queue.Queue[Outcome]" = queue.Queue()

    def run(self) -> int:
        ctx = self.ctx
        ctx.events.emit("run_started", workdir=str(self.config.workdir))
        try:
            ctx.credentials.require()
        except SmokeError as exc:
            return self._finish(self.controller.fail(exc))

        worker = threading.Thread(target=self._work, name="smoke-main", daemon=True)
        worker.start()

        kind, err = self._next_outcome(worker)
        if kind == "done":
            self.negotiator.release()
            return self._finish(self.controller.succeed())
        return self._finish(self.controller.fail(err or SmokeError("run ended without an outcome")))

    def _next_outcome(self, worker: threading.Thread) -> Outcome:
        try:
            while True:
                try:
                    return self._outcomes.get(timeout=0.5)
                except queue.Empty:
                    if worker.is_alive():
                        continue
                # The worker may have posted between the timeout and the liveness check.
                try:
                    return self._outcomes.get_nowait()
                except queue.Empty:
                    return ("error", SmokeError("main flow stopped without an outcome", code="aborted"))
        except KeyboardInterrupt:
            return ("error", SmokeError("interrupted by user", code="interrupted"))

    def _finish(self, status: int) -> int:
        self.ctx.events.emit(
            "run_finished",
            status=status,
            total_s=round(self.ctx.since_boot(), 3),
            failures=self.events.failure_counts(),
        )
        return status

    def _post_crash(self, err: SmokeError) -> None:
        self._outcomes.put(("crash", err))

    def _work(self) -> None:
        try:
            self._main_flow()
        except Exception as exc:
            logger.debug("main flow failed: %s", describe(exc))
            self._outcomes.put(("error", exc))
            return
        except BaseException as exc:
            # SystemExit raised inside a phase or the driver client still ends the run through fail().
            err = SmokeError(f"main flow aborted: {describe(exc)}", code="aborted")
            err.__cause__ = exc
            self._outcomes.put(("error", err))
            return
        self._outcomes.put(("done", None))

    def _main_flow(self) -> None:
        ctx = self.ctx
        cfg = self.config

        reset_workspace(cfg)
        driver_exe = self.prepare(cfg, ctx.log)

        ctx.cleanup = CleanupOnce(self._cleanup)
        if self.register_atexit:
            atexit.register(ctx.cleanup)

        ready = self.registry.register(cfg.ready_pattern)
        self.tailer = LogTailer(cfg.app_log_path, self.registry.on_line, cfg.tail_poll_interval_s)
        self.tailer.start()

        self.handle = self.supervisor.start(
            driver_exe,
            cfg.driver_args(),
            cfg.driver_env(),
            on_crash=self._post_crash,
        )

        app_binary = self.resolve_binary(cfg, ctx.log)
        ctx.driver = self.driver_factory(cfg, app_binary)

        self.negotiator.acquire(cfg.max_session_attempts, verify=lambda: take_screenshot(ctx, "initial"))

        ctx.log.logf("Waiting for setup to be done...")
        self.registry.wait(ready, cfg.ready_timeout_s)
        ctx.test_started_at = time.monotonic()

        PhaseSequencer(self.phases).run(ctx)

        ctx.log.logf(f"Succeeded in {format_duration(ctx.since_test_start())}")
        ctx.log.logf(f"Total time {format_duration(ctx.since_boot())}")

        ctx.log.logf("Taking final screenshot")
        try:
            take_screenshot(ctx, "final")
        except Exception as exc:
            ctx.log.errf(f"Could not take final screenshot: {exc}")

    def _cleanup(self) -> None:
        ctx = self.ctx
        # On success the session is already deleted, and quit() closed its windows.
        if ctx.driver is not None and ctx.driver.session_id is not None:
            ctx.log.logf("closing chrome-driver window...")
            try:
                ctx.driver.close_window()
            except Exception as exc:
                ctx.log.errf(f"Could not close chrome-driver window: {exc}")
        if self.handle is not None:
            self.supervisor.shutdown(self.handle)
        if self.tailer is not None:
            self.tailer.stop()
