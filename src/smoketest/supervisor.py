from __future__ import annotations

import logging
import os
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from .console import RunLogger
from .errors import CrashError, LaunchError
from .jsonlog import EventLog


logger = logging.getLogger("smoketest.supervisor")

CrashCallback = Callable[[CrashError], None]


@dataclass(eq=False)
class ProcessHandle:
    name: str
    executable: str
    args: List[str]
    env_overrides: Dict[str, str]
    proc: subprocess.Popen
    cancel_requested: threading.Event = field(default_factory=threading.Event)
    exited: threading.Event = field(default_factory=threading.Event)
    returncode: Optional[int] = None
    crashed: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock)

    @property
    def pid(self) -> int:
        return int(self.proc.pid)

    @property
    def running(self) -> bool:
        return not self.exited.is_set()

    def _settle(self, returncode: Optional[int]) -> bool:
        """Record the terminal state; True only for the first caller."""
        with self._lock:
            if self.exited.is_set():
                return False
            self.returncode = returncode
            self.crashed = not self.cancel_requested.is_set()
            self.exited.set()
            return True


class ProcessSupervisor:
    """Start the automation driver, notice when it dies, stop it on request.

    An exit not preceded by `shutdown()` is a crash: it is reported once via
    the crash callback and never raised from the watcher thread itself.
    """

    def __init__(
        self,
        log: Optional[RunLogger] = None,
        events: Optional[EventLog] = None,
        grace_s: float = 10.0,
    ):
        self.log = log
        self.events = events
        self.grace_s = float(grace_s)

    def _logf(self, msg: str) -> None:
        if self.log is not None:
            self.log.logf(msg)
        else:
            logger.info(msg)

    def start(
        self,
        executable: str,
        args: Sequence[str] = (),
        env_overrides: Optional[Mapping[str, str]] = None,
        *,
        name: str = "chrome-driver",
        on_crash: Optional[CrashCallback] = None,
    ) -> ProcessHandle:
        overrides = {str(k): str(v) for k, v in (env_overrides or {}).items()}
        env = dict(os.environ)
        env.update(overrides)
        cmd = [str(executable), *[str(a) for a in args]]
        try:
            proc = subprocess.Popen(
                cmd,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise LaunchError(
                f"could not start {name}: {exc}",
                details={"executable": str(executable), "args": list(cmd[1:])},
            ) from exc

        handle = ProcessHandle(
            name=name,
            executable=str(executable),
            args=cmd[1:],
            env_overrides=overrides,
            proc=proc,
        )
        self._logf(f"{name} started, pid = {handle.pid}")
        if self.events is not None:
            self.events.emit("driver_started", name=name, pid=handle.pid, args=handle.args)

        if on_crash is not None:
            self.await_crash(handle, on_crash)
        return handle

    def await_crash(self, handle: ProcessHandle, on_crash: CrashCallback) -> threading.Thread:
        def _watch() -> None:
            rc = handle.proc.wait()
            if not handle._settle(rc) or not handle.crashed:
                logger.debug("%s exited with %s after shutdown request", handle.name, rc)
                return
            err = CrashError(
                f"{handle.name} crashed: exit status {rc}",
                returncode=rc,
                details={"pid": handle.pid},
            )
            self._logf(f"{handle.name} crashed: exit status {rc}")
            if self.events is not None:
                self.events.emit("driver_crashed", name=handle.name, pid=handle.pid, returncode=rc, ok=False)
            on_crash(err)

        t = threading.Thread(target=_watch, name=f"{handle.name}-watch", daemon=True)
        t.start()
        return t

    def shutdown(self, handle: ProcessHandle) -> Optional[int]:
        """Request termination, escalate to kill after the grace period, wait."""
        with handle._lock:
            handle.cancel_requested.set()

        if handle.proc.poll() is None:
            self._logf(f"cancelling {handle.name} context...")
            try:
                handle.proc.terminate()
            except OSError as exc:
                logger.debug("terminate %s failed: %s", handle.name, exc)

        self._logf(f"waiting on {handle.name}")
        try:
            rc = handle.proc.wait(timeout=self.grace_s)
        except subprocess.TimeoutExpired:
            logger.warning("%s ignored terminate for %.1fs, killing", handle.name, self.grace_s)
            handle.proc.kill()
            rc = handle.proc.wait()
        handle._settle(rc)

        if rc:
            self._logf(f"{handle.name} wait error: exit status {rc}")
        else:
            self._logf(f"{handle.name} waited without problems")
        return rc
