from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .console import format_duration
from .errors import SessionError
from .interfaces import RunContext, Session


logger = logging.getLogger("smoketest.session")

# attempt number (1-based) -> seconds to sleep before the next attempt
Backoff = Callable[[int], float]


def constant_backoff(seconds: float) -> Optional[Backoff]:
    if seconds <= 0:
        return None
    return lambda _attempt: seconds


class SessionNegotiator:
    """Open a WebDriver session, retrying until one is actually usable.

    A handshake alone is not enough: `verify` (the initial screenshot) must
    succeed too, otherwise the attempt counts as failed and the half-open
    session is released before the next try.
    """

    def __init__(
        self,
        ctx: RunContext,
        backoff: Optional[Backoff] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ctx = ctx
        self.backoff = backoff
        self._sleep = sleep

    def acquire(self, max_attempts: int, verify: Callable[[], object]) -> Session:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.ctx.driver is None:
            raise SessionError("no automation driver configured")

        log = self.ctx.log
        last_error: Optional[BaseException] = None
        for attempt in range(1, max_attempts + 1):
            log.logf(f"Creating a webdriver session (try #{attempt})")
            self.ctx.events.emit("session_attempt", attempt=attempt)
            try:
                return self._try_once(attempt, verify)
            except Exception as exc:
                last_error = exc
                log.logf(f"Could not create a webdriver session: {exc}")
                self.ctx.events.emit("session_attempt", attempt=attempt, ok=False, error=str(exc))

            if self.backoff is not None and attempt < max_attempts:
                delay = float(self.backoff(attempt))
                if delay > 0:
                    logger.debug("sleeping %.2fs before session attempt %d", delay, attempt + 1)
                    self._sleep(delay)

        log.logf("Could not create a webdriver session :( We tried..")
        raise SessionError(
            f"no webdriver session after {max_attempts} attempts: {last_error}",
            attempts=max_attempts,
        )

    def _try_once(self, attempt: int, verify: Callable[[], object]) -> Session:
        driver = self.ctx.driver
        if driver is None:
            raise SessionError("no automation driver configured")

        started = time.monotonic()
        session_id = driver.create_session()
        latency = time.monotonic() - started
        self.ctx.log.logf(f"Session {session_id} created in {format_duration(latency)}")

        self.ctx.ready_for_screenshot = True
        try:
            verify()
        except Exception:
            self.ctx.ready_for_screenshot = False
            self._discard_half_open()
            raise

        session = Session(
            session_id=str(session_id),
            created_at=time.time(),
            latency_s=latency,
            attempts=attempt,
        )
        self.ctx.session = session
        self.ctx.events.emit(
            "session_created",
            session_id=session.session_id,
            attempts=attempt,
            latency_s=round(latency, 3),
        )
        return session

    def _discard_half_open(self) -> None:
        try:
            self.ctx.driver.delete_session()
        except Exception as exc:
            logger.debug("could not release unverified session: %s", exc)

    def release(self) -> None:
        """Best-effort deletion of the negotiated session at end of run."""
        if self.ctx.driver is None or self.ctx.session is None:
            return
        try:
            self.ctx.driver.delete_session()
        except Exception as exc:
            self.ctx.log.errf(f"Could not delete webdriver session: {exc}")
        else:
            self.ctx.events.emit("session_deleted", session_id=self.ctx.session.session_id)
        self.ctx.ready_for_screenshot = False
        self.ctx.session = None
