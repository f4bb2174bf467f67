"""Block synchronous code until the application log prints a given pattern.

A watch is registered before the action that should produce the line, then
waited on. Lines arrive from the tailer thread through `on_line`; each watch
fires at most once and leaves the active set in the same locked step.
"""

from __future__ import annotations

import logging
import queue
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Pattern, Union

from .errors import InvalidPatternError, WatchTimeoutError
from .jsonlog import EventLog


logger = logging.getLogger("smoketest.logwatch")

LineSink = Callable[[str], None]


@dataclass(eq=False)
class LogWatch:
    pattern: Pattern[str]
    # Capacity 1: a watch is signaled at most once.
    signal: "queue.Queue[str]" = field(default_factory=lambda: queue.Queue(maxsize=1))
    created_at: float = field(default_factory=time.monotonic)

    @property
    def expr(self) -> str:
        return self.pattern.pattern


class LogWatchRegistry:
    def __init__(
        self,
        display: Optional[LineSink] = None,
        on_seen: Optional[Callable[[str], None]] = None,
        events: Optional[EventLog] = None,
    ):
        self._watches: List[LogWatch] = []
        self._lock = threading.Lock()
        self._display = display
        self._on_seen = on_seen
        self._events = events

    def register(self, pattern: Union[str, Pattern[str]]) -> LogWatch:
        if isinstance(pattern, str):
            try:
                compiled = re.compile(pattern)
            except re.error as exc:
                raise InvalidPatternError(f"invalid log pattern {pattern!r}: {exc}") from exc
        else:
            compiled = pattern
        watch = LogWatch(pattern=compiled)
        with self._lock:
            self._watches.append(watch)
        logger.debug("registered watch for %r", compiled.pattern)
        return watch

    def on_line(self, text: str) -> None:
        with self._lock:
            matched = [w for w in self._watches if w.pattern.search(text)]
            if matched:
                self._watches = [w for w in self._watches if w not in matched]
                for w in matched:
                    w.signal.put_nowait(text)

        for w in matched:
            if self._events is not None:
                self._events.emit("watch_matched", pattern=w.expr, line=text)

        if self._display is not None:
            self._display(text)

    def discard(self, watch: LogWatch) -> bool:
        """Drop a watch that is no longer waited on. False if it already fired."""
        with self._lock:
            if watch in self._watches:
                self._watches = [w for w in self._watches if w is not watch]
                return True
            return False

    def active(self) -> List[LogWatch]:
        with self._lock:
            return list(self._watches)

    def wait(self, watch: LogWatch, timeout: float) -> str:
        """Block until `watch` fires; returns the matching line.

        A timed-out watch is removed from the registry so a late line cannot
        signal into an abandoned channel.
        """
        started = time.monotonic()
        try:
            line = watch.signal.get(timeout=timeout)
        except queue.Empty:
            if self.discard(watch):
                elapsed = time.monotonic() - started
                if self._events is not None:
                    self._events.emit("watch_timeout", pattern=watch.expr, elapsed_s=round(elapsed, 3))
                raise WatchTimeoutError(pattern=watch.expr, elapsed_s=elapsed)
            # Matched between the deadline and the discard.
            line = watch.signal.get_nowait()

        if self._on_seen is not None:
            self._on_seen(f"Saw pattern ({watch.expr})")
        return line
