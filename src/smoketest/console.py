from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console


STAMP_FORMAT = "%H:%M:%S"
RULER = "=" * 66


def timestamp() -> str:
    now = datetime.now()
    return now.strftime(STAMP_FORMAT) + f".{now.microsecond // 1000:03d}"


def format_stamp_ms(ms: float) -> str:
    """Render a millisecond epoch timestamp as HH:MM:SS.fff local time."""
    dt = datetime.fromtimestamp(float(ms) / 1000.0)
    return dt.strftime(STAMP_FORMAT) + f".{dt.microsecond // 1000:03d}"


def format_duration(seconds: float) -> str:
    if seconds < 1.0:
        return f"{seconds * 1000:.1f}ms"
    if seconds < 60.0:
        return f"{seconds:.3f}s"
    minutes, rest = divmod(seconds, 60.0)
    return f"{int(minutes)}m{rest:.3f}s"


class RunLogger:
    """Console sinks for a smoke run.

    Every line goes to a rich console and, when `logfile` is set, is appended
    to that file with a timestamp. Separate consoles keep errors on stderr.
    """

    def __init__(
        self,
        logfile: Optional[Path] = None,
        out: Optional[Console] = None,
        err: Optional[Console] = None,
    ):
        self.logfile = logfile
        if self.logfile is not None:
            self.logfile.parent.mkdir(parents=True, exist_ok=True)
        self.out = out or Console(highlight=False)
        self.err = err or Console(stderr=True, highlight=False)
        self._lock = threading.Lock()

    def _append(self, line: str) -> None:
        if self.logfile is None:
            return
        try:
            with self._lock:
                with open(self.logfile, "a", encoding="utf-8") as f:
                    f.write(f"[{timestamp()}] {line}\n")
        except OSError:
            pass

    def logf(self, msg: str) -> None:
        line = f"• {msg}"
        self._append(line)
        self.out.print(f"{timestamp()} {line}", markup=False, emoji=False, soft_wrap=True)

    def errf(self, msg: str) -> None:
        line = f"❌ {msg}"
        self._append(line)
        self.err.print(f"{timestamp()} {line}", markup=False, emoji=False, soft_wrap=True)

    def app_line(self, text: str) -> None:
        line = f"★ {text}"
        self._append(line)
        self.out.print(line, markup=False, emoji=False, soft_wrap=True)

    def browser_entry(self, stamp_ms: float, level: str, message: str) -> None:
        text = message.replace("\\n", "\n")
        line = f"♪ {format_stamp_ms(stamp_ms)} {level} {text}"
        self._append(line)
        self.out.print(line, markup=False, emoji=False, soft_wrap=True)

    def banner(self, msg: str) -> None:
        for line in (RULER, msg, RULER):
            self._append(line)
            self.err.print(f"{timestamp()} {line}", markup=False, emoji=False, soft_wrap=True, style="bold red")

