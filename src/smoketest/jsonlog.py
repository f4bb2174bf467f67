from __future__ import annotations
from pathlib import Path
from typing import Any, Dict
from collections import Counter
import json
import time
import threading


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime()) + f".{int((time.time()%1)*1000):03d}"


class EventLog:
    """Append-only JSONL record of what happened during a smoke run."""

    def __init__(self, file_path: Path):
        self.file_path = file_path
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._failures: Counter = Counter()

    def emit(self, event: str, **data: Any) -> None:
        rec: Dict[str, Any] = {
            "ts": _now_iso(),
            "event": event,
            **data,
        }
        line = json.dumps(rec, ensure_ascii=False, separators=(",", ":"), default=str)
        try:
            with self._lock:
                with open(self.file_path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError:
            # Best-effort; never take the run down over the event log
            pass

        if data.get("ok") is False or event in {"fatal", "watch_timeout"}:
            with self._lock:
                self._failures[event] += 1

    def failure_counts(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._failures)

    def read(self) -> list[Dict[str, Any]]:
        """Load every event written so far (used by reports and tests)."""
        if not self.file_path.exists():
            return []
        out = []
        for raw in self.file_path.read_text(encoding="utf-8").splitlines():
            raw = raw.strip()
            if raw:
                out.append(json.loads(raw))
        return out
