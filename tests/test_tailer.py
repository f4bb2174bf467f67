from __future__ import annotations

from pathlib import Path
from typing import List

from conftest import wait_until
from src.smoketest.logwatch import LogWatchRegistry
from src.smoketest.tailer import LogTailer


def _append(path: Path, text: str) -> None:
    with open(path, "a", encoding="utf-8") as f:
        f.write(text)


def test_tailer_waits_for_missing_file_then_follows_in_order(tmp_path: Path) -> None:
    path = tmp_path / "prefix" / "userData" / "logs" / "itch.txt"
    lines: List[str] = []
    tailer = LogTailer(path, lines.append, poll_interval_s=0.01)
    tailer.start()
    try:
        assert tailer.running
        path.parent.mkdir(parents=True)
        _append(path, "first\nsecond\n")
        assert wait_until(lambda: len(lines) == 2)

        _append(path, "third\n")
        assert wait_until(lambda: len(lines) == 3)
    finally:
        tailer.stop()

    assert lines == ["first", "second", "third"]


def test_partial_line_is_held_until_newline(tmp_path: Path) -> None:
    path = tmp_path / "app.txt"
    path.write_text("", encoding="utf-8")
    lines: List[str] = []
    tailer = LogTailer(path, lines.append, poll_interval_s=0.01)
    tailer.start()
    try:
        _append(path, "Setup ")
        assert not wait_until(lambda: bool(lines), timeout=0.1)
        _append(path, "done\r\n")
        assert wait_until(lambda: lines == ["Setup done"])
    finally:
        tailer.stop()


def test_truncated_file_is_read_again(tmp_path: Path) -> None:
    path = tmp_path / "app.txt"
    path.write_text("one line that is fairly long\n", encoding="utf-8")
    lines: List[str] = []
    tailer = LogTailer(path, lines.append, poll_interval_s=0.01)
    tailer.start()
    try:
        assert wait_until(lambda: len(lines) == 1)
        path.write_text("short\n", encoding="utf-8")
        assert wait_until(lambda: len(lines) == 2)
    finally:
        tailer.stop()
    assert lines[-1] == "short"


def test_tailer_feeds_registry(tmp_path: Path) -> None:
    path = tmp_path / "itch.txt"
    reg = LogWatchRegistry()
    ready = reg.register("Setup done")
    tailer = LogTailer(path, reg.on_line, poll_interval_s=0.01)
    tailer.start()
    try:
        _append(path, "boot\nSetup done\n")
        assert reg.wait(ready, timeout=2.0) == "Setup done"
    finally:
        tailer.stop()
    assert not tailer.running
