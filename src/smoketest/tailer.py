from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional


logger = logging.getLogger("smoketest.tailer")


class LogTailer:
    """Follow a growing text file from the beginning, polling for new data.

    The file may not exist yet when tailing starts. Read errors close the
    handle and the file is reopened on the next poll at the same offset; a
    file that shrinks is read again from the start.
    """

    def __init__(
        self,
        path: Path,
        sink: Callable[[str], None],
        poll_interval_s: float = 0.25,
        encoding: str = "utf-8",
    ):
        self.path = Path(path)
        self.sink = sink
        self.poll_interval_s = max(0.01, float(poll_interval_s))
        self.encoding = encoding
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="log-tailer", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        for line in self.lines():
            self.sink(line)

    def lines(self) -> Iterator[str]:
        """Yield complete lines in file order until `stop()` is called."""
        fh: Optional[BinaryIO] = None
        offset = 0
        pending = b""
        try:
            while not self._stop.is_set():
                if fh is None:
                    fh = self._open(offset)
                    if fh is None:
                        self._stop.wait(self.poll_interval_s)
                        continue

                try:
                    size = self.path.stat().st_size
                    if size < offset:
                        logger.debug("%s shrank (%d < %d), rereading", self.path, size, offset)
                        fh.seek(0)
                        offset = 0
                        pending = b""
                    chunk = fh.read()
                except OSError as exc:
                    logger.debug("tail read failed on %s: %s", self.path, exc)
                    fh.close()
                    fh = None
                    self._stop.wait(self.poll_interval_s)
                    continue

                if not chunk:
                    self._stop.wait(self.poll_interval_s)
                    continue

                offset += len(chunk)
                pending += chunk
                *complete, pending = pending.split(b"\n")
                for raw in complete:
                    yield raw.rstrip(b"\r").decode(self.encoding, errors="replace")
        finally:
            if fh is not None:
                fh.close()

    def _open(self, offset: int) -> Optional[BinaryIO]:
        try:
            fh = open(self.path, "rb")
        except OSError:
            return None
        if offset:
            fh.seek(offset)
        return fh
