from __future__ import annotations

import os
import queue
import shutil
import subprocess
import threading
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .config import SmokeConfig
from .console import RunLogger
from .errors import PrepareError


def reset_workspace(cfg: SmokeConfig) -> None:
    """Remove the previous run's app prefix and screenshots."""
    for d in (cfg.prefix_dir, cfg.screenshots_path):
        shutil.rmtree(d, ignore_errors=True)


def bundle(cfg: SmokeConfig, log: RunLogger) -> None:
    log.logf("Bundling...")
    try:
        subprocess.run(["npm", "run", "compile"], cwd=str(cfg.workdir), env=dict(os.environ), check=True)
    except (OSError, subprocess.CalledProcessError) as exc:
        log.errf(f"Bundling failed: {exc}")
        raise PrepareError(f"bundling failed: {exc}") from exc
    log.logf("✓ Everything is bundled!")


def locate_driver(cfg: SmokeConfig, log: RunLogger) -> str:
    if cfg.driver_executable:
        exe = Path(cfg.driver_executable)
        if not exe.is_absolute():
            exe = cfg.workdir / exe
        if not exe.is_file():
            raise PrepareError(f"chromedriver not found at {exe}")
        found = str(exe)
    else:
        found = shutil.which("chromedriver") or ""
        if not found:
            raise PrepareError("chromedriver not found on PATH; set driver_executable")
    log.logf("✓ ChromeDriver is set up!")
    return found


def resolve_app_binary(cfg: SmokeConfig, log: RunLogger) -> str:
    """Path of the Electron binary that chromedriver should launch."""
    if cfg.app_binary:
        binary = cfg.app_binary
    else:
        try:
            out = subprocess.run(
                ["node", "-e", "console.log(require('electron'))"],
                cwd=str(cfg.workdir),
                capture_output=True,
                text=True,
                check=True,
            ).stdout
        except (OSError, subprocess.CalledProcessError) as exc:
            raise PrepareError(f"could not resolve electron binary: {exc}") from exc
        binary = out.strip()
        if not binary:
            raise PrepareError("node printed no electron path")

    try:
        shown = os.path.relpath(binary, cfg.workdir)
    except ValueError:
        shown = binary
    log.logf(f"Using electron: {shown}")
    return binary


def run_prep_tasks(cfg: SmokeConfig, log: RunLogger) -> str:
    """Locate chromedriver and (optionally) bundle, concurrently.

    Returns the chromedriver path; the first failure is raised once both
    tasks have finished.
    """
    done: "queue.Queue[Tuple[str, Optional[str], Optional[BaseException]]]" = queue.Queue()

    def _task(name: str, fn: Callable[[], Optional[str]]) -> None:
        try:
            done.put((name, fn(), None))
        except BaseException as exc:
            done.put((name, None, exc))

    tasks: List[Tuple[str, Callable[[], Optional[str]]]] = [("driver", lambda: locate_driver(cfg, log))]
    if cfg.bundle:
        tasks.append(("bundle", lambda: bundle(cfg, log)))

    for name, fn in tasks:
        threading.Thread(target=_task, args=(name, fn), name=f"prep-{name}", daemon=True).start()

    driver_path = ""
    first_error: Optional[BaseException] = None
    for _ in tasks:
        name, value, err = done.get()
        if err is not None and first_error is None:
            first_error = err
        if name == "driver" and value:
            driver_path = value
    if first_error is not None:
        raise first_error
    return driver_path
