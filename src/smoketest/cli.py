from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .config import SmokeConfig
from .console import RunLogger
from .runner import SmokeRunner


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="End-to-end smoke test for the desktop app")
    parser.add_argument("--config", type=str, default=None, help="Optional JSON config file")
    parser.add_argument("--workdir", type=str, default=None, help="App checkout to test (default: cwd)")
    parser.add_argument("--port", type=int, default=None, help="chromedriver port")
    parser.add_argument("--chromedriver", type=str, default=None, help="chromedriver executable")
    parser.add_argument("--ready-timeout-s", type=float, default=None)
    parser.add_argument("--max-session-attempts", type=int, default=None)
    parser.add_argument("--no-bundle", action="store_true", help="Skip `npm run compile` (same as NO_BUNDLE=1)")
    parser.add_argument("--log-file", type=str, default=None, help="Also append run output to this file")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    cfg_path = Path(args.config) if args.config else None
    if cfg_path is not None and not cfg_path.is_file():
        raise SystemExit(f"Config not found: {cfg_path}")

    cfg = SmokeConfig.load(
        cfg_path,
        workdir=args.workdir,
        driver_port=args.port,
        driver_executable=args.chromedriver,
        ready_timeout_s=args.ready_timeout_s,
        max_session_attempts=args.max_session_attempts,
        bundle=False if args.no_bundle else None,
    )

    log = RunLogger(logfile=Path(args.log_file) if args.log_file else None)
    return SmokeRunner(cfg, log=log).run()


if __name__ == "__main__":
    raise SystemExit(main())
