from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .errors import PreconditionError


@dataclass
class Credentials:
    """Test account secrets, read from the environment only."""

    account_name: str = "itch-test-account"
    api_key: str = ""
    password: str = ""

    @classmethod
    def from_env(
        cls,
        env_prefix: str = "ITCH_",
        account_name: str = "itch-test-account",
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Credentials":
        env = os.environ if environ is None else environ
        return cls(
            account_name=account_name,
            api_key=str(env.get(f"{env_prefix}TEST_ACCOUNT_API_KEY", "") or ""),
            password=str(env.get(f"{env_prefix}TEST_ACCOUNT_PASSWORD", "") or ""),
        )

    def require(self) -> None:
        if not self.api_key:
            raise PreconditionError("API key not given via environment, stopping here")

    def __repr__(self) -> str:
        return f"Credentials(account_name={self.account_name!r}, api_key=***, password=***)"


@dataclass
class SmokeConfig:
    workdir: Path = field(default_factory=Path.cwd)
    prefix: str = "tmp"
    app_name: str = "itch"
    env_prefix: str = "ITCH_"

    driver_port: int = 9515
    driver_log_path: str = "chrome-driver.log.txt"
    driver_executable: Optional[str] = None
    app_binary: Optional[str] = None

    screenshots_dir: str = "screenshots"
    events_path: str = "smoke-events.jsonl"

    ready_pattern: str = "Setup done"
    ready_timeout_s: float = 60.0
    max_session_attempts: int = 5
    session_backoff_s: float = 0.0
    shutdown_grace_s: float = 10.0
    tail_poll_interval_s: float = 0.25
    step_timeout_s: float = 30.0

    bundle: bool = True
    account_name: str = "itch-test-account"
    phases: Optional[List[Dict[str, Any]]] = None

    @property
    def prefix_dir(self) -> Path:
        return self.workdir / self.prefix

    @property
    def app_log_path(self) -> Path:
        return self.prefix_dir / "prefix" / "userData" / "logs" / f"{self.app_name}.txt"

    @property
    def screenshots_path(self) -> Path:
        return self._resolve(self.screenshots_dir)

    @property
    def events_file(self) -> Path:
        return self._resolve(self.events_path)

    @property
    def driver_log_file(self) -> Path:
        return self._resolve(self.driver_log_path)

    @property
    def endpoint(self) -> str:
        return f"http://127.0.0.1:{self.driver_port}"

    def driver_args(self) -> list[str]:
        return [f"--port={self.driver_port}", f"--log-path={self.driver_log_file}"]

    def driver_env(self) -> Dict[str, str]:
        """Test-mode flags layered onto the inherited environment."""
        p = self.env_prefix
        return {
            f"{p}INTEGRATION_TESTS": "1",
            f"{p}LOG_LEVEL": "debug",
            f"{p}NO_STDOUT": "1",
        }

    def credentials(self, environ: Optional[Mapping[str, str]] = None) -> Credentials:
        return Credentials.from_env(self.env_prefix, self.account_name, environ=environ)

    def _resolve(self, rel: str) -> Path:
        p = Path(rel)
        return p if p.is_absolute() else self.workdir / p

    @classmethod
    def load(
        cls,
        path: Optional[Path] = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "SmokeConfig":
        env = os.environ if environ is None else environ
        data: Dict[str, Any] = {}
        if path is not None:
            raw = Path(path).read_text(encoding="utf-8")
            try:
                data = json.loads(raw)
            except ValueError as exc:
                raise SystemExit(f"Invalid JSON config: {path} ({exc})")
            if not isinstance(data, dict):
                raise SystemExit(f"Invalid config: {path} must hold a JSON object")

        data.update({k: v for k, v in overrides.items() if v is not None})

        if str(env.get("NO_BUNDLE", "")).strip() == "1":
            data["bundle"] = False

        defaults = cls()
        try:
            cfg = cls(
                workdir=Path(str(data.get("workdir") or defaults.workdir)).resolve(),
                prefix=str(data.get("prefix", defaults.prefix)),
                app_name=str(data.get("app_name", defaults.app_name)),
                env_prefix=str(data.get("env_prefix", defaults.env_prefix)),
                driver_port=int(data.get("driver_port", defaults.driver_port)),
                driver_log_path=str(data.get("driver_log_path", defaults.driver_log_path)),
                driver_executable=data.get("driver_executable") or None,
                app_binary=data.get("app_binary") or None,
                screenshots_dir=str(data.get("screenshots_dir", defaults.screenshots_dir)),
                events_path=str(data.get("events_path", defaults.events_path)),
                ready_pattern=str(data.get("ready_pattern", defaults.ready_pattern)),
                ready_timeout_s=float(data.get("ready_timeout_s", defaults.ready_timeout_s)),
                max_session_attempts=int(data.get("max_session_attempts", defaults.max_session_attempts)),
                session_backoff_s=float(data.get("session_backoff_s", defaults.session_backoff_s)),
                shutdown_grace_s=float(data.get("shutdown_grace_s", defaults.shutdown_grace_s)),
                tail_poll_interval_s=float(data.get("tail_poll_interval_s", defaults.tail_poll_interval_s)),
                step_timeout_s=float(data.get("step_timeout_s", defaults.step_timeout_s)),
                bundle=bool(data.get("bundle", defaults.bundle)),
                account_name=str(data.get("account_name", defaults.account_name)),
                phases=data.get("phases") or None,
            )
        except (TypeError, ValueError) as exc:
            raise SystemExit(f"Invalid config value ({exc})")

        if cfg.max_session_attempts < 1:
            raise SystemExit("Invalid config: max_session_attempts must be >= 1")
        if cfg.ready_timeout_s <= 0:
            raise SystemExit("Invalid config: ready_timeout_s must be > 0")
        return cfg
