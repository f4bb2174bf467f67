from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from string import Template
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import PhaseError, SmokeError
from .interfaces import Phase, RunContext
from .screenshots import take_screenshot


logger = logging.getLogger("smoketest.phases")

STEP_OPS = {"wait", "click", "type", "screenshot", "pause"}


@dataclass(frozen=True)
class Step:
    op: str
    selector: str = ""
    text: str = ""
    timeout_s: Optional[float] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Step":
        op = str(raw.get("op", ""))
        if op not in STEP_OPS:
            raise ValueError(f"unknown step op {op!r}")
        timeout = raw.get("timeout_s")
        return cls(
            op=op,
            selector=str(raw.get("selector", "")),
            text=str(raw.get("text", "")),
            timeout_s=float(timeout) if timeout is not None else None,
        )


@dataclass
class ScriptedPhase(Phase):
    """A phase that is nothing but a list of driver calls.

    `text` of a `type` step may reference $account_name, $password and
    $api_key; values come from the run's credentials.
    """

    name: str
    steps: List[Step] = field(default_factory=list)

    def run(self, ctx: RunContext) -> None:
        driver = ctx.driver
        if driver is None:
            raise PhaseError(f"{self.name}: no automation driver", phase=self.name)

        default_timeout = ctx.config.step_timeout_s
        values = {
            "account_name": ctx.credentials.account_name,
            "password": ctx.credentials.password,
            "api_key": ctx.credentials.api_key,
        }
        for i, step in enumerate(self.steps):
            timeout = step.timeout_s if step.timeout_s is not None else default_timeout
            logger.debug("%s step %d: %s %s", self.name, i, step.op, step.selector)
            if step.op == "wait":
                driver.wait_for(step.selector, timeout)
            elif step.op == "click":
                driver.click(step.selector, timeout)
            elif step.op == "type":
                driver.type_text(step.selector, Template(step.text).safe_substitute(values), timeout)
            elif step.op == "screenshot":
                take_screenshot(ctx, step.text or f"{self.name}-{i}")
            elif step.op == "pause":
                time.sleep(timeout)
            else:
                raise PhaseError(f"{self.name}: unknown step op {step.op!r}", phase=self.name)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ScriptedPhase":
        name = str(raw.get("name") or "")
        if not name:
            raise ValueError("phase needs a name")
        return cls(name=name, steps=[Step.from_dict(s) for s in raw.get("steps") or []])


def default_phases() -> List[Phase]:
    """prepare -> navigate -> install -> login, in that order."""
    return [
        ScriptedPhase(
            "prepare",
            [
                Step("wait", "#app"),
                Step("wait", ".status-bar"),
            ],
        ),
        ScriptedPhase(
            "navigate",
            [
                Step("click", ".sidebar .item-featured"),
                Step("wait", ".meat-tab.visible"),
                Step("click", ".sidebar .item-library"),
                Step("wait", ".meat-tab.visible"),
            ],
        ),
        ScriptedPhase(
            "install",
            [
                Step("type", "#search-input", "$account_name"),
                Step("click", ".search-results .result"),
                Step("click", ".main-action.install", timeout_s=60.0),
                Step("wait", ".main-action.launch", timeout_s=120.0),
            ],
        ),
        ScriptedPhase(
            "login",
            [
                Step("click", ".sidebar .item-login"),
                Step("type", "#login-username", "$account_name"),
                Step("type", "#login-password", "$password"),
                Step("click", "#login-button"),
                Step("wait", ".user-menu", timeout_s=60.0),
            ],
        ),
    ]


def phases_from_config(raw: Optional[Sequence[Mapping[str, Any]]]) -> List[Phase]:
    if not raw:
        return default_phases()
    return [ScriptedPhase.from_dict(p) for p in raw]


class PhaseSequencer:
    def __init__(self, phases: Sequence[Phase]):
        self.phases = list(phases)

    def run(self, ctx: RunContext) -> List[Dict[str, Any]]:
        """Run every phase in order; the first failure propagates."""
        results: List[Dict[str, Any]] = []
        for phase in self.phases:
            name = getattr(phase, "name", "?")
            ctx.log.logf(f"Running phase {name}")
            ctx.events.emit("phase_started", phase=name)
            started = time.perf_counter()
            try:
                phase.run(ctx)
            except SmokeError:
                elapsed_ms = int((time.perf_counter() - started) * 1000)
                ctx.events.emit("phase_done", phase=name, ok=False, elapsed_ms=elapsed_ms)
                raise
            except Exception as exc:
                elapsed_ms = int((time.perf_counter() - started) * 1000)
                ctx.events.emit("phase_done", phase=name, ok=False, elapsed_ms=elapsed_ms)
                raise PhaseError(f"{name}: {exc}", phase=name) from exc

            elapsed_ms = int((time.perf_counter() - started) * 1000)
            ctx.events.emit("phase_done", phase=name, ok=True, elapsed_ms=elapsed_ms)
            results.append({"phase": name, "elapsed_ms": elapsed_ms})
        return results
