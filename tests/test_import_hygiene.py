from __future__ import annotations

import re
from pathlib import Path


_IMPORT_RE = re.compile(r"^\s*(from|import)\s+selenium\b", re.MULTILINE)


def _iter_python_files(root: Path) -> list[Path]:
    if not root.exists():
        return []
    return [p for p in root.rglob("*.py") if p.is_file()]


def test_selenium_is_only_imported_by_the_driver_adapter() -> None:
    """Keep the webdriver client behind src.smoketest.driver.

    Everything else talks to `AutomationDriver`, so the run loop, phases and
    failure handling stay testable without a browser.
    """

    repo_root = Path(__file__).resolve().parents[1]
    allowed = Path("src", "smoketest", "driver.py")

    offenders: list[tuple[Path, int, str]] = []

    for path in _iter_python_files(repo_root / "src"):
        rel = path.relative_to(repo_root)
        if rel == allowed:
            continue

        text = path.read_text(encoding="utf-8", errors="replace")
        for match in _IMPORT_RE.finditer(text):
            line_no = text.count("\n", 0, match.start()) + 1
            line = text.splitlines()[line_no - 1]
            offenders.append((rel, line_no, line.strip()))

    if offenders:
        formatted = "\n".join(
            f"- {p.as_posix()}:{line_no}: {line}" for p, line_no, line in offenders
        )
        raise AssertionError(
            "Direct imports from 'selenium' are forbidden outside the driver adapter. "
            "Go through 'src.smoketest.driver' instead.\n" + formatted
        )
