from __future__ import annotations

from pathlib import Path

import pytest

from src.smoketest import cli


def test_missing_config_file_exits(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        cli.main(["--config", str(tmp_path / "nope.json"), "--workdir", str(tmp_path)])


def test_no_api_key_exits_nonzero_without_launching(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ITCH_TEST_ACCOUNT_API_KEY", raising=False)
    log_file = tmp_path / "run.log"

    status = cli.main(["--workdir", str(tmp_path), "--no-bundle", "--log-file", str(log_file)])

    assert status == 1
    assert not (tmp_path / "tmp").exists()
    assert "API key not given" in log_file.read_text(encoding="utf-8")
    assert (tmp_path / "smoke-events.jsonl").is_file()
