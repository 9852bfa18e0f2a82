# ruff: noqa: E402

import builtins
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import lbrbuild.io as io
import lbrbuild.log as lbr_log
import lbrbuild.paths as paths


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path_factory) -> None:
    installed = tmp_path_factory.mktemp("installed") / paths.INSTALLED_CONFIG_FILENAME
    monkeypatch.setattr(paths, "installed_config_path", lambda: installed)
    monkeypatch.setattr(io, "_use_questionary", lambda: False)
    monkeypatch.setattr(lbr_log, "_configured_level", None)
    monkeypatch.setattr(lbr_log, "_no_color", None)
    monkeypatch.delenv("LBRBUILD_LOG_LEVEL", raising=False)

    def fail_input(prompt: str = "") -> str:
        raise AssertionError("prompted unexpectedly")

    monkeypatch.setattr(builtins, "input", fail_input)
