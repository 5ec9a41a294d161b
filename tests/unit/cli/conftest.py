"""CLI test isolation: no real config files, no DIFFSCOPE_* env leakage."""

from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _isolated_cli(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(
        "diffscope.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global" / "config.yaml"
    )
    for var in ("DIFFSCOPE_EMBEDDING_MODEL", "DIFFSCOPE_REVIEW_MODEL", "DIFFSCOPE_DB"):
        monkeypatch.delenv(var, raising=False)
