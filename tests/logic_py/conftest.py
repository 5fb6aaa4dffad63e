from __future__ import annotations

from pathlib import Path

import pytest

from saltsolo import main as main_cli


@pytest.fixture(autouse=True)
def isolate_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(main_cli.CONFIG_ENV_VAR, raising=False)


@pytest.fixture
def kitchen_root(tmp_path: Path) -> Path:
    root = tmp_path / "kitchen"
    formula = root / "nginx"
    formula.mkdir(parents=True)
    (formula / "init.sls").write_text("nginx:\n  pkg.installed: []\n", encoding="utf-8")
    return root

