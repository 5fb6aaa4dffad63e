from __future__ import annotations

import argparse
import json
import shlex
import sys
from pathlib import Path

import pytest

from saltsolo import main as main_cli


def _write_config(tmp_path: Path, kitchen_root: Path, extra: str = "") -> Path:
    config_file = tmp_path / ".kitchen.yml"
    config_file.write_text(
        "provisioner:\n"
        "  name: salt_solo\n"
        f"  kitchen_root: {kitchen_root}\n"
        "  formula_name: nginx\n" + extra,
        encoding="utf-8",
    )
    return config_file


def test_parse_run_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["saltsolo", "run"])
    args = main_cli.parse_args()
    assert args.command == "run"
    assert args.installed_version == ""
    assert args.config == ""
    assert args.handler is main_cli._handle_run


def test_parse_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(main_cli.CONFIG_ENV_VAR, "/etc/saltsolo.yml")
    monkeypatch.setattr(sys, "argv", ["saltsolo", "install"])
    args = main_cli.parse_args()
    assert args.config == "/etc/saltsolo.yml"


def test_parse_overrides_as_yaml(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        sys,
        "argv",
        ["saltsolo", "--set", "sudo=false", "--set", "requested_version=2015.5.3", "init"],
    )
    args = main_cli.parse_args()
    assert args.overrides == [("sudo", False), ("requested_version", "2015.5.3")]


def test_string_overrides_are_not_parsed_as_yaml(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "saltsolo",
            "--set",
            "requested_version=2016.10",
            "--set",
            "formula_name=nginx",
            "--set",
            "copy_filter=[.git]",
            "run",
        ],
    )
    args = main_cli.parse_args()
    assert args.overrides == [
        ("requested_version", "2016.10"),
        ("formula_name", "nginx"),
        ("copy_filter", [".git"]),
    ]
    assert main_cli._load_provisioner(args).config.requested_version == "2016.10"


def test_parse_rejects_malformed_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["saltsolo", "--set", "novalue", "init"])
    with pytest.raises(SystemExit):
        main_cli.parse_args()


def test_parse_requires_command(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["saltsolo"])
    with pytest.raises(SystemExit):
        main_cli.parse_args()


def test_main_prints_install_script(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path, kitchen_root: Path
) -> None:
    config_file = _write_config(tmp_path, kitchen_root, "  requested_version: 2015.5.3\n")
    monkeypatch.setattr(sys, "argv", ["saltsolo", "--config", str(config_file), "install"])
    main_cli.main()
    out = capsys.readouterr().out
    assert out.startswith("sh -c ")
    assert "-P git v2015.5.3" in shlex.split(out)[2]


def test_main_cli_override_wins_over_file(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path, kitchen_root: Path
) -> None:
    config_file = _write_config(tmp_path, kitchen_root)
    monkeypatch.setattr(
        sys,
        "argv",
        ["saltsolo", "--config", str(config_file), "--set", "root_path=/var/kitchen", "init"],
    )
    main_cli.main()
    assert capsys.readouterr().out.strip() == "sudo -E rm -rf /var/kitchen ; mkdir -p /var/kitchen"


def test_main_writes_sandbox(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path, kitchen_root: Path
) -> None:
    config_file = _write_config(tmp_path, kitchen_root)
    sandbox_dir = tmp_path / "sandbox"
    monkeypatch.setattr(sys, "argv", ["saltsolo", "--config", str(config_file), "sandbox", str(sandbox_dir)])
    main_cli.main()
    assert f"Sandbox ready: {sandbox_dir}" in capsys.readouterr().out
    assert (sandbox_dir / "srv" / "salt" / "nginx" / "init.sls").is_file()


def test_main_run_with_installed_version(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path, kitchen_root: Path
) -> None:
    config_file = _write_config(tmp_path, kitchen_root, "  requested_version: 0.16.0\n")
    monkeypatch.setattr(
        sys,
        "argv",
        ["saltsolo", "--config", str(config_file), "run", "--installed-version", "2015.5.3"],
    )
    main_cli.main()
    assert capsys.readouterr().out.strip().endswith("--retcode-passthrough")


def test_main_diagnose_outputs_json(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path, kitchen_root: Path
) -> None:
    config_file = _write_config(tmp_path, kitchen_root)
    monkeypatch.setattr(sys, "argv", ["saltsolo", "--config", str(config_file), "diagnose"])
    main_cli.main()
    data = json.loads(capsys.readouterr().out)
    assert data["formula_name"] == "nginx"
    assert data["requested_version_verdict"] == "at_or_above"


def test_main_run_disabled_is_user_error(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path, kitchen_root: Path
) -> None:
    config_file = _write_config(tmp_path, kitchen_root, "  run_highstate: false\n")
    monkeypatch.setattr(sys, "argv", ["saltsolo", "--config", str(config_file), "run"])
    with pytest.raises(SystemExit) as excinfo:
        main_cli.main()
    assert excinfo.value.code == 1
    assert "run_highstate is disabled" in capsys.readouterr().err


def test_main_missing_config_is_user_error(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    monkeypatch.setattr(sys, "argv", ["saltsolo", "--config", str(tmp_path / "nope.yml"), "init"])
    with pytest.raises(SystemExit) as excinfo:
        main_cli.main()
    assert excinfo.value.code == 1
    assert "Config file not found" in capsys.readouterr().err


def test_main_dispatches_handler(monkeypatch: pytest.MonkeyPatch) -> None:
    called: dict[str, object] = {}
    args = argparse.Namespace(handler=lambda ns: called.update({"args": ns}))
    monkeypatch.setattr(main_cli, "parse_args", lambda: args)
    main_cli.main()
    assert called == {"args": args}
