from __future__ import annotations

import re
from dataclasses import dataclass, fields
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from saltsolo.errors import UserFacingError


INSTALL_METHODS = ("bootstrap", "apt", "ppa")
LATEST = "latest"
# Versions end up in apt paths and shell words, so keep them to plain tokens.
VERSION_PATTERN = re.compile(r"[A-Za-z0-9._+~-]+")

DEFAULT_CONFIG: Mapping[str, Any] = MappingProxyType(
    {
        "install_method": "bootstrap",
        "requested_version": LATEST,
        "bootstrap_url": "http://bootstrap.saltstack.org",
        "bootstrap_options": "",
        "apt_repo": "http://apt.mccartney.ie",
        "apt_repo_key": "http://apt.mccartney.ie/KEY",
        "ppa_name": "ppa:saltstack/salt",
        "require_runtime_dependency": True,
        "runtime_dependency_url": "https://www.getchef.com/chef/install.sh",
        "runtime_dependency_cache": False,
        "root_path": "/tmp/kitchen",
        "config_dir": "/etc/salt",
        "minion_config": "/etc/salt/minion",
        "salt_env": "base",
        "file_root": "/srv/salt",
        "pillar_root": "/srv/pillar",
        "state_top_file": "/srv/salt/top.sls",
        "state_top": {},
        "state_top_from_file": False,
        "run_highstate": True,
        "log_level": None,
        "state_collection_mode": False,
        "is_file_root": False,
        "copy_filter": [],
        "vendor_path": None,
        "dependencies": [],
        "kitchen_root": ".",
        "formula_name": "",
        "pillars": {},
        "pillars_from_files": {},
        "grains": {},
        "data_path": None,
        "sudo": True,
        "sudo_command": "sudo -E",
        "output_capture_path": "/tmp/salt-call-output",
    }
)
# Options whose command-line value is taken verbatim rather than parsed as YAML.
STRING_OPTIONS = frozenset(key for key, value in DEFAULT_CONFIG.items() if isinstance(value, str))


@dataclass(frozen=True)
class Dependency:
    path: str
    name: str


@dataclass(frozen=True)
class ProvisionerConfig:
    install_method: str
    requested_version: str
    bootstrap_url: str
    bootstrap_options: str
    apt_repo: str
    apt_repo_key: str
    ppa_name: str
    require_runtime_dependency: bool
    runtime_dependency_url: str
    runtime_dependency_cache: bool
    root_path: str
    config_dir: str
    minion_config: str
    salt_env: str
    file_root: str
    pillar_root: str
    state_top_file: str
    state_top: dict[str, Any]
    state_top_from_file: bool
    run_highstate: bool
    log_level: str | None
    state_collection_mode: bool
    is_file_root: bool
    copy_filter: tuple[str, ...]
    vendor_path: str | None
    dependencies: tuple[Dependency, ...]
    kitchen_root: str
    formula_name: str
    pillars: dict[str, Any]
    pillars_from_files: dict[str, str]
    grains: dict[str, Any]
    data_path: str | None
    sudo: bool
    sudo_command: str
    output_capture_path: str

    @classmethod
    def from_mapping(cls, overrides: Mapping[str, Any] | None = None) -> "ProvisionerConfig":
        """Merge ``overrides`` over :data:`DEFAULT_CONFIG` and validate the result."""
        overrides = dict(overrides or {})
        unknown = sorted(set(overrides) - set(DEFAULT_CONFIG))
        if unknown:
            raise UserFacingError(f"Error: Unknown provisioner option(s): {', '.join(unknown)}")

        merged = {**DEFAULT_CONFIG, **overrides}
        merged["copy_filter"] = tuple(merged["copy_filter"] or ())
        merged["dependencies"] = _parse_dependencies(merged["dependencies"])
        for key in ("state_top", "pillars", "pillars_from_files", "grains"):
            merged[key] = dict(merged[key] or {})

        config = cls(**merged)
        config.validate()
        return config

    def validate(self) -> None:
        if self.install_method not in INSTALL_METHODS:
            choices = ", ".join(INSTALL_METHODS)
            raise UserFacingError(
                f"Error: install_method must be one of {choices} (got '{self.install_method}')"
            )
        if not isinstance(self.requested_version, str):
            raise UserFacingError(
                f"Error: requested_version must be a string (got {self.requested_version!r}); "
                "quote it in YAML, e.g. \"2016.10\"."
            )
        if not self.requested_version:
            raise UserFacingError("Error: requested_version must not be empty.")
        if not VERSION_PATTERN.fullmatch(self.requested_version):
            raise UserFacingError(
                f"Error: requested_version '{self.requested_version}' contains unsupported characters."
            )
        if not self.collection_mode and not self.formula_name:
            raise UserFacingError(
                "Error: formula_name is required unless state_collection_mode or is_file_root is set."
            )

    @property
    def collection_mode(self) -> bool:
        return bool(self.state_collection_mode or self.is_file_root)

    @property
    def version_pinned(self) -> bool:
        return self.requested_version != LATEST

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if field.name == "dependencies":
                value = [{"path": dep.path, "name": dep.name} for dep in value]
            elif isinstance(value, tuple):
                value = list(value)
            out[field.name] = value
        return out


def _parse_dependencies(raw: Any) -> tuple[Dependency, ...]:
    if not raw:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise UserFacingError("Error: dependencies must be a list of {path, name} entries.")
    deps: list[Dependency] = []
    for index, entry in enumerate(raw):
        if isinstance(entry, Dependency):
            deps.append(entry)
            continue
        if not isinstance(entry, Mapping) or not entry.get("path") or not entry.get("name"):
            raise UserFacingError(
                f"Error: dependencies[{index}] must define both 'path' and 'name'."
            )
        deps.append(Dependency(path=str(entry["path"]), name=str(entry["name"])))
    return tuple(deps)


def read_config_options(path: Path) -> dict[str, Any]:
    """Read provisioner options from a YAML file.

    The file may hold the options at the top level or under a ``provisioner``
    key, the way kitchen files nest them. A relative ``kitchen_root`` is
    resolved against the file's directory.
    """
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise UserFacingError(f"Error: Config file not found: {path}") from exc
    except OSError as exc:
        raise UserFacingError(f"Error: Could not read config file '{path}': {exc}") from exc
    except yaml.YAMLError as exc:
        raise UserFacingError(f"Error: Could not parse config file '{path}': {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise UserFacingError(f"Error: Config file '{path}' must contain a mapping.")
    options = raw.get("provisioner", raw)
    if not isinstance(options, Mapping):
        raise UserFacingError(f"Error: 'provisioner' in '{path}' must be a mapping.")

    options = dict(options)
    options.pop("name", None)
    kitchen_root = Path(str(options.get("kitchen_root", DEFAULT_CONFIG["kitchen_root"])))
    if not kitchen_root.is_absolute():
        options["kitchen_root"] = str((path.parent / kitchen_root).resolve())
    return options


def load_config_file(path: Path) -> ProvisionerConfig:
    return ProvisionerConfig.from_mapping(read_config_options(path))
