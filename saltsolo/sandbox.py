from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Union

import yaml

from saltsolo.config import ProvisionerConfig
from saltsolo.errors import UserFacingError


DATA_DIR = PurePosixPath("data")
# Salt extension directories shipped alongside formulas.
EXTENSION_DIRS = ("_modules", "_states", "_grains", "_renderers", "_returners")
ALWAYS_IGNORED = (".kitchen", ".git")


@dataclass(frozen=True)
class StagedCopy:
    source: Path
    destination: PurePosixPath
    ignore: tuple[str, ...] = ()


@dataclass(frozen=True)
class StagedFile:
    destination: PurePosixPath
    content: str


StagedEntry = Union[StagedCopy, StagedFile]


@dataclass(frozen=True)
class SandboxManifest:
    """Ordered staging plan; entries later in the tuple win on collision."""

    entries: tuple[StagedEntry, ...] = field(default_factory=tuple)

    def destinations(self) -> list[PurePosixPath]:
        return [entry.destination for entry in self.entries]

    def collisions(self) -> list[PurePosixPath]:
        """Destinations staged more than once.

        Only exact matches are reported; a file staged inside a directory
        copied earlier (such as the state top under a collection copy) is not.
        """
        seen: set[PurePosixPath] = set()
        repeated: list[PurePosixPath] = []
        for dest in self.destinations():
            if dest in seen and dest not in repeated:
                repeated.append(dest)
            seen.add(dest)
        return repeated


def remote_relative(path: str) -> PurePosixPath:
    """Turn an instance path such as ``/srv/salt`` into a sandbox-relative one."""
    return PurePosixPath(path.lstrip("/"))


def _dump_yaml(data: Any) -> str:
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


def _local_path(base: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def _require_dir(path: Path, what: str) -> Path:
    if not path.is_dir():
        raise UserFacingError(f"Error: Invalid {what}: {path}")
    return path


def _require_file(path: Path, what: str) -> Path:
    if not path.is_file():
        raise UserFacingError(f"Error: Invalid {what}: {path}")
    return path


def minion_config(config: ProvisionerConfig) -> dict[str, Any]:
    root = PurePosixPath(config.root_path)
    return {
        "state_top": PurePosixPath(config.state_top_file).name,
        "file_client": "local",
        "file_roots": {config.salt_env: [str(root / remote_relative(config.file_root))]},
        "pillar_roots": {config.salt_env: [str(root / remote_relative(config.pillar_root))]},
    }


def state_top(config: ProvisionerConfig) -> dict[str, Any]:
    if config.state_top:
        return config.state_top
    if not config.formula_name:
        raise UserFacingError(
            "Error: state_top (or state_top_from_file) is required when formula_name is unset."
        )
    return {config.salt_env: {"*": [config.formula_name]}}


def _formula_entries(config: ProvisionerConfig, path: Path, name: str) -> list[StagedEntry]:
    file_root = remote_relative(config.file_root)
    source = _require_dir(path / name, f"formula '{name}' (expected directory)")
    entries: list[StagedEntry] = [
        StagedCopy(source=source, destination=file_root / name, ignore=config.copy_filter)
    ]
    for extension in EXTENSION_DIRS:
        extension_dir = path / extension
        if extension_dir.is_dir():
            entries.append(
                StagedCopy(
                    source=extension_dir,
                    destination=file_root / extension,
                    ignore=config.copy_filter,
                )
            )
    return entries


def _base_entries(config: ProvisionerConfig, kitchen_root: Path) -> list[StagedEntry]:
    entries: list[StagedEntry] = []
    if config.data_path:
        data_dir = _require_dir(_local_path(kitchen_root, config.data_path), "data_path")
        entries.append(StagedCopy(source=data_dir, destination=DATA_DIR))

    entries.append(
        StagedFile(
            destination=remote_relative(config.minion_config),
            content=_dump_yaml(minion_config(config)),
        )
    )

    pillar_root = remote_relative(config.pillar_root)
    for name, data in config.pillars.items():
        entries.append(StagedFile(destination=pillar_root / name, content=_dump_yaml(data)))
    for name, source in config.pillars_from_files.items():
        pillar_file = _require_file(_local_path(kitchen_root, source), f"pillar file for '{name}'")
        entries.append(StagedCopy(source=pillar_file, destination=pillar_root / name))

    if config.grains:
        entries.append(
            StagedFile(
                destination=remote_relative(config.config_dir) / "grains",
                content=_dump_yaml(config.grains),
            )
        )
    return entries


def assemble(config: ProvisionerConfig) -> SandboxManifest:
    """Work out what must be staged for upload, failing fast on missing local inputs."""
    kitchen_root = Path(config.kitchen_root).expanduser()
    entries = _base_entries(config, kitchen_root)

    if config.collection_mode:
        entries.append(
            StagedCopy(
                source=_require_dir(kitchen_root, "kitchen_root"),
                destination=remote_relative(config.file_root),
                ignore=ALWAYS_IGNORED + config.copy_filter,
            )
        )
    else:
        entries.extend(_formula_entries(config, kitchen_root, config.formula_name))
        if config.vendor_path is not None:
            vendor_path = _local_path(kitchen_root, config.vendor_path)
            if not vendor_path.is_dir():
                raise UserFacingError(f"Error: Invalid vendor_path set: {config.vendor_path}")
            for vendored in sorted(p for p in vendor_path.iterdir() if p.is_dir()):
                entries.extend(_formula_entries(config, vendor_path, vendored.name))

    for dep in config.dependencies:
        entries.extend(_formula_entries(config, _local_path(kitchen_root, dep.path), dep.name))

    top_destination = remote_relative(config.state_top_file)
    if config.state_top_from_file:
        top_file = _require_file(kitchen_root / "top.sls", "state top file")
        entries.append(StagedCopy(source=top_file, destination=top_destination))
    else:
        entries.append(StagedFile(destination=top_destination, content=_dump_yaml(state_top(config))))

    return SandboxManifest(entries=tuple(entries))


def _check_sandbox_location(manifest: SandboxManifest, sandbox_dir: Path) -> None:
    for entry in manifest.entries:
        if isinstance(entry, StagedFile):
            continue
        source = entry.source.resolve()
        if source == sandbox_dir or sandbox_dir in source.parents:
            raise UserFacingError(
                f"Error: Sandbox directory {sandbox_dir} would contain staged source {entry.source}; "
                "choose a sandbox outside it."
            )


def _copy_ignore(entry: StagedCopy, sandbox_dir: Path) -> Callable[[str, list[str]], set[str]]:
    patterns = shutil.ignore_patterns(*entry.ignore) if entry.ignore else None

    def ignore(directory: str, names: list[str]) -> set[str]:
        ignored = set(patterns(directory, names)) if patterns else set()
        # A sandbox under a copied tree must not be copied into itself.
        ignored.update(name for name in names if Path(directory, name).resolve() == sandbox_dir)
        return ignored

    return ignore


def write_sandbox(manifest: SandboxManifest, sandbox_dir: Path) -> None:
    """Write ``manifest`` into ``sandbox_dir``, replacing whatever was there before."""
    resolved = sandbox_dir.resolve()
    _check_sandbox_location(manifest, resolved)
    if sandbox_dir.is_dir():
        try:
            shutil.rmtree(sandbox_dir)
        except OSError as exc:
            raise UserFacingError(f"Error: Could not clear sandbox '{sandbox_dir}': {exc}") from exc

    for entry in manifest.entries:
        target = sandbox_dir.joinpath(*entry.destination.parts)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(entry, StagedFile):
                target.write_text(entry.content, encoding="utf-8")
            elif entry.source.is_dir():
                shutil.copytree(
                    entry.source,
                    target,
                    ignore=_copy_ignore(entry, resolved),
                    dirs_exist_ok=True,
                )
            else:
                shutil.copy2(entry.source, target)
        except OSError as exc:
            raise UserFacingError(f"Error: Could not stage '{entry.destination}' in sandbox: {exc}") from exc
