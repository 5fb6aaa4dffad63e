from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from saltsolo import install, run, sandbox
from saltsolo.config import ProvisionerConfig
from saltsolo.version import RETCODE_VERSION, compare_versions


class SaltSoloProvisioner:
    """Masterless Salt provisioner driven by an external instance harness.

    The harness calls :meth:`init_script`, :meth:`assemble_sandbox`,
    :meth:`install_script` and :meth:`run_script` in that order, uploads the
    sandbox and runs each script on the instance. Every method is pure
    generation from the config, apart from the sandbox write.
    """

    name = "salt_solo"

    def __init__(self, config: ProvisionerConfig | Mapping[str, Any] | None = None) -> None:
        if not isinstance(config, ProvisionerConfig):
            config = ProvisionerConfig.from_mapping(config)
        self.config = config

    def diagnose(self) -> dict[str, Any]:
        data = self.config.as_dict()
        data["effective_bootstrap_options"] = install.effective_bootstrap_options(self.config)
        data["retcode_version"] = RETCODE_VERSION
        data["requested_version_verdict"] = compare_versions(self.config.requested_version).value
        return data

    def init_script(self) -> str:
        return run.build_init_script(self.config)

    def manifest(self) -> sandbox.SandboxManifest:
        return sandbox.assemble(self.config)

    def assemble_sandbox(self, sandbox_dir: Path) -> sandbox.SandboxManifest:
        manifest = self.manifest()
        print(f"Preparing sandbox: {sandbox_dir}")
        for entry in manifest.entries:
            source = getattr(entry, "source", None)
            origin = f" <- {source}" if source is not None else " (generated)"
            print(f"  {entry.destination}{origin}")
        for dest in manifest.collisions():
            print(f"  note: {dest} is staged more than once; the last entry wins")
        sandbox.write_sandbox(manifest, sandbox_dir)
        return manifest

    def install_script(self) -> str:
        return install.build_install_script(self.config)

    def run_script(self, installed_version: str | None = None) -> str:
        return run.build_run_script(self.config, installed_version)
