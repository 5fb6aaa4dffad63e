from __future__ import annotations

from dataclasses import dataclass

from saltsolo.config import LATEST, ProvisionerConfig
from saltsolo.shell import SHELL_HELPERS, q, sh_c, sudo


BOOTSTRAP_SCRIPT_PATH = "/tmp/bootstrap-salt.sh"
APT_KEY_PATH = "/tmp/repo.key"
# apt-get update returning before the new source is usable is a known race.
APT_SETTLE_SECONDS = 10
RUNTIME_DEPENDENCY_MARKER = "/opt/chef"
RUNTIME_DEPENDENCY_CACHE_DIR = "/tmp/vagrant-cache/omnibus_chef"
RUNTIME_DEPENDENCY_TMP_DIR = "/tmp"

NOT_INSTALLED_EXIT_CODE = 2
VERSION_MISMATCH_EXIT_CODE = 2

PROBE_VERSION = 'SALT_VERSION=`salt-call --version 2>/dev/null | cut -d " " -f 2`'


@dataclass(frozen=True)
class RuntimeDependencyParams:
    url: str
    download_dir: str
    marker_path: str = RUNTIME_DEPENDENCY_MARKER


@dataclass(frozen=True)
class InstallParams:
    method: str
    version: str
    bootstrap_url: str
    bootstrap_options: str
    apt_repo: str
    apt_repo_key: str
    ppa_name: str
    sudo: bool
    sudo_command: str
    runtime_dependency: RuntimeDependencyParams | None = None

    def elevated(self, command: str) -> str:
        return sudo(command, enabled=self.sudo, sudo_command=self.sudo_command)


def effective_bootstrap_options(config: ProvisionerConfig) -> str:
    """Pin a bootstrap install to a git tag when a version was asked for without options."""
    if (
        config.version_pinned
        and config.install_method == "bootstrap"
        and not config.bootstrap_options
    ):
        return f"-P git v{config.requested_version}"
    return config.bootstrap_options


def build_install_params(config: ProvisionerConfig) -> InstallParams:
    runtime_dependency = None
    if config.require_runtime_dependency:
        download_dir = (
            RUNTIME_DEPENDENCY_CACHE_DIR
            if config.runtime_dependency_cache
            else RUNTIME_DEPENDENCY_TMP_DIR
        )
        runtime_dependency = RuntimeDependencyParams(
            url=config.runtime_dependency_url,
            download_dir=download_dir,
        )
    return InstallParams(
        method=config.install_method,
        version=config.requested_version,
        bootstrap_url=config.bootstrap_url,
        bootstrap_options=effective_bootstrap_options(config),
        apt_repo=config.apt_repo,
        apt_repo_key=config.apt_repo_key,
        ppa_name=config.ppa_name,
        sudo=config.sudo,
        sudo_command=config.sudo_command,
        runtime_dependency=runtime_dependency,
    )


def _bootstrap_steps(params: InstallParams) -> list[str]:
    return [
        f"do_download {q(params.bootstrap_url)} {BOOTSTRAP_SCRIPT_PATH}",
        f"{params.elevated('sh')} {BOOTSTRAP_SCRIPT_PATH} {params.bootstrap_options}".rstrip(),
    ]


def _apt_steps(params: InstallParams) -> list[str]:
    version = params.version
    source_list = q(f"/etc/apt/sources.list.d/salt-{version}.list")
    apt_get = params.elevated("apt-get")
    return [
        'if [ -z "`which lsb_release`" ]; then',
        "  . /etc/lsb-release",
        "else",
        "  DISTRIB_CODENAME=`lsb_release -s -c`",
        "fi",
        f'echo "-----> Configuring apt repo for salt {version}"',
        f'echo "deb {params.apt_repo}/salt-{version} ${{DISTRIB_CODENAME}} main"'
        f" | {params.elevated('tee')} {source_list}",
        f"do_download {q(params.apt_repo_key)} {APT_KEY_PATH}",
        f"{params.elevated('apt-key')} add {APT_KEY_PATH}",
        f"{apt_get} update",
        f"sleep {APT_SETTLE_SECONDS}",
        f'echo "-----> Installing salt-minion ({version})"',
        f"{apt_get} install -y python-support",
        f"{apt_get} install -y salt-minion",
        f"{apt_get} install -y salt-common",
        f"{apt_get} install -y salt-minion",
    ]


def _ppa_steps(params: InstallParams) -> list[str]:
    apt_get = params.elevated("apt-get")
    return [
        f"{params.elevated('apt-add-repository')} -y {q(params.ppa_name)}",
        f"{apt_get} update",
        f"{apt_get} install -y salt-minion",
    ]


_METHOD_STEPS = {
    "bootstrap": _bootstrap_steps,
    "apt": _apt_steps,
    "ppa": _ppa_steps,
}


def _indent(lines: list[str], prefix: str = "  ") -> list[str]:
    return [f"{prefix}{line}" if line else line for line in lines]


def _verify_steps(params: InstallParams) -> list[str]:
    version = params.version
    diagnostics = [
        ("salt_install", params.method),
        ("salt_url", params.bootstrap_url),
        ("bootstrap_options", params.bootstrap_options),
        ("salt_version", version),
        ("salt_apt_repo", params.apt_repo),
        ("salt_apt_repo_key", params.apt_repo_key),
        ("salt_ppa", params.ppa_name),
    ]
    lines = [
        "# check again, now that an install of some form should have happened",
        PROBE_VERSION,
        "",
        'if [ -z "${SALT_VERSION}" ]',
        "then",
        '  echo "No salt-minion installed, install must have failed!!"',
    ]
    lines.extend(f"  echo {name} = {q(value)}" for name, value in diagnostics)
    lines.extend(
        [
            f"  exit {NOT_INSTALLED_EXIT_CODE}",
            f'elif [ "${{SALT_VERSION}}" = {q(version)} -o {q(version)} = "{LATEST}" ]',
            "then",
            f'  echo "You asked for {version} and you have ${{SALT_VERSION}} installed, sweet!"',
        ]
    )
    if params.method == "bootstrap":
        lines.extend(
            [
                "else",
                '  echo "You asked for bootstrap install and you have got ${SALT_VERSION}, hope thats ok!"',
            ]
        )
    else:
        lines.extend(
            [
                "else",
                f'  echo "You asked for {version} and you have got ${{SALT_VERSION}} installed, dunno how to fix that, sorry!"',
                f"  exit {VERSION_MISMATCH_EXIT_CODE}",
            ]
        )
    lines.append("fi")
    return lines


def render_runtime_dependency(dep: RuntimeDependencyParams, params: InstallParams) -> list[str]:
    installer = f"{dep.download_dir}/install.sh"
    return [
        f'if [ ! -d "{dep.marker_path}" ]',
        "then",
        '  echo "-----> Installing Chef Omnibus (for busser/serverspec ruby support)"',
        f"  mkdir -p {dep.download_dir}",
        f"  if [ ! -x {installer} ]",
        "  then",
        f"    do_download {q(dep.url)} {installer}",
        "  fi",
        f"  {params.elevated('sh')} {installer} -d {dep.download_dir}",
        "fi",
    ]


def render_install_script(params: InstallParams) -> str:
    lines = SHELL_HELPERS.splitlines()
    lines.extend(
        [
            "",
            "# what version of salt is installed?",
            PROBE_VERSION,
            "",
            'if [ -z "${SALT_VERSION}" ]',
            "then",
        ]
    )
    lines.extend(_indent(_METHOD_STEPS[params.method](params)))
    lines.extend(["fi", ""])
    lines.extend(_verify_steps(params))
    if params.runtime_dependency is not None:
        lines.append("")
        lines.extend(render_runtime_dependency(params.runtime_dependency, params))
    return sh_c("\n".join(lines) + "\n")


def build_install_script(config: ProvisionerConfig) -> str:
    return render_install_script(build_install_params(config))
