from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath

from saltsolo.config import ProvisionerConfig
from saltsolo.sandbox import remote_relative
from saltsolo.shell import q, sudo
from saltsolo.version import supports_retcode_passthrough


RETCODE_PASSTHROUGH_FLAG = "--retcode-passthrough"
# salt-call output that means a state failed even when the exit code says otherwise.
FAILURE_SIGNATURES = (
    "Result.*False",
    "Data.failed.to.compile",
    "No.matching.sls.found.for",
)
FAIL_GREP = "grep " + " ".join(f"-e {pattern}" for pattern in FAILURE_SIGNATURES)
SOFT_FAILURE_EXIT_CODE = 1


class DetectionMode(str, Enum):
    PASSTHROUGH = "passthrough"
    HEURISTIC = "heuristic"


@dataclass(frozen=True)
class RunParams:
    command: str
    mode: DetectionMode
    capture_path: str


def select_detection_mode(requested: str, installed: str | None = None) -> DetectionMode:
    if supports_retcode_passthrough(requested, installed):
        return DetectionMode.PASSTHROUGH
    return DetectionMode.HEURISTIC


def highstate_command(config: ProvisionerConfig) -> str:
    config_dir = PurePosixPath(config.root_path) / remote_relative(config.config_dir)
    cmd = sudo(
        f"salt-call {q(f'--config-dir={config_dir}')} --local state.highstate",
        enabled=config.sudo,
        sudo_command=config.sudo_command,
    )
    if config.log_level:
        cmd += " " + q(f"--log-level={config.log_level}")
    return cmd


def build_run_params(config: ProvisionerConfig, installed_version: str | None = None) -> RunParams | None:
    if not config.run_highstate:
        return None
    return RunParams(
        command=highstate_command(config),
        mode=select_detection_mode(config.requested_version, installed_version),
        capture_path=config.output_capture_path,
    )


def has_failure_signature(output: str) -> bool:
    """Local equivalent of the sed/grep scan the heuristic run script performs.

    Lines that restate the grep command itself are dropped first so an echoed
    command line does not count as a failure.
    """
    restatement = re.compile(FAIL_GREP)
    signatures = [re.compile(pattern) for pattern in FAILURE_SIGNATURES]
    for line in output.splitlines():
        if restatement.search(line):
            continue
        if any(sig.search(line) for sig in signatures):
            return True
    return False


def decide_exit_code(salt_call_exit: int, grep_exit: int) -> int:
    """Exit code of the heuristic run script for a given salt-call and grep status."""
    if salt_call_exit != 0:
        return salt_call_exit
    if grep_exit == 0:
        return SOFT_FAILURE_EXIT_CODE
    if grep_exit == 1:
        return 0
    # No branch matched, the subshell exits with the failed test's status.
    return 1


def render_run_script(params: RunParams) -> str:
    if params.mode is DetectionMode.PASSTHROUGH:
        return f"{params.command} {RETCODE_PASSTHROUGH_FLAG}"

    capture = q(params.capture_path)
    return (
        f"set -o pipefail ; {params.command}"
        f" 2>&1 | tee {capture} ; SC=$? ; echo salt-call exit code: $SC ;"
        f" (sed '/{FAIL_GREP}/d' {capture} | {FAIL_GREP} ; EC=$? ;"
        " echo salt-call output grep exit code ${EC} ;"
        " [ ${SC} -ne 0 ] && exit ${SC} ;"
        f" [ ${{EC}} -eq 0 ] && exit {SOFT_FAILURE_EXIT_CODE} ;"
        " [ ${EC} -eq 1 ] && exit 0)"
    )


def build_run_script(config: ProvisionerConfig, installed_version: str | None = None) -> str:
    """Render the highstate run script, or an empty string when run_highstate is off.

    The passthrough decision uses ``installed_version`` when the caller probed
    one on the instance and falls back to ``requested_version`` otherwise.
    """
    params = build_run_params(config, installed_version)
    if params is None:
        return ""
    return render_run_script(params)


def build_init_script(config: ProvisionerConfig) -> str:
    root = q(config.root_path)
    rm = sudo("rm", enabled=config.sudo, sudo_command=config.sudo_command)
    return f"{rm} -rf {root} ; mkdir -p {root}"
