from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

import yaml

from saltsolo.config import STRING_OPTIONS, ProvisionerConfig, read_config_options
from saltsolo.errors import UserFacingError, main_guard
from saltsolo.provisioner import SaltSoloProvisioner


CONFIG_ENV_VAR = "SALTSOLO_CONFIG"


def _parse_override(raw: str) -> tuple[str, Any]:
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got '{raw}'")
    key = key.strip()
    if key in STRING_OPTIONS:
        return key, value
    try:
        return key, yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise argparse.ArgumentTypeError(f"could not parse value for '{key}': {exc}") from exc


def _load_provisioner(args: argparse.Namespace) -> SaltSoloProvisioner:
    overrides = dict(args.overrides or [])
    if args.config:
        overrides = {**read_config_options(Path(args.config)), **overrides}
    return SaltSoloProvisioner(ProvisionerConfig.from_mapping(overrides))


def _handle_init(args: argparse.Namespace) -> None:
    print(_load_provisioner(args).init_script())


def _handle_sandbox(args: argparse.Namespace) -> None:
    provisioner = _load_provisioner(args)
    sandbox_dir = Path(args.sandbox_dir)
    provisioner.assemble_sandbox(sandbox_dir)
    print(f"Sandbox ready: {sandbox_dir}")


def _handle_install(args: argparse.Namespace) -> None:
    print(_load_provisioner(args).install_script())


def _handle_run(args: argparse.Namespace) -> None:
    script = _load_provisioner(args).run_script(installed_version=args.installed_version or None)
    if not script:
        raise UserFacingError("Error: run_highstate is disabled; there is nothing to run.")
    print(script)


def _handle_diagnose(args: argparse.Namespace) -> None:
    print(json.dumps(_load_provisioner(args).diagnose(), indent=2, sort_keys=True))


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="saltsolo",
        description="Generate masterless Salt provisioning scripts and sandboxes.",
    )
    parser.add_argument(
        "--config",
        default=os.getenv(CONFIG_ENV_VAR, ""),
        help=f"YAML provisioner config (default: ${CONFIG_ENV_VAR})",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        type=_parse_override,
        metavar="KEY=VALUE",
        help="Override a provisioner option; VALUE is parsed as YAML unless the option takes a string",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_init = sub.add_parser("init", help="Print the script that resets the instance root path")
    p_init.set_defaults(handler=_handle_init)

    p_sandbox = sub.add_parser("sandbox", help="Stage the upload sandbox into a local directory")
    p_sandbox.add_argument("sandbox_dir")
    p_sandbox.set_defaults(handler=_handle_sandbox)

    p_install = sub.add_parser("install", help="Print the salt install script")
    p_install.set_defaults(handler=_handle_install)

    p_run = sub.add_parser("run", help="Print the highstate run script")
    p_run.add_argument(
        "--installed-version",
        default="",
        help="salt-call version probed on the instance, if known",
    )
    p_run.set_defaults(handler=_handle_run)

    p_diagnose = sub.add_parser("diagnose", help="Print the effective configuration as JSON")
    p_diagnose.set_defaults(handler=_handle_diagnose)

    return parser.parse_args()


def main() -> None:
    args = parse_args()
    main_guard(lambda: args.handler(args))


if __name__ == "__main__":
    sys.exit(main())
