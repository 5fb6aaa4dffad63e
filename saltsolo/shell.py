from __future__ import annotations

import shlex
import textwrap


SHELL_HELPERS = textwrap.dedent(
    """\
    exists() {
      command -v "$1" >/dev/null 2>&1
    }

    do_download() {
      echo "-----> Downloading $1"
      echo "       to file $2"
      if exists wget; then
        wget -q -O "$2" "$1" && return 0
      fi
      if exists curl; then
        curl -fsSL -o "$2" "$1" && return 0
      fi
      if exists fetch; then
        fetch -o "$2" "$1" && return 0
      fi
      for py in python3 python; do
        if exists "$py"; then
          "$py" -c "import sys, urllib.request; urllib.request.urlretrieve(sys.argv[1], sys.argv[2])" "$1" "$2" && return 0
        fi
      done
      echo "Unable to download $1 (tried wget, curl, fetch, python)"
      exit 1
    }
    """
)


def sudo(command: str, *, enabled: bool = True, sudo_command: str = "sudo -E") -> str:
    if not enabled:
        return command
    return f"{sudo_command} {command}"


def sh_c(script: str) -> str:
    """Wrap a multi-line script so it runs under ``sh`` whatever the login shell is."""
    return f"sh -c {shlex.quote(script)}"


def q(value: object) -> str:
    return shlex.quote(str(value))
