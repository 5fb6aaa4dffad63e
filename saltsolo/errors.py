from __future__ import annotations

import sys
from typing import Callable, TypeVar


T = TypeVar("T")


class UserFacingError(Exception):
    """An error whose message is meant to be shown to the operator as-is."""


def main_guard(fn: Callable[[], T]) -> T:
    try:
        return fn()
    except UserFacingError as exc:
        print(str(exc), file=sys.stderr)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        raise SystemExit(130)
