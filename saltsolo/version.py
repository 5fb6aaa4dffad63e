from __future__ import annotations

from enum import Enum

from saltsolo.config import LATEST


# First salt-call release that understands --retcode-passthrough.
RETCODE_VERSION = "0.17.5"


class VersionVerdict(str, Enum):
    BELOW = "below"
    AT_OR_ABOVE = "at_or_above"
    UNKNOWN = "unknown"


def compare_versions(requested: str | None, threshold: str = RETCODE_VERSION) -> VersionVerdict:
    """Compare a version against ``threshold`` the way the shell compares strings.

    This is a plain lexicographic comparison, not a semantic-version one:
    ``"0.9"`` sorts above ``"0.17.5"`` and ``"0.17.5"`` itself is not above
    the threshold. Existing pass/fail outcomes depend on that ordering.
    """
    if requested == LATEST:
        return VersionVerdict.AT_OR_ABOVE
    if not requested:
        return VersionVerdict.UNKNOWN
    if requested > threshold:
        return VersionVerdict.AT_OR_ABOVE
    return VersionVerdict.BELOW


def supports_retcode_passthrough(requested: str, installed: str | None = None) -> bool:
    if requested == LATEST:
        return True
    return compare_versions(installed or requested) is VersionVerdict.AT_OR_ABOVE
