from __future__ import annotations

import pytest

from saltsolo.version import (
    RETCODE_VERSION,
    VersionVerdict,
    compare_versions,
    supports_retcode_passthrough,
)


def test_latest_is_treated_as_newest() -> None:
    assert compare_versions("latest") is VersionVerdict.AT_OR_ABOVE


def test_missing_version_is_unknown() -> None:
    assert compare_versions("") is VersionVerdict.UNKNOWN
    assert compare_versions(None) is VersionVerdict.UNKNOWN


@pytest.mark.parametrize(
    ("version", "expected"),
    [
        ("2015.5.3", VersionVerdict.AT_OR_ABOVE),
        ("0.17.6", VersionVerdict.AT_OR_ABOVE),
        ("0.17.5", VersionVerdict.BELOW),
        ("0.17.4", VersionVerdict.BELOW),
        ("0.10.0", VersionVerdict.BELOW),
        # plain string ordering, not semantic versioning
        ("0.9", VersionVerdict.AT_OR_ABOVE),
        ("0.100.0", VersionVerdict.BELOW),
    ],
)
def test_compare_matches_string_ordering(version: str, expected: VersionVerdict) -> None:
    assert compare_versions(version) is expected
    assert (expected is VersionVerdict.AT_OR_ABOVE) == (version > RETCODE_VERSION)


def test_custom_threshold() -> None:
    assert compare_versions("2014.7.0", "2015.5.0") is VersionVerdict.BELOW
    assert compare_versions("2015.8.0", "2015.5.0") is VersionVerdict.AT_OR_ABOVE


def test_passthrough_prefers_installed_version() -> None:
    assert supports_retcode_passthrough("latest", "0.16.0") is True
    assert supports_retcode_passthrough("0.16.0") is False
    assert supports_retcode_passthrough("0.16.0", "2015.5.3") is True
    assert supports_retcode_passthrough("2015.5.3", "0.16.0") is False
