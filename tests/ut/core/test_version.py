"""semver 解析与范围匹配测试"""

from __future__ import annotations

import pytest

from qxtool.core import version as semver
from qxtool.core.exceptions import InvalidVersionError


class TestParse:
    @pytest.mark.parametrize(("text", "loose", "expected"), [
        ("1.2.3", False, "1.2.3"),
        ("v1.2.3", True, "1.2.3"),
        ("  =1.2.3 ", True, "1.2.3"),
        ("1.2", True, "1.2.0"),
        ("1.2", False, None),
        ("not-a-version", True, None),
        (None, True, None),
    ])
    def test_parse_version(self, text: str | None, loose: bool, expected: str | None) -> None:
        parsed = semver.parse_version(text, loose=loose)
        assert (str(parsed) if parsed else None) == expected

    def test_is_valid(self) -> None:
        assert semver.is_valid("1.0.0-beta.1")
        assert not semver.is_valid("1.0")
        assert semver.is_valid("1.0", loose=True)


class TestSatisfies:
    @pytest.mark.parametrize(("version", "range_expr", "expected"), [
        ("1.2.3", "^1.0.0", True),
        ("2.0.0", "^1.0.0", False),
        ("1.2.9", "~1.2.0", True),
        ("1.3.0", "~1.2.0", False),
        ("1.4.2", "1.x", True),
        ("1.5.0", "1.0.0 - 2.0.0", True),
        ("3.1.0", "^1.0.0 || ^3.0.0", True),
        ("1.0.0", ">= 1.0.0", True),
        ("v1.2", ">=1.2.0", True),
    ])
    def test_ranges(self, version: str, range_expr: str, expected: bool) -> None:
        assert semver.satisfies(version, range_expr) is expected

    @pytest.mark.parametrize(("version", "range_expr"), [
        ("bogus", "^1.0.0"),
        ("1.0.0", "not a range"),
        ("1.0.0", None),
    ])
    def test_invalid_input_is_not_satisfied(self, version: str, range_expr: str | None) -> None:
        assert semver.satisfies(version, range_expr) is False

    def test_prerelease_excluded_by_default(self) -> None:
        assert not semver.satisfies("2.0.0-beta.1", ">=1.0.0")
        assert semver.satisfies("2.0.0-beta.1", ">=1.0.0", include_prerelease=True)

    def test_prerelease_of_upper_bound_stays_outside(self) -> None:
        assert not semver.satisfies("2.0.0-beta.1", "^1.0.0", include_prerelease=True)
        assert semver.satisfies("1.1.0-beta", "^1.0.0", include_prerelease=True)


class TestOrdering:
    def test_compare(self) -> None:
        assert semver.compare("1.0.0", "1.0.1") == -1
        assert semver.compare("v2.0.0", "2.0.0") == 0
        assert semver.compare("1.1.0", "1.1.0-beta") == 1
        assert semver.gt("1.10.0", "1.9.0")

    def test_compare_invalid_raises(self) -> None:
        with pytest.raises(InvalidVersionError):
            semver.compare("x.y", "1.0.0")
        with pytest.raises(InvalidVersionError):
            semver.gt("1.0.0", "")


class TestGreaterThanRange:
    @pytest.mark.parametrize(("version", "range_expr", "expected"), [
        ("2.0.0", "^1.0.0", True),
        ("1.5.0", "^1.0.0", False),
        ("0.5.0", "^1.0.0", False),
        ("9.0.0", ">=1.0.0", False),
        ("1.3.0", "~1.1.0 || ~1.2.0", True),
        ("1.3.0", "~1.1.0 || >=1.5.0", False),
    ])
    def test_gtr(self, version: str, range_expr: str, expected: bool) -> None:
        assert semver.greater_than_range(version, range_expr) is expected


class TestToolchainSatisfies:
    def test_regular_match(self) -> None:
        assert semver.toolchain_satisfies("1.2.0", "^1.0.0")
        assert not semver.toolchain_satisfies("2.0.0", "^1.0.0")

    def test_prerelease_included(self) -> None:
        assert semver.toolchain_satisfies("1.1.0-beta.2", "^1.0.0")

    def test_zero_major_above_range_accepted(self) -> None:
        assert semver.toolchain_satisfies("0.9.0", "^0.8.0")
        assert not semver.toolchain_satisfies("0.7.0", "^0.8.0")


class TestCoerce:
    @pytest.mark.parametrize(("text", "expected"), [
        ("v1.2", "1.2.0"),
        ("1.0.0-beta", "1.0.0-beta"),
        ("3", "3.0.0"),
        ("release 2.1", "2.1.0"),
        ("abc", None),
        (None, None),
    ])
    def test_coerce(self, text: str | None, expected: str | None) -> None:
        assert semver.coerce(text) == expected
