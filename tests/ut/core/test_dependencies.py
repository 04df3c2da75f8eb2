"""库依赖检查测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from qxtool.core.compile.dependencies import check_dependencies, is_package_requirement
from qxtool.core.compile.library import Library
from qxtool.core.exceptions import UserError


def _lib(root: Path, namespace: str, version: str = "1.0.0", **kwargs) -> Library:
    return Library(namespace=namespace, root_dir=root, version=version, **kwargs)


class TestIsPackageRequirement:
    @pytest.mark.parametrize(("key", "expected"), [
        ("acme/widgets", True),
        ("@qooxdoo/framework", False),
        ("@qooxdoo/compiler", False),
        ("qooxdoo-sdk", False),
        ("qooxdoo-compiler", False),
    ])
    def test_keys(self, key: str, expected: bool) -> None:
        assert is_package_requirement(key) is expected


class TestCheckDependencies:
    def test_all_satisfied(self, tmp_path: Path) -> None:
        libs = [
            _lib(tmp_path / "app", "app", requires={
                "@qooxdoo/framework": "^7.0.0",
                "@qooxdoo/compiler": "^1.0.0",
                "acme/widgets": "^2.0.0",
            }),
            _lib(tmp_path / "qx_packages" / "acme_widgets_v2.1.0", "widgets", "2.1.0"),
        ]
        errors = check_dependencies(
            libs, {"acme/widgets": "qx_packages/acme_widgets_v2.1.0"}, "7.1.0", "1.0.0",
            project_dir=tmp_path,
        )
        assert errors == []

    def test_framework_and_compiler_mismatch(self, tmp_path: Path) -> None:
        lib = _lib(tmp_path, "app", requires={
            "@qooxdoo/framework": "^8.0.0", "qooxdoo-compiler": "^2.0.0",
        })
        errors = check_dependencies([lib], {}, "7.0.0", "1.0.0", project_dir=tmp_path)
        assert errors == [
            "app: Needs @qooxdoo/framework version ^8.0.0, found 7.0.0",
            "app: Needs @qooxdoo/compiler version ^2.0.0, found 1.0.0",
        ]

    def test_legacy_qooxdoo_range(self, tmp_path: Path) -> None:
        lib = _lib(tmp_path, "app", library_info={"qooxdoo-range": "^6.0.0"})
        errors = check_dependencies([lib], {}, "7.0.0", "1.0.0", project_dir=tmp_path)
        assert errors == ["app: Needs @qooxdoo/framework version ^6.0.0, found 7.0.0"]

    def test_package_version_mismatch(self, tmp_path: Path) -> None:
        libs = [
            _lib(tmp_path / "app", "app", requires={"acme/widgets": "^3.0.0"}),
            _lib(tmp_path / "libs" / "widgets", "widgets", "2.1.0"),
        ]
        errors = check_dependencies(
            libs, {"acme/widgets": "libs/widgets"}, "7.0.0", "1.0.0", project_dir=tmp_path,
        )
        assert errors == ["app: Needs acme/widgets version ^3.0.0, found 2.1.0"]

    def test_required_library_not_loaded(self, tmp_path: Path) -> None:
        lib = _lib(tmp_path, "app", requires={"acme/widgets": "^1.0.0"})
        errors = check_dependencies(
            [lib], {"acme/other": "libs/other"}, "7.0.0", "1.0.0", project_dir=tmp_path,
        )
        assert errors == ["app: Cannot find required library 'acme/widgets'"]

    def test_missing_package_info_triggers_install(self, tmp_path: Path) -> None:
        lib = _lib(tmp_path, "app", requires={"acme/widgets": "^1.0.0"})
        calls: list[int] = []
        with pytest.raises(UserError, match="重新运行"):
            check_dependencies(
                [lib], None, "7.0.0", "1.0.0",
                installer=lambda: calls.append(1), project_dir=tmp_path,
            )
        assert calls == [1]

    def test_missing_package_info_without_download(self, tmp_path: Path) -> None:
        lib = _lib(tmp_path, "app", requires={"acme/widgets": "^1.0.0"})
        calls: list[int] = []
        with pytest.raises(UserError, match="--no-download"):
            check_dependencies(
                [lib], {}, "7.0.0", "1.0.0", download=False,
                installer=lambda: calls.append(1), project_dir=tmp_path,
            )
        assert calls == []
