"""包安装测试 - tag 选择 / 下载目录 / 锁文件 / 项目文件更新"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from qxtool.core.exceptions import UserError
from qxtool.core.package.cache import PackageCache
from qxtool.core.package.lockfile import Lockfile
from qxtool.services.package.installer import (
    PackageInstaller,
    find_application,
    manifest_dir,
    parse_package_spec,
)


def _read(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def installer(cache_file: Path, pkg_project: Path, downloader) -> PackageInstaller:
    return PackageInstaller(
        PackageCache(cache_file), Lockfile(pkg_project / "qx-lock.json"), downloader,
        project_dir=pkg_project,
    )


class TestSpecParsing:
    @pytest.mark.parametrize(("spec", "expected"), [
        ("acme/widgets", ("acme/widgets", "", None)),
        ("acme/widgets@v1.0.0", ("acme/widgets", "", "v1.0.0")),
        ("acme/suite/libs/a@v1.0.0", ("acme/suite", "libs/a", "v1.0.0")),
        ("/acme/widgets/", ("acme/widgets", "", None)),
    ])
    def test_parse(self, spec: str, expected: tuple) -> None:
        assert parse_package_spec(spec) == expected

    def test_parse_invalid(self) -> None:
        with pytest.raises(UserError):
            parse_package_spec("widgets")

    @pytest.mark.parametrize(("path", "expected"), [
        ("Manifest.json", ""),
        ("./Manifest.json", ""),
        ("libs/a/Manifest.json", "libs/a"),
    ])
    def test_manifest_dir(self, path: str, expected: str) -> None:
        assert manifest_dir(path) == expected


class TestInstall:
    def test_latest_compatible_release(
        self, installer: PackageInstaller, pkg_project: Path, downloader,
    ) -> None:
        mutation = installer.install("acme/widgets", "7.0.0")
        assert downloader.calls == [("acme/widgets", "v1.1.0")]
        record = mutation.installed[0]
        assert record.path == "qx_packages/acme_widgets_v1.1.0"
        assert record.repo_tag == "v1.1.0"
        assert (pkg_project / record.path / "Manifest.json").exists()

        lock = Lockfile(pkg_project / "qx-lock.json")
        assert lock.installed_tag("acme/widgets", "widgets") == "v1.1.0"
        assert _read(pkg_project / "Manifest.json")["requires"]["acme/widgets"] == "^1.1.0"
        apps = _read(pkg_project / "compile.json")["applications"]
        assert [a["name"] for a in apps] == ["proj", "widgets-demo"]
        assert installer.cache.compat("7.0.0")["acme/widgets"] == "v1.1.0"

    def test_compat_cache_is_used(self, installer: PackageInstaller, downloader) -> None:
        installer.cache.set_compat("7.0.0", {"acme/widgets": "v1.0.0"})
        installer.install("acme/widgets", "7.0.0")
        assert downloader.calls == [("acme/widgets", "v1.0.0")]

    def test_same_tag_is_skipped(
        self, installer: PackageInstaller, pkg_project: Path, downloader,
    ) -> None:
        installer.install("acme/widgets@v1.0.0", "7.0.0")
        mutation = installer.install("acme/widgets@v1.0.0", "7.0.0")
        assert mutation.installed == []
        assert mutation.skipped == ["acme/widgets"]
        assert len(downloader.calls) == 1
        apps = _read(pkg_project / "compile.json")["applications"]
        assert len(apps) == 2

    def test_library_inside_repository(
        self, installer: PackageInstaller, pkg_project: Path,
    ) -> None:
        mutation = installer.install("acme/suite/libs/a@v1.0.0", "7.0.0", save=False)
        assert [(r.uri, r.path) for r in mutation.installed] == [
            ("acme/suite/libs/a", "qx_packages/acme_suite_v1.0.0/libs/a"),
        ]
        assert "acme/suite/libs/a" not in _read(pkg_project / "Manifest.json")["requires"]

    def test_whole_repository(self, installer: PackageInstaller) -> None:
        mutation = installer.install("acme/suite", "7.0.0")
        assert [r.uri for r in mutation.installed] == ["acme/suite/libs/a", "acme/suite/libs/b"]

    def test_unknown_library_path(self, installer: PackageInstaller) -> None:
        with pytest.raises(UserError, match="没有匹配的库"):
            installer.install("acme/suite/libs/zzz@v1.0.0", "7.0.0")

    def test_unknown_tag(self, installer: PackageInstaller) -> None:
        with pytest.raises(UserError, match="v9.9.9"):
            installer.install("acme/widgets@v9.9.9", "7.0.0")

    def test_no_compatible_release(self, installer: PackageInstaller, downloader) -> None:
        with pytest.raises(UserError, match="兼容"):
            installer.install("acme/widgets", "6.0.0")
        assert downloader.calls == []

    def test_install_from_path(self, installer: PackageInstaller, pkg_project: Path,
                               tmp_path: Path, new_library) -> None:
        local = new_library(tmp_path / "locallib", "loc", "0.3.0")
        mutation = installer.install_from_path("me/loc", local)
        record = mutation.installed[0]
        assert record.path == "../locallib"
        assert record.repo_name is None
        assert _read(pkg_project / "Manifest.json")["requires"]["me/loc"] == "^0.3.0"

    def test_install_from_path_without_manifest(
        self, installer: PackageInstaller, tmp_path: Path,
    ) -> None:
        with pytest.raises(UserError):
            installer.install_from_path("me/none", tmp_path / "nothing")


class TestRequirements:
    def test_install_requirements_uses_range(
        self, installer: PackageInstaller, pkg_project: Path, downloader,
    ) -> None:
        manifest_path = pkg_project / "Manifest.json"
        manifest = _read(manifest_path)
        manifest["requires"] = {"acme/widgets": "~1.0.0", "@qooxdoo/framework": "^7.0.0"}
        manifest_path.write_text(json.dumps(manifest), encoding="utf-8")

        installer.install_requirements("7.0.0")
        assert downloader.calls == [("acme/widgets", "v1.0.0")]
        assert _read(manifest_path)["requires"]["acme/widgets"] == "~1.0.0"

    def test_range_without_compatible_release(self, installer: PackageInstaller) -> None:
        with pytest.raises(UserError):
            installer.tag_for_range("acme/widgets", "^2.0.0", "7.0.0")
        assert installer.tag_for_range("acme/widgets", "^2.0.0", "8.1.0") == "v2.0.0"

    def test_reinstall_all(self, installer: PackageInstaller, pkg_project: Path,
                           downloader) -> None:
        installer.install("acme/widgets@v1.0.0", "7.0.0")
        marker = pkg_project / "qx_packages" / "acme_widgets_v1.0.0" / "stale.txt"
        marker.write_text("x", encoding="utf-8")
        installer.reinstall_all("7.0.0")
        assert downloader.calls == [("acme/widgets", "v1.0.0")] * 2
        assert not marker.exists()


class TestFindApplication:
    @pytest.mark.parametrize(("candidate", "provided", "expected"), [
        ({"name": "demo", "class": "a.B"}, {"name": "demo", "class": "x.Y"}, True),
        ({"name": "other", "class": "a.B"}, {"name": "demo", "class": "a.B"}, False),
        ({"class": "a.B"}, {"name": "demo", "class": "a.B"}, True),
        ({"class": "a.B"}, {"class": "a.C"}, False),
    ])
    def test_match(self, candidate: dict, provided: dict, expected: bool) -> None:
        assert find_application(candidate, provided) is expected
