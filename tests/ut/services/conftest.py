"""服务层测试夹具：本地包注册表 + 不联网的下载器"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest


def _manifest(name: str, namespace: str, version: str, path: str = "Manifest.json",
              qx_range: str = ">=7.0.0") -> dict[str, Any]:
    return {
        "qx_versions": qx_range,
        "info": {"name": name, "version": version, "summary": name},
        "provides": {"namespace": namespace},
        "path": path,
    }


REGISTRY: dict[str, Any] = {
    "acme/widgets": {
        "description": "Widgets",
        "releases": {
            "v1.0.0": [_manifest("widgets", "acme.widgets", "1.0.0")],
            "v1.1.0": [_manifest("widgets", "acme.widgets", "1.1.0")],
            "v2.0.0": [_manifest("widgets", "acme.widgets", "2.0.0", qx_range="^8.0.0")],
        },
    },
    "acme/suite": {
        "description": "Suite",
        "releases": {
            "v1.0.0": [
                _manifest("suite-a", "acme.a", "1.0.0", "libs/a/Manifest.json"),
                _manifest("suite-b", "acme.b", "1.0.0", "libs/b/Manifest.json"),
            ],
        },
    },
}


def registry_data() -> dict[str, Any]:
    data: dict[str, Any] = {"repos": {"list": list(REGISTRY), "data": {}}, "compat": {}}
    for name, repo in REGISTRY.items():
        data["repos"]["data"][name] = {
            "description": repo["description"],
            "releases": {
                "list": list(repo["releases"]),
                "data": {
                    tag: {"prerelease": False, "manifests": manifests}
                    for tag, manifests in repo["releases"].items()
                },
            },
        }
    return data


class FakeDownloader:
    """按注册表内容在 dest 下生成库目录，记录调用"""

    def __init__(self, make_library: Callable[..., Path]) -> None:
        self.make_library = make_library
        self.calls: list[tuple[str, str]] = []

    def download(self, repo_name: str, tag: str, dest: Path) -> Path:
        self.calls.append((repo_name, tag))
        for raw in REGISTRY[repo_name]["releases"][tag]:
            lib_dir = dest / Path(raw["path"]).parent
            info = raw["info"]
            provides: dict[str, Any] = {}
            if repo_name == "acme/widgets":
                provides["application"] = {"class": "acme.widgets.Demo", "name": "widgets-demo"}
            self.make_library(
                lib_dir, raw["provides"]["namespace"], info["version"],
                name=info["name"], provides=provides,
            )
        return dest


@pytest.fixture
def downloader(new_library) -> FakeDownloader:
    return FakeDownloader(new_library)


@pytest.fixture
def cache_file(tmp_path: Path, dump_json) -> Path:
    return dump_json(tmp_path / "home" / "package-cache.json", registry_data())


@pytest.fixture
def pkg_project(tmp_path: Path, new_library, dump_json) -> Path:
    """带 compile.json 与 Manifest.json 的空项目"""
    root = tmp_path / "proj"
    new_library(root, "proj", "1.0.0")
    dump_json(root / "compile.json", {
        "targets": [{"type": "source", "outputPath": "compiled/source"}],
        "applications": [{"class": "proj.Application", "name": "proj"}],
        "libraries": ["."],
    })
    return root
