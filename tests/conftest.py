"""测试公共夹具：隔离配置 + 项目 / 库目录构造"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

import qxtool.core.config as cfgmod
from qxtool.services.container import reset_container


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def make_library(
    root: Path,
    namespace: str,
    version: str = "1.0.0",
    *,
    classes: dict[str, str] | None = None,
    requires: dict[str, str] | None = None,
    name: str | None = None,
    provides: dict[str, Any] | None = None,
) -> Path:
    """在 root 下创建一个库：Manifest.json + source/class 下的类文件"""
    manifest: dict[str, Any] = {
        "info": {"name": name or namespace, "version": version, "authors": []},
        "provides": {"namespace": namespace, **(provides or {})},
        "requires": dict(requires or {}),
    }
    write_json(root / "Manifest.json", manifest)
    class_dir = root / "source" / "class"
    class_dir.mkdir(parents=True, exist_ok=True)
    for class_name, text in (classes or {}).items():
        path = class_dir / (class_name.replace(".", "/") + ".js")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """每个测试使用独立的配置目录，避免读写用户目录"""
    cfg = cfgmod.Config(config_dir=str(tmp_path / "qxtool-home"))
    monkeypatch.setattr(cfgmod, "_current", cfg)
    reset_container()
    yield cfg
    reset_container()


@pytest.fixture
def new_library():
    return make_library


@pytest.fixture
def dump_json():
    return write_json


@pytest.fixture
def framework_dir(tmp_path: Path) -> Path:
    return make_library(
        tmp_path / "framework", "qx", "7.0.0",
        classes={"qx.core.Object": 'qx.Class.define("qx.core.Object", {});\n'},
    )


@pytest.fixture
def project(tmp_path: Path, framework_dir: Path) -> Path:
    """最小项目：一个 source 目标、一个应用、引用外部框架库"""
    root = tmp_path / "app"
    make_library(
        root, "myapp", "1.0.0",
        requires={"@qooxdoo/framework": "^7.0.0", "@qooxdoo/compiler": "^1.0.0"},
        classes={
            "myapp.Application": (
                '// @require(qx.core.Object)\n'
                'qx.Class.define("myapp.Application", {\n'
                '  extend: qx.core.Object,\n'
                '  members: { main() { this.tr("Hello"); } }\n'
                '});\n'
            ),
        },
    )
    write_json(root / "compile.json", {
        "targets": [{"type": "source", "outputPath": "compiled/source"}],
        "applications": [{"class": "myapp.Application", "name": "myapp"}],
        "libraries": [".", str(framework_dir)],
    })
    return root
