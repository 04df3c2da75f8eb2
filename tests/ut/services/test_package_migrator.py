"""包系统迁移测试 - 旧文件改名 / Manifest 修正 / 重入保护"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from qxtool.services.package.migrator import (
    MigrationGuard,
    PackageMigrator,
    fix_manifest,
    manifest_needs_fix,
    normalize_authors,
)


def _read(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def legacy_project(tmp_path: Path, dump_json) -> Path:
    root = tmp_path / "legacy"
    dump_json(root / "Manifest.json", {
        "info": {"name": "old", "version": "1.0", "authors": "Someone", "qooxdoo-range": "^6.0.0"},
        "provides": {"namespace": "old", "type": "library"},
        "requires": {"qooxdoo-sdk": "^6.0.0"},
    })
    dump_json(root / "contrib.json", {"version": "2.0.0", "libraries": []})
    (root / "contrib").mkdir()
    (root / ".gitignore").write_text("compiled/\ncontrib/\n", encoding="utf-8")
    return root


def _migrator(project: Path, home: Path, guard: MigrationGuard | None = None,
              calls: list[str] | None = None) -> PackageMigrator:
    return PackageMigrator(
        guard or MigrationGuard(),
        project_dir=project,
        config_dir=home,
        file_pairs=[("qx-lock.json", "contrib.json"), ("qx_packages", "contrib")],
        cache_pair=("package-cache.json", "contrib-cache.json"),
        compiler_version="1.0.0",
        framework_version=lambda: "7.0.0",
        reinstaller=(lambda: calls.append("reinstall")) if calls is not None else None,
    )


class TestManifestHelpers:
    @pytest.mark.parametrize(("authors", "expected"), [
        ("Someone", [{"name": "Someone"}]),
        ("", []),
        ({"name": "A"}, [{"name": "A"}]),
        ([{"name": "B"}], [{"name": "B"}]),
        (None, []),
    ])
    def test_normalize_authors(self, authors, expected) -> None:
        assert normalize_authors(authors) == expected

    def test_clean_manifest_needs_nothing(self) -> None:
        manifest = {"info": {"version": "1.0.0", "authors": []}, "provides": {}}
        assert not manifest_needs_fix(manifest)

    def test_fix_manifest(self) -> None:
        manifest = {
            "info": {"version": "v2.1", "authors": "X", "qooxdoo-versions": ["6.0"]},
            "requires": {"qxcompiler": "^1.0.0", "acme/lib": "^1.0.0"},
        }
        assert manifest_needs_fix(manifest)
        fix_manifest(manifest)
        assert manifest["info"] == {"version": "2.1.0", "authors": [{"name": "X"}]}
        assert manifest["requires"] == {"acme/lib": "^1.0.0"}
        assert not manifest_needs_fix(manifest)


class TestMigrate:
    def test_announce_only_changes_nothing(self, legacy_project: Path, tmp_path: Path) -> None:
        calls: list[str] = []
        before = (legacy_project / "Manifest.json").read_text(encoding="utf-8")
        result = _migrator(legacy_project, tmp_path / "home", calls=calls).migrate(
            announce_only=True,
        )
        assert result.needs_fix
        assert (legacy_project / "contrib.json").exists()
        assert (legacy_project / "Manifest.json").read_text(encoding="utf-8") == before
        assert calls == []

    def test_migrate_then_idempotent(self, legacy_project: Path, tmp_path: Path) -> None:
        home = tmp_path / "home"
        home.mkdir()
        (home / "contrib-cache.json").write_text("{}", encoding="utf-8")
        calls: list[str] = []
        migrator = _migrator(legacy_project, home, calls=calls)

        assert migrator.migrate().needs_fix
        assert (legacy_project / "qx-lock.json").exists()
        assert (legacy_project / "qx_packages").is_dir()
        assert not (legacy_project / "contrib").exists()
        assert (home / "package-cache.json").exists()
        gitignore = (legacy_project / ".gitignore").read_text(encoding="utf-8")
        assert gitignore == "compiled/\nqx_packages/\n"
        assert calls == ["reinstall"]

        manifest = _read(legacy_project / "Manifest.json")
        assert manifest["info"] == {
            "name": "old", "version": "1.0.0", "authors": [{"name": "Someone"}],
        }
        assert manifest["provides"] == {"namespace": "old"}
        assert manifest["requires"] == {
            "@qooxdoo/compiler": "^1.0.0", "@qooxdoo/framework": "^7.0.0",
        }

        second = migrator.migrate()
        assert not second.needs_fix
        assert calls == ["reinstall"]

    def test_existing_new_file_is_not_overwritten(
        self, legacy_project: Path, tmp_path: Path, dump_json,
    ) -> None:
        dump_json(legacy_project / "qx-lock.json", {"version": "2.0.0", "libraries": []})
        renames = _migrator(legacy_project, tmp_path / "home").files_to_rename()
        assert renames == [(legacy_project / "qx_packages", legacy_project / "contrib")]

    def test_registry_lists_manifests(
        self, tmp_path: Path, dump_json, new_library,
    ) -> None:
        root = tmp_path / "multi"
        dump_json(root / "qooxdoo.json", {"libraries": [{"path": "libs/one"}, {"path": "libs/two"}]})
        new_library(root / "libs" / "one", "one", requires={
            "@qooxdoo/compiler": "^1.0.0", "@qooxdoo/framework": "^7.0.0",
        })
        new_library(root / "libs" / "two", "two")
        migrator = _migrator(root, tmp_path / "home")
        assert migrator.manifest_paths() == [
            root / "libs/one/Manifest.json", root / "libs/two/Manifest.json",
        ]
        assert migrator.migrate().needs_fix
        assert _read(root / "libs/two/Manifest.json")["requires"]["@qooxdoo/framework"] == "^7.0.0"


class TestGuard:
    def test_busy_guard_skips(self, legacy_project: Path, tmp_path: Path) -> None:
        guard = MigrationGuard()
        assert guard.acquire()
        try:
            result = _migrator(legacy_project, tmp_path / "home", guard=guard).migrate()
        finally:
            guard.release()
        assert result.skipped
        assert not result.needs_fix
        assert (legacy_project / "contrib.json").exists()

    def test_guard_released_after_run(self, legacy_project: Path, tmp_path: Path) -> None:
        guard = MigrationGuard()
        _migrator(legacy_project, tmp_path / "home", guard=guard).migrate(announce_only=True)
        assert not guard.active
