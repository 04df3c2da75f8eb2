"""包系统迁移

1. 旧文件名改名: contrib.json -> qx-lock.json, contrib/ -> qx_packages/,
   contrib-cache.json -> package-cache.json；.gitignore 同步替换
2. 改名后强制重新安装，修正锁文件中的路径
3. Manifest.json 迁移（qooxdoo.json 列出的每个库，否则项目本身）

announce_only 时只报告需要迁移的内容。重复执行无副作用。
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from qxtool.core import version as semver
from qxtool.core.exceptions import UserError
from qxtool.utils.file_io import atomic_write, load_json, save_json

logger = logging.getLogger(__name__)

# Manifest 中已废弃的键 (段, 键)
LEGACY_MANIFEST_KEYS: tuple[tuple[str, str], ...] = (
    ("info", "qooxdoo-versions"),
    ("info", "qooxdoo-range"),
    ("provides", "type"),
    ("requires", "qxcompiler"),
    ("requires", "qooxdoo-compiler"),
    ("requires", "qooxdoo-sdk"),
)


@dataclass
class MigrationResult:
    needs_fix: bool = False
    skipped: bool = False


class MigrationGuard:
    """防止迁移重入（安装过程中再次触发迁移）"""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def active(self) -> bool:
        return self._lock.locked()


def normalize_authors(authors: Any) -> list[Any]:
    if isinstance(authors, list):
        return authors
    if isinstance(authors, str):
        return [{"name": authors}] if authors else []
    if isinstance(authors, dict):
        return [authors]
    return []


def manifest_needs_fix(manifest: dict[str, Any]) -> bool:
    info = manifest.get("info") or {}
    if not isinstance(info.get("authors"), list):
        return True
    if not semver.is_valid(str(info.get("version", ""))):
        return True
    return any(key in (manifest.get(section) or {}) for section, key in LEGACY_MANIFEST_KEYS)


def fix_manifest(manifest: dict[str, Any]) -> None:
    info = manifest.setdefault("info", {})
    info["authors"] = normalize_authors(info.get("authors"))
    coerced = semver.coerce(str(info.get("version", "")))
    if coerced:
        info["version"] = coerced
    for section, key in LEGACY_MANIFEST_KEYS:
        (manifest.get(section) or {}).pop(key, None)


class PackageMigrator:
    """执行或预告迁移"""

    def __init__(
        self,
        guard: MigrationGuard,
        *,
        project_dir: str | Path,
        config_dir: str | Path,
        file_pairs: list[tuple[str, str]],
        cache_pair: tuple[str, str],
        packages_dir: str = "qx_packages",
        legacy_packages_dir: str = "contrib",
        manifest_name: str = "Manifest.json",
        registry_name: str = "qooxdoo.json",
        compiler_version: str = "",
        framework_version: Callable[[], str] | None = None,
        reinstaller: Callable[[], None] | None = None,
    ) -> None:
        self.guard = guard
        self.project_dir = Path(project_dir)
        self.config_dir = Path(config_dir)
        self.file_pairs = file_pairs
        self.cache_pair = cache_pair
        self.packages_dir = packages_dir
        self.legacy_packages_dir = legacy_packages_dir
        self.manifest_name = manifest_name
        self.registry_name = registry_name
        self.compiler_version = compiler_version
        self.framework_version = framework_version
        self.reinstaller = reinstaller

    # ---- 文件改名 ----

    def files_to_rename(self) -> list[tuple[Path, Path]]:
        """(新路径, 旧路径)，旧路径存在且新路径不存在时需要改名"""
        pairs = [(self.project_dir / new, self.project_dir / old) for new, old in self.file_pairs]
        new, old = self.cache_pair
        pairs.append((self.config_dir / new, self.config_dir / old))
        return [(n, o) for n, o in pairs if o.exists() and not n.exists()]

    def _rename_files(self, pairs: list[tuple[Path, Path]]) -> None:
        for new, old in pairs:
            old.rename(new)
            logger.info("已改名: %s -> %s", old, new)
        gitignore = self.project_dir / ".gitignore"
        if gitignore.exists():
            text = gitignore.read_text(encoding="utf-8")
            replaced = text.replace(
                self.legacy_packages_dir + "/", self.packages_dir + "/",
            )
            if replaced != text:
                atomic_write(gitignore, replaced)
                logger.info("已更新 %s", gitignore)

    # ---- Manifest ----

    def manifest_paths(self) -> list[Path]:
        registry = load_json(self.project_dir / self.registry_name, default=None)
        if registry and registry.get("libraries"):
            return [
                self.project_dir / lib.get("path", ".") / self.manifest_name
                for lib in registry["libraries"]
            ]
        return [self.project_dir / self.manifest_name]

    def _migrate_manifest(self, path: Path, announce_only: bool) -> bool:
        manifest = load_json(path, default=None)
        if not manifest:
            logger.debug("没有 %s，跳过", path)
            return False
        needs_fix = False
        changed = False
        if manifest_needs_fix(manifest):
            needs_fix = True
            if announce_only:
                logger.warning("*** %s 需要更新", path)
            else:
                fix_manifest(manifest)
                changed = True

        requires = manifest.get("requires") or {}
        if not requires.get("@qooxdoo/compiler") or not requires.get("@qooxdoo/framework"):
            needs_fix = True
            if announce_only:
                logger.warning("*** %s 中的框架 / 编译器依赖需要更新", path)
            else:
                if self.framework_version is None:
                    raise UserError("无法确定框架版本，不能更新 Manifest 依赖")
                requires = manifest.setdefault("requires", {})
                requires.setdefault("@qooxdoo/compiler", f"^{self.compiler_version}")
                requires.setdefault("@qooxdoo/framework", f"^{self.framework_version()}")
                changed = True

        if changed:
            save_json(path, manifest)
            logger.info("已更新 %s", path)
        return needs_fix

    # ---- 入口 ----

    def migrate(self, announce_only: bool = False) -> MigrationResult:
        if not self.guard.acquire():
            logger.debug("迁移已在进行中，跳过")
            return MigrationResult(needs_fix=False, skipped=True)
        try:
            needs_fix = False
            renames = self.files_to_rename()
            if renames:
                needs_fix = True
                if announce_only:
                    for new, old in renames:
                        logger.warning("*** %s 需要改名为 %s", old, new)
                else:
                    self._rename_files(renames)
                    if self.reinstaller is not None:
                        logger.info("正在修正锁文件中的路径...")
                        self.reinstaller()

            for path in self.manifest_paths():
                if self._migrate_manifest(path, announce_only):
                    needs_fix = True
        finally:
            self.guard.release()

        if needs_fix and not announce_only:
            logger.info("迁移完成")
        elif not needs_fix:
            logger.info("所有内容均为最新，无需迁移")
        return MigrationResult(needs_fix=needs_fix)
