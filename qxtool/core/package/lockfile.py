"""项目锁文件（qx-lock.json）

记录已安装库及其来源，仅由安装 / 删除 / 迁移命令修改，
兼容性索引只读取它来标注 "已安装" 状态。
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from qxtool.core.exceptions import ConfigError
from qxtool.core.package.models import LOCKFILE_VERSION, InstalledLibraryRecord
from qxtool.utils.file_io import load_json, save_json

logger = logging.getLogger(__name__)


class Lockfile:
    """锁文件读写"""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.version = LOCKFILE_VERSION
        self.libraries: list[InstalledLibraryRecord] = []
        self._load()

    def _load(self) -> None:
        try:
            data = load_json(self.path, default=None)
        except json.JSONDecodeError as e:
            raise ConfigError(f"锁文件格式错误: {self.path} ({e})") from e
        if not data:
            return
        self.version = data.get("version", LOCKFILE_VERSION)
        self.libraries = [
            InstalledLibraryRecord.from_dict(item)
            for item in data.get("libraries") or []
        ]

    @property
    def exists(self) -> bool:
        return self.path.exists()

    # ---- 查询 ----

    def installed_tag(self, repo_name: str, library_name: str) -> str | None:
        """远程安装的 (仓库, 库) 对应的 tag"""
        for lib in self.libraries:
            if lib.repo_name == repo_name and lib.library_name == library_name:
                return lib.repo_tag
        return None

    def installed_library(self, library_name: str) -> InstalledLibraryRecord | None:
        for lib in self.libraries:
            if lib.library_name == library_name:
                return lib
        return None

    def find_by_uri(self, uri: str) -> InstalledLibraryRecord | None:
        for lib in self.libraries:
            if lib.uri == uri:
                return lib
        return None

    def local_libraries(self) -> list[InstalledLibraryRecord]:
        return [lib for lib in self.libraries if lib.repo_name is None]

    def packages_map(self) -> dict[str, str]:
        """uri -> 安装路径，供编译期依赖检查使用"""
        return {lib.uri: lib.path for lib in self.libraries}

    # ---- 修改 ----

    def add_or_replace(self, record: InstalledLibraryRecord) -> None:
        for i, lib in enumerate(self.libraries):
            if lib.uri == record.uri:
                self.libraries[i] = record
                return
        self.libraries.append(record)

    def remove_where(
        self, predicate: Callable[[InstalledLibraryRecord], bool],
    ) -> list[InstalledLibraryRecord]:
        """删除满足条件的记录，返回被删除的记录"""
        removed = [lib for lib in self.libraries if predicate(lib)]
        self.libraries = [lib for lib in self.libraries if not predicate(lib)]
        return removed

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "libraries": [lib.to_dict() for lib in self.libraries],
        }

    def save(self) -> None:
        save_json(self.path, self.to_dict())
        logger.info("锁文件已更新: %s (%d 个库)", self.path, len(self.libraries))
