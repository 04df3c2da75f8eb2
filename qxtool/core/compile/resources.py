"""资源管理

按 @asset 模式在各库的资源目录中查找文件，记录图片尺寸，
并把扫描结果持久化到资源数据库（JSON）以便下次增量复用。
"""

from __future__ import annotations

import fnmatch
import json
import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from qxtool.utils.file_io import load_json, save_json

if TYPE_CHECKING:
    from qxtool.core.compile.library import Library

logger = logging.getLogger(__name__)


@dataclass
class Asset:
    library_name: str
    filename: str
    source_path: Path
    file_info: dict[str, Any] = field(default_factory=dict)

    def resource_entry(self) -> list[Any]:
        """pkgdata.resources 中的数组: [宽, 高, 扩展名, 库 (, 组合图, x, y)]"""
        ext = self.source_path.suffix.lstrip(".")
        entry: list[Any] = [
            self.file_info.get("width"), self.file_info.get("height"),
            ext, self.library_name,
        ]
        if self.file_info.get("composite") is not None:
            entry.extend([
                self.file_info["composite"],
                self.file_info.get("x"), self.file_info.get("y"),
            ])
        return entry


def image_size(path: Path) -> tuple[int, int] | None:
    """读取 PNG / GIF 头部的宽高，其余格式返回 None"""
    try:
        with open(path, "rb") as f:
            head = f.read(32)
    except OSError:
        return None
    if head[:8] == b"\x89PNG\r\n\x1a\n" and len(head) >= 24:
        width, height = struct.unpack(">II", head[16:24])
        return width, height
    if head[:6] in (b"GIF87a", b"GIF89a") and len(head) >= 10:
        width, height = struct.unpack("<HH", head[6:10])
        return width, height
    return None


class ResourceManager:
    """资源查找 + 资源数据库"""

    def __init__(self, libraries: dict[str, Library], db_filename: Path) -> None:
        self.libraries = libraries
        self.db_filename = Path(db_filename)
        self._db: dict[str, dict[str, Any]] = {}
        self._dirty = False
        try:
            self._db = load_json(self.db_filename, default={}) or {}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("资源数据库无法读取，将重新生成: %s (%s)", self.db_filename, e)

    def _library_files(self, lib: Library) -> list[str]:
        root = lib.resource_dir
        if not root.is_dir():
            return []
        return sorted(
            p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file()
        )

    def _file_info(self, lib: Library, filename: str) -> dict[str, Any]:
        path = lib.resource_dir / filename
        mtime = path.stat().st_mtime
        lib_db = self._db.setdefault(lib.namespace, {})
        cached = lib_db.get(filename)
        if cached and cached.get("mtime") == mtime:
            return {k: v for k, v in cached.items() if k != "mtime"}
        info: dict[str, Any] = {}
        size = image_size(path)
        if size:
            info["width"], info["height"] = size
        lib_db[filename] = {"mtime": mtime, **info}
        self._dirty = True
        return info

    def get_assets(self, patterns: list[str]) -> list[Asset]:
        """按模式匹配所有库的资源文件，单个文件失败只记录日志"""
        if not patterns:
            return []
        assets: dict[str, Asset] = {}
        for lib in self.libraries.values():
            for filename in self._library_files(lib):
                if filename in assets:
                    continue
                if not any(fnmatch.fnmatchcase(filename, p) for p in patterns):
                    continue
                try:
                    info = self._file_info(lib, filename)
                except OSError as e:
                    logger.error("读取资源失败 %s/%s: %s", lib.namespace, filename, e)
                    continue
                assets[filename] = Asset(
                    library_name=lib.namespace,
                    filename=filename,
                    source_path=lib.resource_dir / filename,
                    file_info=info,
                )
        return [assets[k] for k in sorted(assets)]

    def save_database(self) -> None:
        if not self._dirty:
            return
        save_json(self.db_filename, self._db)
        self._dirty = False
        logger.debug("资源数据库已保存: %s", self.db_filename)
