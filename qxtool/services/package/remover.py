"""包删除

请求含两段以上路径 (owner/repo/lib) 时按 uri 匹配，否则按仓库名匹配；
每个匹配的库同时从 compile.json 的 applications 和 Manifest.json 的 requires 中移除。
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from qxtool.core.exceptions import UserError
from qxtool.core.package.lockfile import Lockfile
from qxtool.core.package.models import InstalledLibraryRecord
from qxtool.services.package.installer import find_application
from qxtool.utils.file_io import load_json, save_json

logger = logging.getLogger(__name__)


class PackageRemover:
    def __init__(
        self,
        lockfile: Lockfile,
        *,
        project_dir: str | Path = ".",
        manifest_name: str = "Manifest.json",
        compile_config_name: str = "compile.json",
    ) -> None:
        self.lockfile = lockfile
        self.project_dir = Path(project_dir)
        self.manifest_name = manifest_name
        self.compile_config_name = compile_config_name

    def remove(self, uri: str) -> list[Path]:
        """删除匹配的库，返回被删除的目录"""
        if not uri:
            raise UserError("未指定要删除的仓库名")
        parts = uri.split("/")
        by_uri = len(parts) > 2

        def _matches(record: InstalledLibraryRecord) -> bool:
            return (record.uri if by_uri else record.repo_name) == uri

        found: list[str] = []
        for record in self.lockfile.libraries:
            if not _matches(record):
                continue
            self._remove_application(record)
            self._remove_requirement(record.uri)
            # 锁文件路径比请求更深时删除上一级（整个发布目录）
            path = record.path
            if len(path.split("/")) > len(parts):
                path = Path(path).parent.as_posix()
            if path not in found:
                found.append(path)

        self.lockfile.remove_where(_matches)
        deleted: list[Path] = []
        for rel in found:
            target = self.project_dir / rel
            if target.exists():
                shutil.rmtree(target)
            deleted.append(target)
        if found:
            logger.info("已删除 %s 的 %d 个条目", uri, len(found))
        else:
            logger.warning("没有 %s 的安装记录", uri)
        self.lockfile.save()
        return deleted

    def _remove_requirement(self, uri: str) -> None:
        path = self.project_dir / self.manifest_name
        manifest = load_json(path, default=None)
        if manifest and uri in (manifest.get("requires") or {}):
            del manifest["requires"][uri]
            save_json(path, manifest)

    def _remove_application(self, record: InstalledLibraryRecord) -> None:
        lib_manifest = load_json(
            self.project_dir / record.path / self.manifest_name, default=None,
        ) or {}
        provided = (lib_manifest.get("provides") or {}).get("application")
        if not provided:
            logger.debug("%s 没有提供应用", record.uri)
            return
        compile_path = self.project_dir / self.compile_config_name
        data = load_json(compile_path, default=None)
        if not data:
            return
        apps = data.get("applications") or []
        for i, app in enumerate(apps):
            if find_application(app, provided):
                del apps[i]
                save_json(compile_path, data)
                logger.info("已移除应用 %s", app.get("name") or app.get("class"))
                return
