"""包注册表缓存（package-cache.json）

结构:
    {"repos": {"list": [...], "data": {name: {description, releases: {list, data}}}},
     "compat": {framework_version: {repo_name: tag}}}
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from qxtool.core.package.models import Release, Repository
from qxtool.utils.file_io import load_json, save_json

logger = logging.getLogger(__name__)


def empty_cache() -> dict[str, Any]:
    return {"repos": {"list": [], "data": {}}, "compat": {}}


class PackageCache:
    """仓库 / 发布 / 清单缓存，附带按框架版本分组的兼容性索引"""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        try:
            data = load_json(self.path)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("包缓存无法读取，使用空缓存: %s (%s)", self.path, e)
            return empty_cache()
        if not isinstance(data, dict):
            return empty_cache()
        data.setdefault("repos", {"list": [], "data": {}})
        data["repos"].setdefault("list", [])
        data["repos"].setdefault("data", {})
        data.setdefault("compat", {})
        return data

    # ---- 读取 ----

    @property
    def repo_names(self) -> list[str]:
        return list(self.data["repos"]["list"])

    def has_repository(self, name: str) -> bool:
        return name in self.data["repos"]["list"]

    def repository(self, name: str) -> Repository | None:
        raw = self.data["repos"]["data"].get(name)
        if raw is None:
            return None
        releases_raw = raw.get("releases") or {}
        release_data = releases_raw.get("data") or {}
        releases = []
        for tag in releases_raw.get("list") or []:
            entry = release_data.get(tag) or {}
            releases.append(Release(
                tag_name=tag,
                prerelease=bool(entry.get("prerelease", False)),
                manifests=list(entry.get("manifests") or []),
            ))
        return Repository(
            name=name,
            description=raw.get("description", "") or "",
            releases=releases,
        )

    def repositories(self) -> list[Repository]:
        """按缓存列表顺序返回全部仓库"""
        repos = []
        for name in self.repo_names:
            repo = self.repository(name)
            if repo is not None:
                repos.append(repo)
        return repos

    def compat(self, framework_version: str) -> dict[str, str]:
        return dict(self.data["compat"].get(framework_version) or {})

    # ---- 写入 ----

    def set_compat(self, framework_version: str, latest: dict[str, str]) -> None:
        """只更新当前框架版本的兼容索引，其它版本的旧条目保留"""
        self.data["compat"][framework_version] = dict(latest)

    def replace_repos(self, repos: dict[str, Any]) -> None:
        """整体替换仓库数据（update 命令），兼容索引随之失效"""
        self.data["repos"] = {
            "list": list(repos.get("list") or []),
            "data": dict(repos.get("data") or {}),
        }
        self.data["compat"] = {}

    def save(self) -> None:
        save_json(self.path, self.data)
        logger.debug("包缓存已保存: %s", self.path)
