"""包兼容性索引

针对给定框架版本，遍历缓存中的仓库 → 发布 → 库清单，计算:
  - 每个仓库的最新版本 / 最新兼容版本 / 已安装版本
  - 展开后的库记录列表
  - 兼容仓库数量

最新兼容版本的选择与遍历顺序无关:
  在全部兼容的发布中优先非预发布版本，其次取 semver 最高者。
"""

from __future__ import annotations

import json
import logging
import posixpath
from pathlib import Path

from qxtool.core import version as semver
from qxtool.core.exceptions import InvalidVersionError
from qxtool.core.package.cache import PackageCache
from qxtool.core.package.lockfile import Lockfile
from qxtool.core.package.models import (
    LOCAL_REPO_NAME,
    CompatibilityResult,
    LibraryManifest,
    LibraryRecord,
    Repository,
    RepositorySummary,
)
from qxtool.utils.file_io import load_json

logger = logging.getLogger(__name__)

HIDDEN_MARKERS = ("(deprecated)", "(unlisted)")


def _strip_tag(tag_name: str) -> str:
    return tag_name[1:] if tag_name.startswith("v") else tag_name


def is_better_candidate(
    tag: str, prerelease: bool, current: tuple[str, bool] | None,
) -> bool:
    """候选发布是否优于当前选择：非预发布优先，其次 semver 更高"""
    if current is None:
        return True
    cur_tag, cur_prerelease = current
    if prerelease != cur_prerelease:
        return not prerelease
    try:
        return semver.gt(_strip_tag(tag), _strip_tag(cur_tag))
    except InvalidVersionError:
        return False


class PackageIndex:
    """基于 PackageCache + Lockfile 的兼容性索引构建器"""

    def __init__(
        self,
        cache: PackageCache,
        lockfile: Lockfile,
        *,
        project_dir: str | Path = ".",
        manifest_name: str = "Manifest.json",
    ) -> None:
        self.cache = cache
        self.lockfile = lockfile
        self.project_dir = Path(project_dir)
        self.manifest_name = manifest_name

    def build(
        self,
        framework_version: str,
        *,
        include_all: bool = False,
        include_local: bool = False,
    ) -> CompatibilityResult:
        """计算兼容性索引"""
        result = CompatibilityResult(framework_version=framework_version)

        if include_local:
            self._add_local_repository(result, framework_version)

        for repo in self.cache.repositories():
            desc = repo.description or ""
            if not include_all and any(m in desc for m in HIDDEN_MARKERS):
                logger.debug("跳过已弃用/未公开仓库: %s", repo.name)
                continue
            self._index_repository(result, repo, framework_version)

        logger.debug(
            "框架版本 %s 下共有 %d 个兼容仓库",
            framework_version, result.compat_count,
        )
        return result

    def _index_repository(
        self,
        result: CompatibilityResult,
        repo: Repository,
        framework_version: str,
    ) -> None:
        libraries = result.libraries.setdefault(repo.name, [])
        latest_version: str | None = None
        repo_installed: str | None = None
        best: tuple[str, bool] | None = None

        for release in repo.releases:
            tag_version = _strip_tag(release.tag_name)
            for raw in release.manifests:
                manifest = LibraryManifest.from_cache(raw)
                if manifest is None:
                    logger.debug(
                        "忽略 %s %s: 清单缺少 info 字段", repo.name, release.tag_name,
                    )
                    continue

                # 库版本必须与 tag 一致
                if manifest.version != tag_version:
                    logger.debug(
                        "忽略 %s %s 的库 '%s': tag 版本 '%s' 与库版本 '%s' 不一致",
                        repo.name, release.tag_name, manifest.name,
                        tag_version, manifest.version,
                    )
                    continue

                try:
                    if latest_version is None or semver.gt(
                        manifest.version, _strip_tag(latest_version),
                    ):
                        latest_version = release.tag_name
                except InvalidVersionError:
                    logger.debug(
                        "忽略 %s %s 的库 '%s': 无效版本 '%s'",
                        repo.name, release.tag_name, manifest.name, manifest.version,
                    )

                installed_version = self.lockfile.installed_tag(repo.name, manifest.name)
                if installed_version:
                    repo_installed = installed_version
                else:
                    local = self.lockfile.installed_library(manifest.name)
                    if local is not None and local.library_version:
                        installed_version = "v" + local.library_version

                compatibility = semver.satisfies(
                    framework_version, manifest.required_range, loose=True,
                )
                if compatibility and is_better_candidate(
                    release.tag_name, release.prerelease, best,
                ):
                    best = (release.tag_name, release.prerelease)

                libraries.append(LibraryRecord(
                    name=manifest.name,
                    namespace=manifest.namespace,
                    summary=manifest.summary,
                    version=manifest.version,
                    compatibility=compatibility,
                    required_range=manifest.required_range,
                    path=posixpath.dirname(manifest.path),
                    installed_version=installed_version or None,
                ))

        latest_compatible = best[0] if best else None
        if latest_compatible:
            result.compat_count += 1
            result.latest_compatible[repo.name] = latest_compatible
        result.repositories.append(RepositorySummary(
            name=repo.name,
            description=repo.description,
            installed_version=repo_installed,
            latest_version=latest_version,
            latest_compatible=latest_compatible,
        ))

    def _add_local_repository(
        self, result: CompatibilityResult, framework_version: str,
    ) -> None:
        """本地路径安装的库归入 _local_ 伪仓库"""
        result.repositories.append(RepositorySummary(
            name=LOCAL_REPO_NAME,
            description="Libraries on local filesystem",
        ))
        records = result.libraries.setdefault(LOCAL_REPO_NAME, [])
        for lib in self.lockfile.local_libraries():
            manifest_path = self.project_dir / lib.path / self.manifest_name
            try:
                manifest = load_json(manifest_path, default=None)
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("无法读取本地库清单 %s: %s", manifest_path, e)
                continue
            if not manifest or not isinstance(manifest.get("info"), dict):
                logger.warning("本地库清单缺失或无效: %s", manifest_path)
                continue
            info = manifest["info"]
            requires = manifest.get("requires") or {}
            required = (
                requires.get("@qooxdoo/framework")
                or requires.get("qooxdoo-sdk")
                or None
            )
            version = "v" + str(info.get("version", ""))
            records.append(LibraryRecord(
                name=info.get("name", ""),
                namespace=(manifest.get("provides") or {}).get("namespace", ""),
                summary=info.get("summary", "") or "",
                version=version,
                compatibility=semver.satisfies(framework_version, required, loose=True),
                required_range=required,
                path=lib.path,
                installed_version=version,
            ))

    def write_back(self, result: CompatibilityResult) -> None:
        """把当前框架版本的最新兼容索引写回缓存"""
        self.cache.set_compat(result.framework_version, result.latest_compatible)
        self.cache.save()
