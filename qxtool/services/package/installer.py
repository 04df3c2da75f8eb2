"""包安装

职责：
- 解析 owner/repo[/lib/path][@tag]
- 选择 tag（未指定时取当前框架版本下的最新兼容发布）
- 下载发布归档到 qx_packages/<owner>_<repo>_<tag>
- 写锁文件记录，更新项目 Manifest.json 的 requires 与 compile.json 的 applications
"""

from __future__ import annotations

import logging
import os
import posixpath
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from qxtool.core import version as semver
from qxtool.core.compile.dependencies import is_package_requirement
from qxtool.core.exceptions import UserError
from qxtool.core.package.cache import PackageCache
from qxtool.core.package.fetcher import ArchiveDownloader
from qxtool.core.package.index import PackageIndex, is_better_candidate
from qxtool.core.package.lockfile import Lockfile
from qxtool.core.package.models import InstalledLibraryRecord, LibraryManifest, Release
from qxtool.utils.file_io import load_json, save_json

logger = logging.getLogger(__name__)


@dataclass
class LockfileMutation:
    """一次安装对锁文件的修改"""

    installed: list[InstalledLibraryRecord] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def merge(self, other: LockfileMutation) -> None:
        self.installed.extend(other.installed)
        self.skipped.extend(other.skipped)


def parse_package_spec(spec: str) -> tuple[str, str, str | None]:
    """owner/repo[/lib/path][@tag] -> (repo_name, lib_path, tag)"""
    uri, _, tag = spec.partition("@")
    parts = [p for p in uri.strip("/").split("/") if p]
    if len(parts) < 2:
        raise UserError(f"包名格式应为 owner/repo[/path][@tag]: {spec}")
    return "/".join(parts[:2]), "/".join(parts[2:]), tag or None


def manifest_dir(manifest_path: str) -> str:
    """缓存中清单文件路径 -> 仓库内的库目录（根目录为空串）"""
    lib_dir = posixpath.normpath(posixpath.dirname(manifest_path) or ".")
    return "" if lib_dir == "." else lib_dir


class PackageInstaller:
    """从包仓库或本地路径安装库"""

    def __init__(
        self,
        cache: PackageCache,
        lockfile: Lockfile,
        downloader: ArchiveDownloader,
        *,
        project_dir: str | Path = ".",
        packages_dir: str = "qx_packages",
        manifest_name: str = "Manifest.json",
        compile_config_name: str = "compile.json",
    ) -> None:
        self.cache = cache
        self.lockfile = lockfile
        self.downloader = downloader
        self.project_dir = Path(project_dir)
        self.packages_dir = packages_dir
        self.manifest_name = manifest_name
        self.compile_config_name = compile_config_name

    # ---- tag 选择 ----

    def latest_compatible_tag(self, repo_name: str, framework_version: str) -> str:
        tag = self.cache.compat(framework_version).get(repo_name)
        if tag:
            return tag
        index = PackageIndex(
            self.cache, self.lockfile,
            project_dir=self.project_dir, manifest_name=self.manifest_name,
        )
        result = index.build(framework_version, include_all=True)
        index.write_back(result)
        tag = result.latest_compatible.get(repo_name)
        if not tag:
            raise UserError(
                f"{repo_name} 没有与框架版本 {framework_version} 兼容的发布",
            )
        return tag

    def tag_for_range(
        self, repo_name: str, required_range: str, framework_version: str,
    ) -> str:
        """满足 required_range 且与框架兼容的最佳发布"""
        repo = self.cache.repository(repo_name)
        if repo is None:
            raise UserError(f"包缓存中没有仓库 {repo_name}，请先运行 'qxtool package update'")
        best: tuple[str, bool] | None = None
        for release in repo.releases:
            tag_version = release.tag_name.lstrip("v")
            if not semver.satisfies(tag_version, required_range, loose=True):
                continue
            compatible = any(
                semver.satisfies(framework_version, raw.get("qx_versions", ""), loose=True)
                for raw in release.manifests
            )
            if compatible and is_better_candidate(release.tag_name, release.prerelease, best):
                best = (release.tag_name, release.prerelease)
        if best is None:
            raise UserError(
                f"{repo_name} 没有满足 {required_range} 且与框架版本 "
                f"{framework_version} 兼容的发布",
            )
        return best[0]

    def _release(self, repo_name: str, tag: str) -> Release:
        repo = self.cache.repository(repo_name)
        if repo is None:
            raise UserError(f"包缓存中没有仓库 {repo_name}，请先运行 'qxtool package update'")
        for release in repo.releases:
            if release.tag_name == tag:
                return release
        raise UserError(f"{repo_name} 没有发布 {tag}")

    # ---- 安装 ----

    def install(
        self,
        spec: str,
        framework_version: str,
        *,
        save: bool = True,
        reinstall: bool = False,
    ) -> LockfileMutation:
        repo_name, lib_path, tag = parse_package_spec(spec)
        if tag is None:
            tag = self.latest_compatible_tag(repo_name, framework_version)
        release = self._release(repo_name, tag)

        mutation = LockfileMutation()
        owner, repo = repo_name.split("/")
        dest_rel = posixpath.join(self.packages_dir, f"{owner}_{repo}_{tag}")
        dest = self.project_dir / dest_rel
        if reinstall and dest.exists():
            shutil.rmtree(dest)

        candidates: list[LibraryManifest] = []
        for raw in release.manifests:
            manifest = LibraryManifest.from_cache(raw)
            if manifest is None:
                continue
            if lib_path and manifest_dir(manifest.path) != lib_path:
                continue
            candidates.append(manifest)
        if not candidates:
            raise UserError(f"{spec}: 发布 {tag} 中没有匹配的库")

        pending = []
        for manifest in candidates:
            lib_dir = manifest_dir(manifest.path)
            uri = posixpath.join(repo_name, lib_dir) if lib_dir else repo_name
            existing = self.lockfile.find_by_uri(uri)
            if existing is not None and existing.repo_tag == tag and not reinstall:
                logger.info("%s@%s 已安装，跳过", uri, tag)
                mutation.skipped.append(uri)
                continue
            pending.append((manifest, lib_dir, uri))
        if not pending:
            return mutation

        logger.info("安装 %s@%s ...", repo_name, tag)
        self.downloader.download(repo_name, tag, dest)

        for manifest, lib_dir, uri in pending:
            record = InstalledLibraryRecord(
                library_name=manifest.name,
                uri=uri,
                path=posixpath.join(dest_rel, lib_dir) if lib_dir else dest_rel,
                repo_name=repo_name,
                repo_tag=tag,
                library_version=manifest.version,
            )
            self.lockfile.add_or_replace(record)
            mutation.installed.append(record)
            if save:
                self._add_requirement(uri, f"^{manifest.version}")
            self._add_application(self.project_dir / record.path)
        self.lockfile.save()
        return mutation

    def install_from_path(
        self, uri: str, from_path: str | Path, *, save: bool = True,
    ) -> LockfileMutation:
        """安装本地目录中的库，记录 repo_name=None"""
        lib_dir = Path(from_path)
        manifest = load_json(lib_dir / self.manifest_name, default=None)
        if not manifest or not isinstance(manifest.get("info"), dict):
            raise UserError(f"{lib_dir} 中没有有效的 {self.manifest_name}")
        info = manifest["info"]
        rel = Path(os.path.relpath(os.path.abspath(lib_dir), os.path.abspath(self.project_dir)))
        record = InstalledLibraryRecord(
            library_name=info.get("name", ""),
            uri=uri,
            path=rel.as_posix(),
            repo_name=None,
            library_version=str(info.get("version", "")) or None,
        )
        self.lockfile.add_or_replace(record)
        if save and record.library_version:
            self._add_requirement(uri, f"^{record.library_version}")
        self._add_application(lib_dir)
        self.lockfile.save()
        logger.info("已从本地路径安装 %s -> %s", uri, record.path)
        return LockfileMutation(installed=[record])

    def install_requirements(self, framework_version: str) -> LockfileMutation:
        """安装项目 Manifest.json requires 中的全部包依赖"""
        manifest = load_json(self.project_dir / self.manifest_name, default=None) or {}
        mutation = LockfileMutation()
        for uri, required_range in (manifest.get("requires") or {}).items():
            if not is_package_requirement(uri):
                continue
            repo_name, _lib_path, _tag = parse_package_spec(uri)
            tag = self.tag_for_range(repo_name, required_range, framework_version)
            mutation.merge(self.install(f"{uri}@{tag}", framework_version, save=False))
        return mutation

    def reinstall_all(self, framework_version: str) -> LockfileMutation:
        """按锁文件重新下载全部远程安装的库"""
        mutation = LockfileMutation()
        for record in list(self.lockfile.libraries):
            if record.repo_name is None or record.repo_tag is None:
                continue
            mutation.merge(self.install(
                f"{record.uri}@{record.repo_tag}", framework_version,
                save=False, reinstall=True,
            ))
        return mutation

    # ---- 项目文件 ----

    def _add_requirement(self, uri: str, required_range: str) -> None:
        path = self.project_dir / self.manifest_name
        manifest = load_json(path, default=None)
        if not manifest:
            logger.debug("项目中没有 %s，跳过 requires 更新", self.manifest_name)
            return
        requires = manifest.setdefault("requires", {})
        if requires.get(uri) == required_range:
            return
        requires[uri] = required_range
        save_json(path, manifest)
        logger.debug("%s: requires[%s] = %s", path, uri, required_range)

    def _add_application(self, lib_dir: Path) -> None:
        """库提供的 application 追加到 compile.json（已存在则跳过）"""
        manifest = load_json(lib_dir / self.manifest_name, default=None) or {}
        app: dict[str, Any] | None = (manifest.get("provides") or {}).get("application")
        if not app:
            return
        compile_path = self.project_dir / self.compile_config_name
        data = load_json(compile_path, default=None)
        if data is None:
            return
        apps = data.setdefault("applications", [])
        if any(find_application(existing, app) for existing in apps):
            return
        apps.append(dict(app))
        save_json(compile_path, data)
        logger.info("已添加应用 %s 到 %s", app.get("name") or app.get("class"), compile_path)


def find_application(candidate: dict[str, Any], provided: dict[str, Any]) -> bool:
    """有名称时按名称匹配，否则按 class 匹配"""
    if provided.get("name") and candidate.get("name"):
        return provided["name"] == candidate["name"]
    return provided.get("class") == candidate.get("class")
