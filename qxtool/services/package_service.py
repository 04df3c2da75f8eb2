"""包管理服务 - update / list / install / remove / migrate

组合 PackageCache、Lockfile、PackageIndex 与 services.package 下的各执行器。
CLI 与编译服务均通过 ServiceContainer.packages 获取实例。
"""

from __future__ import annotations

import logging
from pathlib import Path

from qxtool import __version__
from qxtool.core.config import Config
from qxtool.core.exceptions import UserError
from qxtool.core.package.cache import PackageCache
from qxtool.core.package.fetcher import ArchiveDownloader, GithubArchiveDownloader
from qxtool.core.package.index import PackageIndex
from qxtool.core.package.listing import (
    ListOptions,
    build_rows,
    render_repository_detail,
    render_rows,
)
from qxtool.core.package.lockfile import Lockfile
from qxtool.services.package import (
    LockfileMutation,
    MigrationGuard,
    MigrationResult,
    PackageInstaller,
    PackageMigrator,
    PackageRemover,
)
from qxtool.utils.file_io import load_json
from qxtool.utils.net import fetch_json, validate_url_scheme

logger = logging.getLogger(__name__)


class PackageService:
    """项目级包管理"""

    def __init__(
        self,
        config: Config,
        *,
        project_dir: str | Path = ".",
        downloader: ArchiveDownloader | None = None,
        compiler_version: str = __version__,
    ) -> None:
        self.config = config
        self.project_dir = Path(project_dir)
        self.downloader = downloader or GithubArchiveDownloader(
            config.archive_url_template, timeout=config.request_timeout,
        )
        self.compiler_version = compiler_version
        self.migration_guard = MigrationGuard()
        self._cache: PackageCache | None = None
        self._lockfile: Lockfile | None = None

    # ---- 数据文件 ----

    @property
    def cache(self) -> PackageCache:
        if self._cache is None:
            self._cache = PackageCache(self.config.package_cache_path)
        return self._cache

    @property
    def lockfile_path(self) -> Path:
        return self.project_dir / self.config.lockfile_name

    @property
    def lockfile(self) -> Lockfile:
        if self._lockfile is None:
            self._lockfile = Lockfile(self.lockfile_path)
        return self._lockfile

    def reload(self) -> None:
        """文件被外部改名 / 修改后丢弃已加载的缓存与锁文件"""
        self._cache = None
        self._lockfile = None

    def packages_map(self) -> dict[str, str]:
        return self.lockfile.packages_map()

    def framework_version(self, qx_version: str | None = None) -> str:
        """项目使用的框架版本：显式指定 > compile.json 中的 qx 库 > 全局框架"""
        if qx_version:
            return qx_version
        manifest_name = self.config.manifest_name
        compile_data = load_json(
            self.project_dir / self.config.compile_config_name, default=None,
        ) or {}
        candidates = [self.project_dir / p for p in compile_data.get("libraries") or []]
        if self.config.framework_path:
            candidates.append(Path(self.config.framework_path))
        for lib_dir in candidates:
            manifest = load_json(lib_dir / manifest_name, default=None) or {}
            if (manifest.get("provides") or {}).get("namespace") == "qx":
                version = (manifest.get("info") or {}).get("version")
                if version:
                    return str(version)
        raise UserError("无法确定框架版本，请配置 framework_path 或使用 --qx-version")

    def _index(self) -> PackageIndex:
        return PackageIndex(
            self.cache, self.lockfile,
            project_dir=self.project_dir, manifest_name=self.config.manifest_name,
        )

    def _installer(self) -> PackageInstaller:
        return PackageInstaller(
            self.cache, self.lockfile, self.downloader,
            project_dir=self.project_dir,
            packages_dir=self.config.packages_dir,
            manifest_name=self.config.manifest_name,
            compile_config_name=self.config.compile_config_name,
        )

    # ---- 命令 ----

    def update(self, url: str | None = None) -> int:
        """下载包注册表缓存，返回仓库数"""
        url = url or self.config.repository_cache_url
        validate_url_scheme(url, context="package cache")
        logger.info("正在下载包缓存: %s", url)
        data = fetch_json(url, timeout=self.config.request_timeout)
        if not isinstance(data, dict):
            raise UserError(f"包缓存格式错误: {url}")
        self.cache.replace_repos(data.get("repos") or {})
        self.cache.save()
        count = len(self.cache.repo_names)
        logger.info("包缓存已更新: %d 个仓库", count)
        return count

    def list_packages(
        self,
        opts: ListOptions | None = None,
        repository: str | None = None,
        *,
        qx_version: str | None = None,
    ) -> str:
        opts = opts or ListOptions()
        fw = self.framework_version(qx_version)
        index = self._index()
        result = index.build(
            fw, include_all=opts.all or bool(repository), include_local=opts.installed,
        )
        index.write_back(result)

        if repository:
            return render_repository_detail(result, repository, self.cache.repo_names)

        if result.compat_count == 0 and not opts.all:
            logger.info("没有与框架版本 %s 兼容的包", fw)
        return render_rows(build_rows(result, opts), opts)

    def install(
        self,
        spec: str | None = None,
        *,
        from_path: str | Path | None = None,
        save: bool = True,
        reinstall: bool = False,
        qx_version: str | None = None,
    ) -> LockfileMutation:
        installer = self._installer()
        if from_path is not None:
            if not spec:
                raise UserError("--from-path 需要同时指定库 uri")
            return installer.install_from_path(spec, from_path, save=save)

        fw = self.framework_version(qx_version)
        if reinstall and not spec:
            return installer.reinstall_all(fw)
        if not spec:
            return installer.install_requirements(fw)
        return installer.install(spec, fw, save=save, reinstall=reinstall)

    def install_missing(self) -> None:
        """编译时的恢复路径：按 Manifest.json 补全依赖"""
        mutation = self.install()
        logger.info("已安装 %d 个库", len(mutation.installed))

    def remove(self, uri: str) -> list[Path]:
        remover = PackageRemover(
            self.lockfile,
            project_dir=self.project_dir,
            manifest_name=self.config.manifest_name,
            compile_config_name=self.config.compile_config_name,
        )
        return remover.remove(uri)

    def migrate(self, announce_only: bool = False) -> MigrationResult:
        cfg = self.config

        def _reinstall() -> None:
            self.reload()
            self.install(reinstall=True)

        migrator = PackageMigrator(
            self.migration_guard,
            project_dir=self.project_dir,
            config_dir=cfg.config_dir,
            file_pairs=[
                (cfg.lockfile_name, cfg.legacy_lockfile_name),
                (cfg.packages_dir, cfg.legacy_packages_dir),
            ],
            cache_pair=(cfg.package_cache_name, cfg.legacy_package_cache_name),
            packages_dir=cfg.packages_dir,
            legacy_packages_dir=cfg.legacy_packages_dir,
            manifest_name=cfg.manifest_name,
            registry_name=cfg.registry_name,
            compiler_version=self.compiler_version,
            framework_version=self.framework_version,
            reinstaller=_reinstall,
        )
        return migrator.migrate(announce_only)
