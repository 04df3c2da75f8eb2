"""包管理核心模块

- models.py: 数据模型
- cache.py: 包注册表缓存
- lockfile.py: 项目锁文件
- index.py: 兼容性索引
- listing.py: 列表视图
- fetcher.py: 发布包下载
"""

from qxtool.core.package.cache import PackageCache
from qxtool.core.package.fetcher import ArchiveDownloader, GithubArchiveDownloader
from qxtool.core.package.index import PackageIndex
from qxtool.core.package.lockfile import Lockfile
from qxtool.core.package.models import (
    LOCAL_REPO_NAME,
    CompatibilityResult,
    InstalledLibraryRecord,
    LibraryRecord,
    RepositorySummary,
)

__all__ = [
    "LOCAL_REPO_NAME",
    "ArchiveDownloader",
    "CompatibilityResult",
    "GithubArchiveDownloader",
    "InstalledLibraryRecord",
    "LibraryRecord",
    "Lockfile",
    "PackageCache",
    "PackageIndex",
    "RepositorySummary",
]
