"""包索引数据模型

数据类:
- LibraryManifest: 发布中的单个库清单
- Release: 仓库的一次发布（tag）
- Repository: 包仓库
- InstalledLibraryRecord: 锁文件中的已安装库记录
- LibraryRecord / RepositorySummary / CompatibilityResult: 兼容性索引计算结果
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# 锁文件中本地路径安装的库归入的伪仓库名
LOCAL_REPO_NAME = "_local_"
LOCKFILE_VERSION = "2.0.0"


@dataclass
class LibraryManifest:
    """发布中的一个可安装库"""

    name: str
    version: str
    summary: str = ""
    required_range: str | None = None
    path: str = ""
    namespace: str = ""

    @classmethod
    def from_cache(cls, raw: dict[str, Any]) -> LibraryManifest | None:
        """由缓存条目 {qx_versions, info, provides, path} 构造，缺 info 返回 None"""
        info = raw.get("info")
        if not isinstance(info, dict):
            return None
        provides = raw.get("provides") or {}
        return cls(
            name=info.get("name", ""),
            version=str(info.get("version", "")),
            summary=info.get("summary", "") or "",
            required_range=raw.get("qx_versions") or None,
            path=raw.get("path", "") or "",
            namespace=provides.get("namespace", "") if isinstance(provides, dict) else "",
        )


@dataclass
class Release:
    tag_name: str
    prerelease: bool = False
    manifests: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class Repository:
    name: str
    description: str = ""
    releases: list[Release] = field(default_factory=list)


@dataclass
class InstalledLibraryRecord:
    """锁文件条目，repo_name 为 None 表示从本地路径安装"""

    library_name: str
    uri: str
    path: str
    repo_name: str | None = None
    repo_tag: str | None = None
    library_version: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstalledLibraryRecord:
        return cls(
            library_name=data.get("library_name", ""),
            uri=data.get("uri", ""),
            path=data.get("path", ""),
            repo_name=data.get("repo_name") or None,
            repo_tag=data.get("repo_tag") or None,
            library_version=data.get("library_version") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "library_name": self.library_name,
            "library_version": self.library_version,
            "path": self.path,
            "uri": self.uri,
            "repo_name": self.repo_name,
        }
        if self.repo_tag is not None:
            data["repo_tag"] = self.repo_tag
        return data


@dataclass
class LibraryRecord:
    """兼容性索引中展开后的库记录"""

    name: str
    namespace: str
    summary: str
    version: str
    compatibility: bool
    required_range: str | None
    path: str
    installed_version: str | None = None


@dataclass
class RepositorySummary:
    name: str
    description: str = ""
    installed_version: str | None = None
    latest_version: str | None = None
    latest_compatible: str | None = None


@dataclass
class CompatibilityResult:
    """PackageIndex.build 的返回值"""

    framework_version: str
    repositories: list[RepositorySummary] = field(default_factory=list)
    libraries: dict[str, list[LibraryRecord]] = field(default_factory=dict)
    compat_count: int = 0
    # repo_name -> 最新兼容 tag，写回缓存用
    latest_compatible: dict[str, str] = field(default_factory=dict)

    def repository(self, name: str) -> RepositorySummary | None:
        for repo in self.repositories:
            if repo.name == name:
                return repo
        return None
