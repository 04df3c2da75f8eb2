"""发布包下载器

默认实现从 GitHub 下载 tag 对应的 tar.gz 归档并解压到 qx_packages 目录；
PackageService 通过构造参数注入，测试中可替换为本地实现。
"""

from __future__ import annotations

import logging
import shutil
import tarfile
import tempfile
import urllib.error
from pathlib import Path
from typing import Protocol

from qxtool.utils.net import download_file, validate_url_scheme

logger = logging.getLogger(__name__)


class ArchiveDownloader(Protocol):
    """把 (仓库, tag) 的发布内容放到 dest 目录"""

    def download(self, repo_name: str, tag: str, dest: Path) -> Path: ...


class GithubArchiveDownloader:
    """GitHub tarball 下载 + 解压"""

    def __init__(
        self,
        url_template: str = "https://github.com/{repo}/archive/{tag}.tar.gz",
        timeout: int = 60,
    ) -> None:
        self.url_template = url_template
        self.timeout = timeout

    def download(self, repo_name: str, tag: str, dest: Path) -> Path:
        if dest.exists():
            logger.info("  已存在，跳过下载: %s", dest)
            return dest
        url = self.url_template.format(repo=repo_name, tag=tag)
        validate_url_scheme(url, context=f"package {repo_name}@{tag}")

        with tempfile.TemporaryDirectory(prefix="qxtool-") as tmp:
            archive = Path(tmp) / "release.tar.gz"
            try:
                download_file(url, archive, timeout=self.timeout)
            except (urllib.error.HTTPError, urllib.error.URLError, OSError) as e:
                raise ConnectionError(f"下载失败: {url} - {e}") from e

            extract_dir = Path(tmp) / "extract"
            with tarfile.open(archive, "r:gz") as tar:
                tar.extractall(path=extract_dir, filter="data")

            # GitHub 归档有一层 <repo>-<tag>/ 顶级目录
            entries = list(extract_dir.iterdir())
            root = entries[0] if len(entries) == 1 and entries[0].is_dir() else extract_dir
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(root), str(dest))

        logger.info("  已解压: %s", dest)
        return dest
