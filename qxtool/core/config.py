"""集中配置管理

工具链的目录、文件名、远程地址等统一入口。
支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from qxtool.utils.file_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "qxtool.yml"


@dataclass
class Config:
    """工具链全局配置"""

    # 用户级目录（包注册表缓存所在位置）
    config_dir: str = field(
        default_factory=lambda: os.path.join(os.path.expanduser("~"), ".qxtool"),
    )
    package_cache_name: str = "package-cache.json"
    legacy_package_cache_name: str = "contrib-cache.json"

    # 项目级文件
    lockfile_name: str = "qx-lock.json"
    legacy_lockfile_name: str = "contrib.json"
    packages_dir: str = "qx_packages"
    legacy_packages_dir: str = "contrib"
    manifest_name: str = "Manifest.json"
    compile_config_name: str = "compile.json"
    registry_name: str = "qooxdoo.json"

    # 远程
    repository_cache_url: str = (
        "https://raw.githubusercontent.com/qooxdoo/qx-contrib/master/cache.json"
    )
    archive_url_template: str = "https://github.com/{repo}/archive/{tag}.tar.gz"
    request_timeout: int = 60

    # 编译
    framework_path: str = ""
    default_minify: str = "mangle"
    default_locales: list[str] = field(default_factory=lambda: ["en"])
    templates_dir: str = ""

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_FILE) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    @property
    def package_cache_path(self) -> str:
        return os.path.join(self.config_dir, self.package_cache_name)

    def to_dict(self) -> dict:
        from dataclasses import asdict
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = DEFAULT_CONFIG_FILE) -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
