"""服务容器 - 统一依赖注入

同一容器内的服务共享状态（包缓存、锁文件、迁移锁）。
CLI 通过 get_container() 获取服务，而非直接 import 构造。

依赖关系:
  compile → packages

用法:
    container = ServiceContainer(project_dir="my-app")
    container.packages.install("owner/repo")
    container.compile.compile()
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from qxtool.core.config import Config
    from qxtool.services.compile_service import CompileService
    from qxtool.services.package_service import PackageService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(self, config: Config | None = None, project_dir: str | Path = ".") -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from qxtool.core.config import get_config
            config = get_config()
        self._config = config
        self.project_dir = Path(project_dir)

    @property
    def config(self) -> Config:
        return self._config

    @property
    def packages(self) -> PackageService:
        if "packages" not in self._instances:
            from qxtool.services.package_service import PackageService
            self._instances["packages"] = PackageService(
                self._config, project_dir=self.project_dir,
            )
        return self._instances["packages"]  # type: ignore[return-value]

    @property
    def compile(self) -> CompileService:
        if "compile" not in self._instances:
            from qxtool.services.compile_service import CompileService
            self._instances["compile"] = CompileService(
                self._config,
                package_service=self.packages,
                project_dir=self.project_dir,
            )
        return self._instances["compile"]  # type: ignore[return-value]


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例（线程安全）"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def reset_container() -> None:
    """重置全局容器（仅用于测试）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
