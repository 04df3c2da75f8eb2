"""编译服务 - compile.json -> Maker -> 输出

流程:
  1. 预告迁移（需要迁移时终止）
  2. 读取 compile.json，由 TargetConfigResolver 生成 Maker
  3. --clean 时删除输出目录和分析器数据库
  4. 全部 Maker 并发执行（asyncio.gather）；监视模式下各自进入轮询

多个 Maker 并发时，making 只在第一个开始时触发一次，made 只在最后一个结束时触发一次。
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from qxtool import __version__
from qxtool.core.compile.maker import AnalyserFactory, AppMaker, default_analyser_factory
from qxtool.core.compile.resolver import CompileOverrides, TargetConfigResolver
from qxtool.core.compile.watch import Watch
from qxtool.core.config import Config
from qxtool.core.events import MADE, MAKING, EventEmitter
from qxtool.core.exceptions import ConfigError, UserError
from qxtool.services.package_service import PackageService
from qxtool.utils.file_io import load_json

logger = logging.getLogger(__name__)


class CompileService:
    def __init__(
        self,
        config: Config,
        *,
        package_service: PackageService,
        project_dir: str | Path = ".",
        analyser_factory: AnalyserFactory = default_analyser_factory,
        compiler_version: str = __version__,
    ) -> None:
        self.config = config
        self.packages = package_service
        self.project_dir = Path(project_dir)
        self.analyser_factory = analyser_factory
        self.compiler_version = compiler_version
        self.events = EventEmitter()
        self._making = 0

    # ---- 准备 ----

    def load_project_config(self, config_file: str | Path | None = None) -> dict[str, Any]:
        path = Path(config_file) if config_file else (
            self.project_dir / self.config.compile_config_name
        )
        try:
            data = load_json(path, default=None)
        except json.JSONDecodeError as e:
            raise ConfigError(f"编译配置格式错误: {path} ({e})") from e
        if data is None:
            raise UserError(f"找不到编译配置: {path}")
        if not isinstance(data, dict):
            raise ConfigError(f"编译配置必须是 JSON 对象: {path}")
        return data

    def announce_migration(self) -> None:
        result = self.packages.migrate(announce_only=True)
        if result.needs_fix:
            raise UserError(
                "项目需要迁移，请先运行 'qxtool package migrate'",
            )

    def create_makers(
        self, data: dict[str, Any], overrides: CompileOverrides | None = None,
    ) -> list[AppMaker]:
        resolver = TargetConfigResolver(
            self.config,
            project_dir=self.project_dir,
            installer=self.packages.install_missing,
            packages_provider=self.packages.packages_map,
            compiler_version=self.compiler_version,
            analyser_factory=self.analyser_factory,
        )
        makers = resolver.resolve(data, overrides)
        for maker in makers:
            self._track(maker)
        return makers

    @staticmethod
    def clean(makers: list[AppMaker]) -> None:
        """删除输出目录与分析器数据库"""
        for maker in makers:
            maker.erase_output_dir()
            analyser = maker.analyser
            for db_file in (analyser.db_filename, analyser.res_db_filename):
                if db_file.exists():
                    db_file.unlink()
                    logger.debug("已删除 %s", db_file)

    # ---- making / made 计数 ----

    def _track(self, maker: AppMaker) -> None:
        maker.events.on(MAKING, self._on_making)
        maker.events.on(MADE, self._on_made)

    def _on_making(self, _maker: AppMaker) -> None:
        self._making += 1
        if self._making == 1:
            self.events.emit(MAKING, self)

    def _on_made(self, _maker: AppMaker) -> None:
        self._making -= 1
        if self._making == 0:
            self.events.emit(MADE, self)

    # ---- 执行 ----

    async def run(self, makers: list[AppMaker], *, watch: bool = False) -> None:
        if watch:
            watchers = [Watch(maker) for maker in makers]
            await asyncio.gather(*(w.start() for w in watchers))
            return
        await asyncio.gather(*(maker.make() for maker in makers))

    def compile(
        self,
        config_file: str | Path | None = None,
        overrides: CompileOverrides | None = None,
        *,
        clean: bool = False,
        watch: bool = False,
    ) -> list[AppMaker]:
        """同步入口（CLI 使用）"""
        self.announce_migration()
        data = self.load_project_config(config_file)
        makers = self.create_makers(data, overrides)
        if not makers:
            raise UserError("没有可编译的目标")
        if clean:
            self.clean(makers)
        asyncio.run(self.run(makers, watch=watch))
        for maker in makers:
            logger.info("已编译: %s", maker.output_dir)
        return makers
