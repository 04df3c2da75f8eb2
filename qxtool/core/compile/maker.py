"""Maker：一个目标 + 若干应用 + 共享的依赖分析器

状态流转: IDLE -> OPENED -> ANALYSED -> WRITING -> MADE
监视模式下每次变更从 ANALYSED 重新开始。

同一个 Maker 的构建由 asyncio.Lock 串行化，避免重叠写同一批输出文件。
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from collections.abc import Callable
from pathlib import Path
from typing import Any

from qxtool import __version__
from qxtool.core.compile.analyser import Analyser, SimpleAnalyser
from qxtool.core.compile.models import Application, MakerState
from qxtool.core.compile.targets import Target, expand_required_classes
from qxtool.core.events import (
    MADE,
    MAKING,
    WRITING_APPLICATION,
    WRITING_APPLICATIONS,
    WRITTEN_APPLICATION,
    WRITTEN_APPLICATIONS,
    EventEmitter,
)
from qxtool.core.exceptions import UserError
from qxtool.utils.file_io import atomic_write, save_json

logger = logging.getLogger(__name__)

VERSION_FILE = "version.txt"
VERSIONS_FILE = "versions.json"
# typescript 输出时不注册的框架内部别名
TYPESCRIPT_EXCLUDED = ("q", "qxWeb")

AnalyserFactory = Callable[[Path, Path], Analyser]


def default_analyser_factory(db_filename: Path, res_db_filename: Path) -> Analyser:
    return SimpleAnalyser(db_filename, res_db_filename)


class Maker:
    """输出目录管理 + 版本戳 + 分析器生命周期"""

    def __init__(
        self,
        target: Target | None = None,
        *,
        compiler_version: str = __version__,
        analyser_factory: AnalyserFactory = default_analyser_factory,
    ) -> None:
        self.target = target
        self.compiler_version = compiler_version
        self.events = EventEmitter()
        self.state = MakerState.IDLE
        self.no_erase = False
        self.environment: dict[str, Any] = {}
        self.locales: list[str] = ["en"]
        self.write_all_translations = False
        self.output_typescript = False
        self.output_typescript_to: str | None = None
        self.lock = asyncio.Lock()
        self._analyser_factory = analyser_factory
        self._analyser: Analyser | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.target!r})"

    def _require_target(self) -> Target:
        if self.target is None:
            raise RuntimeError("Maker 尚未设置 target")
        return self.target

    @property
    def output_dir(self) -> Path:
        return self._require_target().output_dir

    @property
    def analyser(self) -> Analyser:
        """首次访问时创建，数据库文件放在输出目录下"""
        if self._analyser is None:
            out = self.output_dir
            self._analyser = self._analyser_factory(out / "db.json", out / "resource-db.json")
        return self._analyser

    # ---- 输出目录 ----

    def erase_output_dir(self) -> None:
        """删除输出目录；目录为当前工作目录或其上级时拒绝"""
        out = os.path.realpath(self.output_dir)
        cwd = os.path.realpath(os.getcwd())
        if cwd == out or cwd.startswith(out.rstrip(os.sep) + os.sep):
            raise UserError(f"拒绝删除输出目录 {self.output_dir}: 它是当前工作目录或其上级")
        if os.path.isdir(out):
            logger.info("删除输出目录: %s", self.output_dir)
            shutil.rmtree(out)

    def check_compile_version(self) -> bool:
        """输出目录中的编译器版本戳是否与当前版本一致"""
        stamp = self.output_dir / VERSION_FILE
        if not stamp.exists():
            return False
        return stamp.read_text(encoding="utf-8").strip() == self.compiler_version

    def write_compile_version(self) -> None:
        out = self.output_dir
        atomic_write(out / VERSION_FILE, self.compiler_version)
        libraries = {
            ns: {"version": lib.version, "path": str(lib.root_dir)}
            for ns, lib in self.analyser.libraries.items()
        }
        save_json(out / VERSIONS_FILE, {
            "compiler": self.compiler_version,
            "libraries": libraries,
        })

    async def open(self) -> None:
        target = self._require_target()
        if not await asyncio.to_thread(self.check_compile_version):
            if self.no_erase:
                logger.debug("输出目录版本不一致，但已禁止擦除: %s", self.output_dir)
            else:
                await asyncio.to_thread(self.erase_output_dir)
        await target.open()
        await asyncio.to_thread(self.write_compile_version)
        self.state = MakerState.OPENED


class AppMaker(Maker):
    """编译一个目标下的全部应用"""

    def __init__(self, target: Target | None = None, **kwargs: Any) -> None:
        super().__init__(target, **kwargs)
        self.applications: list[Application] = []

    def add_application(self, app: Application) -> None:
        self.applications.append(app)

    def compile_environment(self) -> dict[str, Any]:
        """工具链常量 + Maker 环境 + 目标环境，去掉应用级键和空值"""
        target = self._require_target()
        env: dict[str, Any] = {
            "qx.compiler": True,
            "qx.compiler.version": self.compiler_version,
            "qx.compiler.targetType": target.type,
            "qx.debug": target.type == "source",
        }
        env.update(self.environment)
        env.update(target.environment)
        app_keys = {k for app in self.applications for k in app.environment}
        return {k: v for k, v in env.items() if k not in app_keys and v is not None}

    def _prepare_target(self) -> Target:
        target = self._require_target()
        target.analyser = self.analyser
        target.locales = list(self.locales)
        target.write_all_translations = self.write_all_translations
        return target

    async def analyse(self) -> None:
        analyser = self.analyser
        analyser.set_environment(self.compile_environment())
        known = analyser.known_class_names()
        for app in self.applications:
            for class_name in expand_required_classes(app, known):
                analyser.add_class(class_name)
        if self.output_typescript:
            for class_name in known:
                if class_name not in TYPESCRIPT_EXCLUDED:
                    analyser.add_class(class_name)
        await analyser.analyse_classes()
        if self.output_typescript:
            await asyncio.to_thread(self._write_typescript)
        self.state = MakerState.ANALYSED

    def _write_typescript(self) -> None:
        classes = sorted(self.analyser.get_database()["classInfo"])
        roots = sorted({name.split(".")[0] for name in classes})
        lines = ["// qxtool 生成的声明文件", ""]
        lines += [f"declare var {root}: any;" for root in roots]
        lines += [""] + [f"// {name}" for name in classes]
        dest = Path(self.output_typescript_to) if self.output_typescript_to else (
            self.output_dir / "qooxdoo.d.ts"
        )
        atomic_write(dest, "\n".join(lines) + "\n")

    async def write_applications(self) -> None:
        target = self._prepare_target()
        self.state = MakerState.WRITING
        self.events.emit(WRITING_APPLICATIONS, self)
        environment = dict(self.environment)
        for app in self.applications:
            self.events.emit(WRITING_APPLICATION, app)
            info = await target.generate_application(app, environment)
            await target.write_application(info)
            self.events.emit(WRITTEN_APPLICATION, app)
        self.events.emit(WRITTEN_APPLICATIONS, self)
        self.state = MakerState.MADE

    async def rebuild(self) -> None:
        """重新分析并写出（监视模式的单次循环）"""
        async with self.lock:
            self.events.emit(MAKING, self)
            try:
                await self.analyse()
                await self.write_applications()
            finally:
                self.events.emit(MADE, self)

    async def make(self) -> None:
        async with self.lock:
            self.events.emit(MAKING, self)
            try:
                await self.open()
                await self.analyse()
                await self.write_applications()
            finally:
                self.events.emit(MADE, self)
