"""类依赖分析

Analyser 协议描述编译流水线对依赖分析器的全部需求；
SimpleAnalyser 是内置的轻量实现：按类名定位源文件，用正则读取
@require / @use / @asset 提示、this.tr() 调用以及对已知类名的引用，
不解析类定义语法本身。
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from qxtool.core.compile.library import Library
from qxtool.core.compile.resources import ResourceManager
from qxtool.core.compile.translation import Translation
from qxtool.core.events import COMPILED_CLASS, COMPILING_CLASS, SAVE_DATABASE, EventEmitter
from qxtool.core.exceptions import UserError
from qxtool.utils.file_io import load_json, save_json

logger = logging.getLogger(__name__)

# =========================================================================
# 全局符号
# =========================================================================

QX_GLOBALS = ["qx", "q", "qxWeb"]
COMMON_GLOBALS = [
    "Array", "Boolean", "Date", "Error", "Function", "JSON", "Math", "Number",
    "Object", "Promise", "RegExp", "String", "Symbol", "console", "undefined",
    "parseInt", "parseFloat", "isNaN", "isFinite", "setTimeout", "clearTimeout",
    "setInterval", "clearInterval",
]
BROWSER_GLOBALS = [
    "window", "document", "navigator", "location", "history", "localStorage",
    "sessionStorage", "XMLHttpRequest", "Event", "Element", "HTMLElement",
]
NODE_GLOBALS = ["require", "module", "exports", "process", "Buffer", "__dirname", "__filename"]
RHINO_GLOBALS = ["java", "javax", "Packages", "importClass", "importPackage", "print"]

# =========================================================================
# 协议
# =========================================================================


class Analyser(Protocol):
    """编译流水线使用的依赖分析器接口"""

    events: EventEmitter
    libraries: dict[str, Library]
    framework_version: str
    db_filename: Path
    res_db_filename: Path

    def add_library(self, library: Library) -> None: ...

    def add_class(self, class_name: str) -> None: ...

    def set_environment(self, environment: dict[str, Any]) -> None: ...

    def set_global_symbols(self, symbols: list[str]) -> None: ...

    def known_class_names(self) -> list[str]: ...

    async def analyse_classes(self) -> None: ...

    def get_database(self) -> dict[str, Any]: ...

    def dependency_order(self, roots: list[str]) -> list[str]: ...

    def get_library_from_classname(self, class_name: str) -> Library | None: ...

    async def get_cldr(self, locale: str) -> dict[str, Any] | None: ...

    async def get_translation(self, library: Library, locale: str) -> Translation: ...

    def get_resource_manager(self) -> ResourceManager: ...


@dataclass
class ClassFile:
    class_name: str
    path: Path


def decode_marker(marker: dict[str, Any]) -> str:
    """把编译标记转换为可读文本: [行,列] 消息ID: 参数"""
    pos = (marker.get("pos") or {}).get("start") or {}
    where = ""
    if pos:
        where = f"[{pos.get('line', '?')},{pos.get('column', '?')}] "
    args = marker.get("args") or []
    suffix = ": " + ", ".join(str(a) for a in args) if args else ""
    return f"{where}{marker.get('msgId', 'unknown')}{suffix}"


# =========================================================================
# 内置实现
# =========================================================================

_HINT = re.compile(r"@(require|use|asset|ignore)\(\s*([^)\s]+)\s*\)")
_TR_CALL = re.compile(r"""\b(?:tr|trc|trn|marktr)\(\s*(["'])((?:\\.|(?!\1).)*)\1""")
_DOTTED = re.compile(r"\b[A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)+\b")


class SimpleAnalyser:
    """基于正则提示的依赖分析器"""

    def __init__(self, db_filename: str | Path, res_db_filename: str | Path) -> None:
        self.db_filename = Path(db_filename)
        self.res_db_filename = Path(res_db_filename)
        self.events = EventEmitter()
        self.libraries: dict[str, Library] = {}
        self.environment: dict[str, Any] = {}
        self.global_symbols: list[str] = []
        self._required: list[str] = []
        self._class_info: dict[str, dict[str, Any]] = {}
        self._known: list[str] | None = None
        self._resource_manager: ResourceManager | None = None
        self._load_database()

    def _load_database(self) -> None:
        try:
            data = load_json(self.db_filename, default={}) or {}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("类数据库无法读取，将重新分析: %s (%s)", self.db_filename, e)
            return
        self._class_info = dict(data.get("classInfo") or {})

    # ---- 配置 ----

    def add_library(self, library: Library) -> None:
        self.libraries[library.namespace] = library
        self._known = None

    def add_class(self, class_name: str) -> None:
        if class_name not in self._required:
            self._required.append(class_name)

    def set_environment(self, environment: dict[str, Any]) -> None:
        self.environment = dict(environment)

    def set_global_symbols(self, symbols: list[str]) -> None:
        self.global_symbols = list(symbols)

    @property
    def framework_version(self) -> str:
        qx_lib = self.libraries.get("qx")
        return qx_lib.version if qx_lib else ""

    # ---- 查询 ----

    def get_library_from_classname(self, class_name: str) -> Library | None:
        best: Library | None = None
        for lib in self.libraries.values():
            if lib.owns_class(class_name) and (
                best is None or len(lib.namespace) > len(best.namespace)
            ):
                best = lib
        return best

    def known_class_names(self) -> list[str]:
        """各库 class 目录下全部 .js 文件对应的类名"""
        if self._known is None:
            names: list[str] = []
            for lib in self.libraries.values():
                if not lib.class_dir.is_dir():
                    continue
                for path in sorted(lib.class_dir.rglob("*.js")):
                    rel = path.relative_to(lib.class_dir).with_suffix("")
                    names.append(".".join(rel.parts))
            self._known = names
        return list(self._known)

    def get_database(self) -> dict[str, Any]:
        return {"classInfo": self._class_info}

    def dependency_order(self, roots: list[str]) -> list[str]:
        """依赖在前的加载顺序（深度优先后序）"""
        order: list[str] = []
        visiting: set[str] = set()

        def _visit(name: str) -> None:
            if name in order or name in visiting:
                return
            info = self._class_info.get(name)
            if info is None:
                return
            visiting.add(name)
            for dep in info.get("dependsOn", []):
                _visit(dep)
            visiting.discard(name)
            order.append(name)

        for root in roots:
            _visit(root)
        return order

    # ---- 分析 ----

    def _scan_source(self, class_name: str, text: str, known: set[str]) -> dict[str, Any]:
        lib = self.get_library_from_classname(class_name)
        depends: list[str] = []
        assets: list[str] = []
        ignores: set[str] = set()
        markers: list[dict[str, Any]] = []

        for lineno, line in enumerate(text.splitlines(), start=1):
            for m in _HINT.finditer(line):
                kind, arg = m.group(1), m.group(2)
                if kind == "asset":
                    assets.append(arg)
                elif kind == "ignore":
                    ignores.add(arg)
                elif arg in known:
                    if arg not in depends and arg != class_name:
                        depends.append(arg)
                else:
                    markers.append({
                        "msgId": "qx.tool.compiler.symbol.unresolved",
                        "pos": {"start": {"line": lineno, "column": m.start()}},
                        "args": [arg],
                    })

        for m in _DOTTED.finditer(text):
            name = m.group(0)
            # a.b.C.method -> 逐级截短寻找已知类名
            while name and name not in known:
                name = name.rpartition(".")[0]
            if name and name != class_name and name not in depends and name not in ignores:
                depends.append(name)

        translations = [{"msgid": m.group(2)} for m in _TR_CALL.finditer(text)]
        return {
            "libraryName": lib.namespace if lib else "",
            "dependsOn": depends,
            "assets": assets,
            "translations": translations,
            "markers": markers,
        }

    async def _analyse_class(self, class_name: str, known: set[str]) -> dict[str, Any] | None:
        lib = self.get_library_from_classname(class_name)
        if lib is None:
            return None
        path = lib.class_file(class_name)
        if not path.exists():
            return None
        class_file = ClassFile(class_name=class_name, path=path)
        self.events.emit(COMPILING_CLASS, class_file)
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        info = self._scan_source(class_name, text, known)
        self.events.emit(COMPILED_CLASS, {"db_class_info": info, "class_file": class_file})
        return info

    async def analyse_classes(self) -> None:
        """从已添加的类出发遍历依赖图，结果写入类数据库"""
        known = set(self.known_class_names())
        queue = list(self._required)
        seen: set[str] = set()
        class_info: dict[str, dict[str, Any]] = {}
        while queue:
            name = queue.pop(0)
            if name in seen:
                continue
            seen.add(name)
            info = await self._analyse_class(name, known)
            if info is None:
                if name in self._required:
                    raise UserError(f"找不到类 {name} 的源文件")
                logger.warning("找不到依赖类 %s 的源文件", name)
                continue
            class_info[name] = info
            queue.extend(info["dependsOn"])
        self._class_info = class_info
        await asyncio.to_thread(self.save_database)
        logger.debug("依赖分析完成: %d 个类", len(class_info))

    def save_database(self) -> None:
        save_json(self.db_filename, self.get_database())
        self.events.emit(SAVE_DATABASE, self.db_filename)

    # ---- 本地化 / 资源 ----

    async def get_cldr(self, locale: str) -> dict[str, Any] | None:
        """在各库的 cldr 目录中查找 <locale>.json，找不到返回 None"""
        for lib in self.libraries.values():
            path = lib.root_dir / "source" / "cldr" / f"{locale}.json"
            if path.exists():
                return await asyncio.to_thread(load_json, path, {})
        return None

    async def get_translation(self, library: Library, locale: str) -> Translation:
        path = library.translation_dir / f"{locale}.po"
        return await asyncio.to_thread(Translation.load, path, locale)

    def get_resource_manager(self) -> ResourceManager:
        if self._resource_manager is None:
            self._resource_manager = ResourceManager(self.libraries, self.res_db_filename)
        return self._resource_manager
