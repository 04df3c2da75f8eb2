"""编译目标（Target）

Target 负责单个应用的生成与写出:
  generate_application: 合并环境 → 分包 → 构造 configdata / pkgdata，
                        并发收集 CLDR、翻译、Web 字体、资源（四个任务汇合后才允许写出）
  write_application:    先写 resources.js，再并发写 boot.js / index.html / compile-info.json，
                        全部完成后触发 after_write_application 钩子

SourceTarget 直接引用库源码目录；BuildTarget 把用到的类文件和资源复制到输出目录。
"""

from __future__ import annotations

import asyncio
import importlib
import json
import logging
import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Any

from qxtool.core.compile.loader import (
    DEFAULT_TEMPLATE,
    build_template_map,
    render_index_html,
    substitute_template,
)
from qxtool.core.compile.models import Application, CompileInfo, Part, match_any
from qxtool.core.events import AFTER_WRITE_APPLICATION, EventEmitter
from qxtool.core.exceptions import UserError

if TYPE_CHECKING:
    from qxtool.core.compile.analyser import Analyser
    from qxtool.core.compile.library import Library
    from qxtool.core.compile.translation import Translation

logger = logging.getLogger(__name__)

RESOURCES_SCRIPT = "resources.js"
BOOT_SCRIPT = "boot.js"


def expand_required_classes(app: Application, known: list[str]) -> list[str]:
    """应用的必需类 + include 通配匹配到的已知类"""
    required = app.required_classes()
    patterns = [p for p in app.include if "*" in p]
    if patterns:
        required += [c for c in known if match_any(c, patterns) and c not in required]
    return required


def _locale_chain(locale: str) -> list[str]:
    """de_AT -> [de_AT, de]"""
    chain = [locale]
    while "_" in locale:
        locale = locale.rsplit("_", 1)[0]
        chain.append(locale)
    return chain


def _write_entry(dest: dict[str, str], entry: dict[str, Any] | None) -> None:
    if not entry:
        return
    msgstr = entry.get("msgstr")
    if not isinstance(msgstr, list):
        msgstr = [msgstr]
    if msgstr and msgstr[0]:
        dest[entry["msgid"]] = msgstr[0]
    if entry.get("msgid_plural") and len(msgstr) > 1 and msgstr[1]:
        dest[entry["msgid_plural"]] = msgstr[1]


class Target:
    """编译目标基类"""

    type = "source"

    def __init__(self, output_dir: str | Path) -> None:
        self.output_dir = Path(output_dir)
        self.minify = "mangle"
        self.environment: dict[str, Any] = {}
        self.path_mappings: dict[str, str] = {}
        self.write_compile_info = False
        self.script_prefix = ""
        self.template_path: Path | None = None
        self.events = EventEmitter()
        # 由 Maker 注入
        self.analyser: Analyser | None = None
        self.locales: list[str] = ["en"]
        self.write_all_translations = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.output_dir})"

    # ---- 生命周期 ----

    async def open(self) -> None:
        await asyncio.to_thread(self.output_dir.mkdir, parents=True, exist_ok=True)

    def app_dir(self, app: Application) -> Path:
        """应用输出目录：应用的 outputPath（相对目标输出目录），缺省为应用名"""
        return self.output_dir / (app.output_path or app.name)

    def add_path_mapping(self, source: str, uri: str) -> None:
        self.path_mappings[source] = uri

    def merge_environment(
        self, app: Application, environment: dict[str, Any],
    ) -> dict[str, Any]:
        result = dict(environment)
        result.update(self.environment)
        result.update(app.environment)
        return result

    # ---- URI ----

    def _map_path(self, path: Path, app_dir: Path) -> str:
        """库目录 -> 相对应用目录的 URI，命中 path-mappings 时使用映射值"""
        resolved = os.path.abspath(path)
        for source, uri in self.path_mappings.items():
            source_abs = os.path.abspath(source)
            if resolved == source_abs or resolved.startswith(source_abs + os.sep):
                rest = os.path.relpath(resolved, source_abs)
                return uri.rstrip("/") if rest == "." else f"{uri.rstrip('/')}/{Path(rest).as_posix()}"
        return Path(os.path.relpath(resolved, os.path.abspath(app_dir))).as_posix()

    def library_uris(self, lib: Library, app_dir: Path) -> dict[str, str]:
        return {
            "sourceUri": self._map_path(lib.class_dir, app_dir),
            "resourceUri": self._map_path(lib.resource_dir, app_dir),
        }

    @staticmethod
    def class_uri(lib: Library, class_name: str) -> str:
        return f"{lib.namespace}:{class_name.replace('.', '/')}.js"

    # ---- 生成 ----

    def _partition(
        self, app: Application, classes: list[str],
    ) -> tuple[dict[str, list[str]], list[str]]:
        """按 Part 的 include/exclude 把类分配到加载包

        boot 自身的 include/exclude 优先；其余 Part 按声明顺序匹配，
        都未命中的类归入 boot。
        """
        parts = app.parts or [Part(name="boot", include=["*"])]
        boot = app.part("boot")
        order = ["boot"] + [p.name for p in parts if p.name != "boot"]
        assigned: dict[str, list[str]] = {name: [] for name in order}
        for cls in classes:
            if boot is not None and boot.matches(cls):
                assigned["boot"].append(cls)
                continue
            for part in parts:
                if part.name != "boot" and part.matches(cls):
                    assigned[part.name].append(cls)
                    break
            else:
                assigned["boot"].append(cls)
        return assigned, order

    def _package_uris(
        self, info: CompileInfo, classes: list[str], package_index: int,
    ) -> list[str]:
        analyser = self._require_analyser()
        app = info.application
        uris: list[str] = []
        bundle_name = f"part-{package_index}-bundle.js"
        for cls in classes:
            lib = analyser.get_library_from_classname(cls)
            if lib is None:
                logger.warning("类 %s 不属于任何已加载的库，跳过", cls)
                continue
            if self.type == "source" and app.is_bundled(cls):
                bundled = info.bundles.setdefault(bundle_name, [])
                if not bundled:
                    uris.append(f"__out__:{self.script_prefix}{bundle_name}")
                bundled.append(cls)
                continue
            uris.append(self.class_uri(lib, cls))
        return uris

    def _require_analyser(self) -> Analyser:
        if self.analyser is None:
            raise RuntimeError(f"{self!r} 尚未关联依赖分析器")
        return self.analyser

    async def generate_application(
        self, app: Application, environment: dict[str, Any],
    ) -> CompileInfo:
        analyser = self._require_analyser()
        env = self.merge_environment(app, environment)
        info = CompileInfo(application=app, environment=env)
        info.namespace = app.class_name
        info.library = analyser.get_library_from_classname(app.class_name)

        app_dir = self.app_dir(app)
        await asyncio.to_thread(app_dir.mkdir, parents=True, exist_ok=True)

        required = expand_required_classes(app, analyser.known_class_names())
        classes = [
            c for c in analyser.dependency_order(required)
            if c in required or not match_any(c, app.exclude)
        ]
        assigned, order = self._partition(app, classes)
        info.parts = assigned

        parts_table: dict[str, list[int]] = {}
        packages: dict[int, dict[str, list[str]]] = {}
        for idx, part_name in enumerate(order):
            uris = self._package_uris(info, assigned[part_name], idx)
            if idx == 0:
                uris.insert(0, f"__out__:{self.script_prefix}{RESOURCES_SCRIPT}")
            parts_table[part_name] = [idx]
            packages[idx] = {"uris": uris}
        info.uris = [u for pkg in packages.values() for u in pkg["uris"]]

        libraries: dict[str, Any] = {"__out__": {"sourceUri": "."}}
        for ns, lib in sorted(self._used_libraries(classes).items()):
            libraries[ns] = self.library_uris(lib, app_dir)

        info.configdata = {
            "environment": {
                "qx.application": app.class_name,
                "qx.revision": "",
                "qx.theme": app.theme,
                "qx.version": analyser.framework_version,
                **env,
            },
            "loader": {"parts": parts_table, "packages": packages},
            "libraries": libraries,
            "urisBefore": [],
            "cssBefore": [],
            "preBootCode": "",
            "boot": "boot",
            "closureParts": {},
            "bootIsInline": False,
            "addNoCacheParam": False,
        }
        info.pkgdata = {"locales": {}, "resources": {}, "translations": {"C": {}}}

        # 四个收集任务互不依赖，全部完成后才能写出
        await asyncio.gather(
            self._load_locales(info),
            self._write_translations(info),
            self._generate_web_fonts(info, classes),
            self._sync_assets(info, classes),
        )
        info.configdata["preBootCode"] = "\n".join(info.pre_boot_code)
        return info

    def _used_libraries(self, classes: list[str]) -> dict[str, Library]:
        analyser = self._require_analyser()
        used: dict[str, Library] = {}
        for cls in classes:
            lib = analyser.get_library_from_classname(cls)
            if lib is not None:
                used[lib.namespace] = lib
        return used

    async def _cldr_with_fallback(self, locale: str) -> dict[str, Any]:
        """逐级回退到父语言，补齐缺失的键"""
        analyser = self._require_analyser()
        merged: dict[str, Any] = {}
        found = False
        for loc in _locale_chain(locale):
            data = await analyser.get_cldr(loc)
            if data is None:
                continue
            found = True
            for key, value in data.items():
                merged.setdefault(key, value)
        if not found:
            logger.warning("找不到语言 %s 的 CLDR 数据", locale)
        return merged

    async def _load_locales(self, info: CompileInfo) -> None:
        locales = info.pkgdata["locales"]
        locales["C"] = await self._cldr_with_fallback("en")
        for locale in self.locales:
            locales[locale] = await self._cldr_with_fallback(locale)

    async def _write_translations(self, info: CompileInfo) -> None:
        analyser = self._require_analyser()
        translations = info.pkgdata["translations"]
        for locale in self.locales:
            translations.setdefault(locale, {})
        cache: dict[tuple[str, str], Translation] = {}

        async def _translation(lib: Library, locale: str) -> Translation:
            key = (lib.namespace, locale)
            if key not in cache:
                cache[key] = await analyser.get_translation(lib, locale)
            return cache[key]

        if self.write_all_translations:
            for locale in self.locales:
                for lib in analyser.libraries.values():
                    translation = await _translation(lib, locale)
                    for entry in translation.entries.values():
                        _write_entry(translations[locale], entry)
            return

        db = analyser.get_database()["classInfo"]
        for part_classes in info.parts.values():
            for cls in part_classes:
                class_info = db.get(cls) or {}
                msgids = [t["msgid"] for t in class_info.get("translations", [])]
                lib = analyser.get_library_from_classname(cls)
                if not msgids or lib is None:
                    continue
                for locale in self.locales:
                    translation = await _translation(lib, locale)
                    _write_entry(translations[locale], translation.get_entry(""))
                    for msgid in msgids:
                        _write_entry(translations[locale], translation.get_entry(msgid))

    async def _generate_web_fonts(self, info: CompileInfo, classes: list[str]) -> None:
        """Web 字体引导代码；单个字体出错只记录日志"""
        for lib in self._used_libraries(classes).values():
            for font in lib.webfonts:
                try:
                    code, resources = self._font_bootstrap(lib, font)
                except (KeyError, ValueError, TypeError) as e:
                    logger.error(
                        "生成 Web 字体失败 %s/%s: %s",
                        lib.namespace, font.get("name", "?") if isinstance(font, dict) else font, e,
                    )
                    continue
                info.pre_boot_code.append(code)
                info.pkgdata["resources"].update(resources)

    @staticmethod
    def _font_bootstrap(
        lib: Library, font: dict[str, Any],
    ) -> tuple[str, dict[str, list[Any]]]:
        name = font["name"]
        sources = font.get("resources") or []
        if not sources:
            raise ValueError("字体未声明 resources")
        default_size = int(font.get("defaultSize", 40))
        definition = {
            "size": default_size,
            "lineHeight": 1,
            "family": [name],
            "sources": [{"family": name, "source": sources}],
        }
        if font.get("comparisonString"):
            definition["comparisonString"] = font["comparisonString"]
        code = (
            "if (!qx.$$fontBootstrap) qx.$$fontBootstrap = {};\n"
            f"qx.$$fontBootstrap[{json.dumps(name)}] = "
            f"{json.dumps(definition, indent=2)};"
        )
        resources: dict[str, list[Any]] = {}
        for src in sources:
            if "://" in src:
                continue
            ext = src.rsplit(".", 1)[-1] if "." in src else ""
            resources[src] = [default_size, default_size, ext, lib.namespace]
        return code, resources

    async def _sync_assets(self, info: CompileInfo, classes: list[str]) -> None:
        analyser = self._require_analyser()
        db = analyser.get_database()["classInfo"]
        patterns: list[str] = []
        for cls in classes:
            for pattern in (db.get(cls) or {}).get("assets", []):
                if pattern not in patterns:
                    patterns.append(pattern)
        rm = analyser.get_resource_manager()
        assets = await asyncio.to_thread(rm.get_assets, patterns)
        await asyncio.to_thread(rm.save_database)
        info.assets = assets
        for asset in assets:
            info.pkgdata["resources"][asset.filename] = asset.resource_entry()

    # ---- 写出 ----

    async def write_application(self, info: CompileInfo) -> None:
        app_dir = self.app_dir(info.application)
        resources_js = (
            "qx.$$packageData['0'] = "
            + json.dumps(info.pkgdata, indent=2, ensure_ascii=False) + ";\n"
        )
        # resources.js 必须先于 boot.js 存在
        await asyncio.to_thread(
            self._write_text, app_dir / f"{self.script_prefix}{RESOURCES_SCRIPT}", resources_js,
        )
        tasks = [
            self._write_boot_js(info),
            self._write_index_html(info),
            self._write_bundles(info),
        ]
        if self.write_compile_info:
            tasks.append(self._write_compile_info(info))
        await asyncio.gather(*tasks)
        await self.after_write_application(info)

    @staticmethod
    def _write_text(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def _loader_template(self, app: Application) -> Path:
        if app.loader_template:
            return Path(app.loader_template)
        return self.template_path or DEFAULT_TEMPLATE

    async def _write_boot_js(self, info: CompileInfo) -> None:
        app = info.application
        template = await asyncio.to_thread(
            self._loader_template(app).read_text, encoding="utf-8",
        )
        content = substitute_template(template, build_template_map(info, self.locales))
        await asyncio.to_thread(
            self._write_text,
            self.app_dir(app) / f"{self.script_prefix}{BOOT_SCRIPT}", content,
        )

    async def _write_index_html(self, info: CompileInfo) -> None:
        app = info.application
        if app.type != "browser":
            return
        template: str | None = None
        if info.library is not None:
            boot_dir = (
                info.library.root_dir / app.boot_path if app.boot_path
                else info.library.boot_dir
            )
            custom = boot_dir / "index.html"
            if custom.exists():
                template = await asyncio.to_thread(custom.read_text, encoding="utf-8")
        title = app.title or app.name
        boot = f"{self.script_prefix}{BOOT_SCRIPT}"
        await asyncio.to_thread(
            self._write_text,
            self.app_dir(app) / "index.html",
            render_index_html(template, boot, title),
        )
        if app.write_index_html_to_root:
            await asyncio.to_thread(
                self._write_text,
                self.output_dir / "index.html",
                render_index_html(template, self._root_relative(app, boot), title),
            )

    def _root_relative(self, app: Application, filename: str) -> str:
        """输出目录根下的 index.html 引用应用目录中文件的相对 URI"""
        rel = os.path.relpath(self.app_dir(app) / filename, self.output_dir)
        return Path(rel).as_posix()

    async def _write_bundles(self, info: CompileInfo) -> None:
        analyser = self._require_analyser()
        for filename, classes in info.bundles.items():
            chunks = []
            for cls in classes:
                lib = analyser.get_library_from_classname(cls)
                if lib is None:
                    continue
                text = await asyncio.to_thread(lib.class_file(cls).read_text, encoding="utf-8")
                chunks.append(f"// {cls}\n{text}")
            await asyncio.to_thread(
                self._write_text,
                self.app_dir(info.application) / f"{self.script_prefix}{filename}",
                "\n".join(chunks),
            )

    async def _write_compile_info(self, info: CompileInfo) -> None:
        data = {
            "application": info.application.name,
            "namespace": info.namespace,
            "environment": info.environment,
            "configdata": info.configdata,
            "pkgdata": info.pkgdata,
            "parts": info.parts,
        }
        await asyncio.to_thread(
            self._write_text,
            self.app_dir(info.application) / "compile-info.json",
            json.dumps(data, indent=2, ensure_ascii=False, default=str) + "\n",
        )

    async def after_write_application(self, info: CompileInfo) -> None:
        """写出完成后的扩展点（如压缩）"""
        self.events.emit(AFTER_WRITE_APPLICATION, info)


class SourceTarget(Target):
    """源码目标：加载器直接引用各库的源码目录"""

    type = "source"


class BuildTarget(Target):
    """构建目标：复制类文件到 <output>/transpiled，资源到 <output>/resource"""

    type = "build"

    def library_uris(self, lib: Library, app_dir: Path) -> dict[str, str]:
        def rel(name: str) -> str:
            return Path(os.path.relpath(self.output_dir / name, app_dir)).as_posix()

        return {"sourceUri": rel("transpiled"), "resourceUri": rel("resource")}

    async def write_application(self, info: CompileInfo) -> None:
        await asyncio.to_thread(self._copy_sources, info)
        await super().write_application(info)

    def _copy_sources(self, info: CompileInfo) -> None:
        analyser = self._require_analyser()
        transpiled = self.output_dir / "transpiled"
        for classes in info.parts.values():
            for cls in classes:
                lib = analyser.get_library_from_classname(cls)
                if lib is None:
                    continue
                dest = transpiled / (cls.replace(".", "/") + ".js")
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(lib.class_file(cls), dest)
        resource_root = self.output_dir / "resource"
        for asset in info.assets:
            dest = resource_root / asset.filename
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(asset.source_path, dest)

    async def after_write_application(self, info: CompileInfo) -> None:
        if self.minify != "off":
            logger.debug("应用 %s 的压缩模式: %s", info.application.name, self.minify)
        await super().after_write_application(info)


_TARGET_TYPES: dict[str, type[Target]] = {
    "source": SourceTarget,
    "build": BuildTarget,
    "SourceTarget": SourceTarget,
    "BuildTarget": BuildTarget,
}


def resolve_target_class(name: str | type[Target] | None) -> type[Target] | None:
    """按名称解析目标类：source / build / 类名 / 带点的导入路径"""
    if not name:
        return None
    if isinstance(name, type):
        return name
    if name == "typescript":
        raise UserError(
            "已不再支持 typescript 目标，请在 source 目标中设置 typescript: true",
        )
    if name in _TARGET_TYPES:
        return _TARGET_TYPES[name]
    if "." in name:
        module_name, _, class_name = name.rpartition(".")
        try:
            module = importlib.import_module(module_name)
        except ImportError:
            return None
        cls = getattr(module, class_name, None)
        if isinstance(cls, type) and issubclass(cls, Target):
            return cls
    return None
