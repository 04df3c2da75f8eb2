"""目标配置解析：compile.json -> Maker 列表

步骤（顺序不可调换）:
  1. 按目标类型筛选 target，无过滤条件的为隐式默认目标（至多一个）
  2. 为每个 application 匹配 target，找不到时回退到默认目标
  3. 建立 target <-> application 双向引用
  4. 检查库清单，缺失时触发一次安装
  5. 按命名空间加载库，缺少 qx 时使用全局框架
  6. 依赖检查
  7. 确定默认应用
  8. 每个有应用的 target 生成一个 Maker
  9. 按字段映射表构造 Application，附加 parts / bundle / include / exclude
 10. 注册编译标记监听器
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from qxtool import __version__
from qxtool.core.compile import analyser as analyser_mod
from qxtool.core.compile.dependencies import check_dependencies
from qxtool.core.compile.library import Library
from qxtool.core.compile.maker import AnalyserFactory, AppMaker, default_analyser_factory
from qxtool.core.compile.models import (
    AppConfig,
    Application,
    Part,
    TargetConfig,
    apply_app_fields,
)
from qxtool.core.compile.targets import resolve_target_class
from qxtool.core.config import Config
from qxtool.core.events import COMPILED_CLASS
from qxtool.core.exceptions import DependencyError, UserError

logger = logging.getLogger(__name__)


@dataclass
class CompileOverrides:
    """命令行对 compile.json 的覆盖项"""

    target_type: str | None = None
    output_path: str | None = None
    locales: list[str] | None = None
    minify: str | None = None
    app_names: list[str] | None = None
    warn_as_error: bool = False
    download: bool = True
    bundling: bool = True
    typescript: bool = False
    write_all_translations: bool = False
    erase: bool = True
    environment: dict[str, Any] = field(default_factory=dict)


def normalize_minify(value: Any) -> str | None:
    if isinstance(value, bool):
        return "minify" if value else "off"
    return value or None


def _merge_lists(*sources: Any) -> list[str]:
    result: list[str] = []
    for src in sources:
        if not src:
            continue
        if isinstance(src, str):
            src = [src]
        for item in src:
            if item not in result:
                result.append(item)
    return result


class TargetConfigResolver:
    """把项目配置展开为 Maker 实例"""

    def __init__(
        self,
        config: Config,
        *,
        project_dir: str | Path = ".",
        installer: Callable[[], None] | None = None,
        packages_provider: Callable[[], dict[str, str]] | None = None,
        compiler_version: str = __version__,
        analyser_factory: AnalyserFactory = default_analyser_factory,
    ) -> None:
        self.config = config
        self.project_dir = Path(project_dir)
        self.installer = installer
        self.packages_provider = packages_provider
        self.compiler_version = compiler_version
        self.analyser_factory = analyser_factory
        self.libraries: dict[str, Library] = {}

    # ---- 1~3: target / application 匹配 ----

    @staticmethod
    def _accepts(tc: TargetConfig, ac: AppConfig) -> bool:
        app_types = tc.get("application-types")
        if app_types and ac.type not in app_types:
            return False
        app_names = tc.get("application-names")
        if ac.name and app_names and ac.name not in app_names:
            return False
        return True

    def match_targets(
        self, data: dict[str, Any], overrides: CompileOverrides,
    ) -> tuple[list[TargetConfig], list[AppConfig]]:
        """返回有应用的 target 列表（默认目标排在最后）和参与编译的应用"""
        target_type = overrides.target_type or data.get("targetType") or "source"
        targets = [TargetConfig(i, t) for i, t in enumerate(data.get("targets") or [])]
        explicit: list[TargetConfig] = []
        default: TargetConfig | None = None
        for tc in targets:
            if tc.type != target_type:
                continue
            if tc.is_implicit_default:
                if default is not None:
                    logger.warning(
                        "存在多个未限定应用的 %s 目标，忽略第 %d 个", target_type, tc.index,
                    )
                else:
                    default = tc
            else:
                explicit.append(tc)

        apps: list[AppConfig] = []
        for index, raw in enumerate(data.get("applications") or []):
            ac = AppConfig(index, raw)
            if overrides.app_names and ac.name and ac.name not in overrides.app_names:
                continue
            matched = [tc for tc in explicit if self._accepts(tc, ac)]
            if not matched:
                if default is None:
                    raise UserError(
                        f"Cannot find any suitable targets for application #{index} "
                        f"(named {ac.name or 'unnamed'})"
                    )
                matched = [default]
            for tc in matched:
                tc.app_configs.append(ac)
                ac.target_configs.append(tc)
            apps.append(ac)

        used = [tc for tc in explicit if tc.app_configs]
        for tc in explicit:
            if not tc.app_configs:
                logger.info("目标 %s #%d 没有匹配的应用，跳过", tc.type, tc.index)
        if default is not None and default.app_configs:
            used.append(default)
        return used, apps

    # ---- 4~6: 库 ----

    def load_libraries(self, data: dict[str, Any]) -> dict[str, Library]:
        manifest_name = self.config.manifest_name
        paths = [self.project_dir / p for p in (data.get("libraries") or ["."])]
        missing = [p for p in paths if not (p / manifest_name).exists()]
        if missing and self.installer is not None:
            logger.info("有库未找到，尝试从包仓库安装...")
            self.installer()
            missing = [p for p in paths if not (p / manifest_name).exists()]
        if missing:
            raise DependencyError(
                "找不到库: " + ", ".join(str(p) for p in missing),
            )

        libraries: dict[str, Library] = {}
        for path in paths:
            lib = Library.create(path, manifest_name)
            libraries[lib.namespace] = lib

        if "qx" not in libraries:
            framework_path = self.config.framework_path
            if not framework_path or not (Path(framework_path) / manifest_name).exists():
                raise UserError(
                    "项目未包含 qx 框架库，且未配置可用的 framework_path",
                )
            qx_lib = Library.create(framework_path, manifest_name)
            libraries[qx_lib.namespace] = qx_lib
        logger.debug("qx 框架位于 %s", libraries["qx"].root_dir)
        self.libraries = libraries
        return libraries

    def check(self, libraries: dict[str, Library], overrides: CompileOverrides,
              data: dict[str, Any]) -> None:
        packages = data.get("packages")
        if packages is None and self.packages_provider is not None:
            packages = self.packages_provider()
        errors = check_dependencies(
            libraries.values(),
            packages,
            libraries["qx"].version,
            self.compiler_version,
            download=overrides.download,
            installer=self.installer,
            project_dir=self.project_dir,
        )
        if not errors:
            return
        if overrides.warn_as_error:
            raise DependencyError("\n".join(errors))
        for err in errors:
            logger.warning(err)

    # ---- 7: 默认应用 ----

    @staticmethod
    def find_default_app(targets: list[TargetConfig]) -> AppConfig | None:
        has_explicit = False
        default_app: AppConfig | None = None
        seen: set[int] = set()
        for tc in targets:
            for ac in tc.app_configs:
                if ac.index in seen or ac.type != "browser":
                    continue
                seen.add(ac.index)
                if ac.get("writeIndexHtmlToRoot") is not None:
                    logger.warning(
                        "application.writeIndexHtmlToRoot 已弃用，请改用 application.default",
                    )
                    set_default = ac.get("writeIndexHtmlToRoot")
                else:
                    set_default = ac.get("default")
                if set_default is not None:
                    if set_default:
                        if has_explicit:
                            raise UserError("只能把一个应用设置为默认应用")
                        has_explicit = True
                        default_app = ac
                elif default_app is None:
                    default_app = ac
        return default_app

    # ---- 8~10: Maker ----

    def _build_application(
        self, data: dict[str, Any], tc: TargetConfig, ac: AppConfig,
        target_type: str, bundling: bool,
    ) -> Application:
        class_name = ac.get("class")
        if not class_name:
            raise UserError(f"应用 #{ac.index} ({ac.name or 'unnamed'}) 缺少 class")
        app = Application(class_name=class_name)
        apply_app_fields(app, ac.data)

        parts = ac.get("parts") or tc.get("parts") or data.get("parts")
        if parts:
            if "boot" not in parts:
                raise UserError(
                    f"Cannot determine a boot part for application "
                    f"{ac.index + 1} {ac.name}".rstrip()
                )
            app.parts = [Part.from_config(name, pd or {}) for name, pd in parts.items()]

        if target_type == "source" and bundling:
            bundle = ac.get("bundle") or tc.get("bundle") or data.get("bundle")
            if bundle:
                app.bundle_include = _merge_lists(bundle.get("include"))
                app.bundle_exclude = _merge_lists(bundle.get("exclude"))

        app.include = _merge_lists(data.get("include"), tc.get("include"), ac.get("include"))
        app.exclude = _merge_lists(data.get("exclude"), tc.get("exclude"), ac.get("exclude"))
        ac.app = app
        return app

    def _global_symbols(self, app_types: set[str]) -> list[str]:
        symbols = list(analyser_mod.QX_GLOBALS) + list(analyser_mod.COMMON_GLOBALS)
        if "browser" in app_types:
            symbols += analyser_mod.BROWSER_GLOBALS
        if "node" in app_types:
            symbols += analyser_mod.NODE_GLOBALS
        if "rhino" in app_types:
            symbols += analyser_mod.RHINO_GLOBALS
        return symbols

    def _create_maker(
        self, data: dict[str, Any], tc: TargetConfig, overrides: CompileOverrides,
        libraries: dict[str, Library], default_app: AppConfig | None,
    ) -> AppMaker:
        output_path = overrides.output_path or tc.get("outputPath")
        if not output_path:
            raise UserError(f"目标 {tc.type} 缺少 outputPath")

        target_name = tc.get("targetClass") or tc.type
        target_cls = resolve_target_class(target_name)
        if target_cls is None:
            raise UserError(f"找不到目标类: {target_name}")
        target = target_cls(self.project_dir / output_path)
        if self.config.templates_dir:
            target.template_path = Path(self.config.templates_dir) / "loader.tmpl.js"
        if tc.get("writeCompileInfo"):
            target.write_compile_info = True

        # 命令行 > target 配置 > 默认
        minify = normalize_minify(overrides.minify)
        if minify is None:
            minify = normalize_minify(tc.get("minify"))
        target.minify = minify or self.config.default_minify

        maker = AppMaker(
            target,
            compiler_version=self.compiler_version,
            analyser_factory=self.analyser_factory,
        )
        maker.no_erase = not overrides.erase
        maker.locales = list(
            overrides.locales or data.get("locales") or self.config.default_locales,
        )
        maker.write_all_translations = bool(
            overrides.write_all_translations or data.get("writeAllTranslations"),
        )

        typescript = tc.get("typescript")
        if isinstance(typescript, str):
            maker.output_typescript = True
            maker.output_typescript_to = typescript
        elif typescript is True or overrides.typescript:
            maker.output_typescript = True

        maker.environment = {**(data.get("environment") or {}), **overrides.environment}
        target.environment = dict(tc.get("environment") or {})
        for source, uri in (data.get("path-mappings") or {}).items():
            target.add_path_mapping(source, uri)

        for lib in libraries.values():
            maker.analyser.add_library(lib)

        app_types: set[str] = set()
        for ac in tc.app_configs:
            app = self._build_application(data, tc, ac, target.type, overrides.bundling)
            app_types.add(app.type)
            maker.add_application(app)
            if default_app is ac:
                app.write_index_html_to_root = True
        maker.analyser.set_global_symbols(self._global_symbols(app_types))
        if default_app is None or default_app not in tc.app_configs:
            root_index = target.output_dir / "index.html"
            if root_index.exists():
                root_index.unlink()

        self._subscribe_markers(maker)
        return maker

    @staticmethod
    def _subscribe_markers(maker: AppMaker) -> None:
        """编译标记按 Maker 各输出一次，不同目标之间不去重"""
        reported: set[str] = set()

        def _on_compiled(payload: dict[str, Any]) -> None:
            class_name = payload["class_file"].class_name
            markers = payload["db_class_info"].get("markers") or []
            if not markers or class_name in reported:
                return
            reported.add(class_name)
            for marker in markers:
                logger.warning("%s: %s", class_name, analyser_mod.decode_marker(marker))

        maker.analyser.events.on(COMPILED_CLASS, _on_compiled)

    def resolve(
        self, data: dict[str, Any], overrides: CompileOverrides | None = None,
    ) -> list[AppMaker]:
        overrides = overrides or CompileOverrides()
        targets, _apps = self.match_targets(data, overrides)
        libraries = self.load_libraries(data)
        self.check(libraries, overrides, data)
        default_app = self.find_default_app(targets)
        makers = [
            self._create_maker(data, tc, overrides, libraries, default_app)
            for tc in targets
        ]
        logger.debug("共生成 %d 个 Maker", len(makers))
        return makers
