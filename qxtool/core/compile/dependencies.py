"""库依赖检查

逐个库检查 Manifest.json 中的 requires:
  - 编译器 (qooxdoo-compiler / @qooxdoo/compiler): 对照工具链版本，允许 0.x 越界
  - 框架 (qooxdoo-sdk / @qooxdoo/framework): 对照项目使用的框架版本
  - 其余 uri: 通过 packages (uri -> 安装路径) 找到已加载的库后比较其版本
错误以字符串收集返回，由调用方决定警告或失败。
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from pathlib import Path

from qxtool.core import version as semver
from qxtool.core.compile.library import Library
from qxtool.core.exceptions import UserError

logger = logging.getLogger(__name__)

COMPILER_KEYS = ("qooxdoo-compiler", "@qooxdoo/compiler")
FRAMEWORK_KEYS = ("qooxdoo-sdk", "@qooxdoo/framework")


def is_package_requirement(key: str) -> bool:
    return not key.startswith("qooxdoo-") and key not in (
        "@qooxdoo/framework", "@qooxdoo/compiler",
    )


def _relative(path: Path, base: Path) -> str:
    return Path(os.path.relpath(os.path.abspath(path), os.path.abspath(base))).as_posix()


def check_dependencies(
    libraries: Iterable[Library],
    packages: dict[str, str] | None,
    framework_version: str,
    compiler_version: str,
    *,
    download: bool = True,
    installer: Callable[[], None] | None = None,
    project_dir: str | Path = ".",
) -> list[str]:
    """返回错误信息列表；缺少包信息时按 download 决定安装后要求重启或直接失败"""
    errors: list[str] = []
    packages = packages or {}
    libs = list(libraries)
    base = Path(project_dir)

    for lib in libs:
        requires = dict(lib.requires)
        legacy_range = lib.library_info.get("qooxdoo-range")
        if legacy_range:
            logger.debug(
                "%s: Manifest.json 中的 qooxdoo-range 已弃用，请改用 requires.@qooxdoo/framework",
                lib.namespace,
            )
            requires.setdefault("@qooxdoo/framework", legacy_range)

        requires_uris = [k for k in requires if is_package_requirement(k)]
        if requires_uris and not packages:
            if download and installer is not None:
                logger.info("正在安装所需库的最新兼容版本...")
                installer()
                raise UserError("已根据 Manifest 补全缺失的库信息，请重新运行编译。")
            raise UserError("没有可用的库信息，请去掉 --no-download 后重新编译")

        for uri, required_range in requires.items():
            if uri in COMPILER_KEYS:
                if not semver.toolchain_satisfies(compiler_version, required_range):
                    errors.append(
                        f"{lib.namespace}: Needs @qooxdoo/compiler version "
                        f"{required_range}, found {compiler_version}"
                    )
            elif uri in FRAMEWORK_KEYS:
                if not semver.satisfies(framework_version, required_range, loose=True):
                    errors.append(
                        f"{lib.namespace}: Needs @qooxdoo/framework version "
                        f"{required_range}, found {framework_version}"
                    )
            else:
                wanted = packages.get(uri)
                found = None
                if wanted is not None:
                    wanted = Path(wanted).as_posix()
                    found = next(
                        (l for l in libs if _relative(l.root_dir, base) == wanted), None,
                    )
                if found is None:
                    errors.append(f"{lib.namespace}: Cannot find required library '{uri}'")
                    continue
                lib_version = found.version
                if not semver.is_valid(lib_version, loose=True):
                    logger.warning("%s: 版本号无效: %s", uri, lib_version)
                elif not semver.satisfies(lib_version, required_range, loose=True):
                    errors.append(
                        f"{lib.namespace}: Needs {uri} version {required_range}, "
                        f"found {lib_version}"
                    )
    return errors
