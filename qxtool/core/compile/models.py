"""编译数据模型

数据类:
- Part: 按名称分组、共享同一个加载包的一组类
- Application: 单个应用的编译设置
- TargetConfig / AppConfig: compile.json 中的目标与应用配置（多对多回引）
- CompileInfo: 单次 generate_application 的中间产物
- MakerState: Maker 生命周期状态
"""

from __future__ import annotations

import enum
import fnmatch
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from qxtool.core.compile.library import Library


class MakerState(enum.Enum):
    IDLE = "idle"
    OPENED = "opened"
    ANALYSED = "analysed"
    WRITING = "writing"
    MADE = "made"
    WATCHING = "watching"


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def match_any(name: str, patterns: list[str]) -> bool:
    """类名是否匹配任一通配符模式（qx.ui.* 之类）"""
    return any(fnmatch.fnmatchcase(name, p) for p in patterns)


@dataclass
class Part:
    name: str
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)

    @classmethod
    def from_config(cls, name: str, data: dict[str, Any]) -> Part:
        return cls(
            name=name,
            include=_as_list(data.get("include")),
            exclude=_as_list(data.get("exclude")),
        )

    def matches(self, class_name: str) -> bool:
        return match_any(class_name, self.include) and not match_any(class_name, self.exclude)


@dataclass
class Application:
    """一个待编译的应用"""

    class_name: str
    type: str = "browser"
    theme: str | None = None
    name: str = ""
    title: str = ""
    environment: dict[str, Any] = field(default_factory=dict)
    output_path: str | None = None
    boot_path: str | None = None
    loader_template: str | None = None
    parts: list[Part] = field(default_factory=list)
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    bundle_include: list[str] = field(default_factory=list)
    bundle_exclude: list[str] = field(default_factory=list)
    write_index_html_to_root: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.class_name

    def required_classes(self) -> list[str]:
        """入口类、主题以及 include 中的非通配类名"""
        result = [self.class_name]
        if self.theme:
            result.append(self.theme)
        for name in self.include:
            if "*" not in name and name not in result:
                result.append(name)
        return result

    def part(self, name: str) -> Part | None:
        for p in self.parts:
            if p.name == name:
                return p
        return None

    def is_bundled(self, class_name: str) -> bool:
        return bool(self.bundle_include) and match_any(
            class_name, self.bundle_include,
        ) and not match_any(class_name, self.bundle_exclude)


def _as_str(value: Any) -> str:
    return str(value)


def _as_dict(value: Any) -> dict[str, Any]:
    return dict(value or {})


# 配置键 -> (Application 字段, 转换函数)；只复制列表中的键
APP_FIELD_MAP: tuple[tuple[str, str, Callable[[Any], Any]], ...] = (
    ("type", "type", _as_str),
    ("theme", "theme", _as_str),
    ("name", "name", _as_str),
    ("environment", "environment", _as_dict),
    ("outputPath", "output_path", _as_str),
    ("bootPath", "boot_path", _as_str),
    ("loaderTemplate", "loader_template", _as_str),
    ("title", "title", _as_str),
)


def apply_app_fields(app: Application, data: dict[str, Any]) -> None:
    for key, attr, convert in APP_FIELD_MAP:
        if data.get(key) is not None:
            setattr(app, attr, convert(data[key]))


@dataclass(eq=False)
class TargetConfig:
    """compile.json 中的一个 target 条目"""

    index: int
    data: dict[str, Any]
    app_configs: list[AppConfig] = field(default_factory=list)

    @property
    def type(self) -> str:
        return self.data.get("type", "source")

    @property
    def is_implicit_default(self) -> bool:
        return not self.data.get("application-names") and not self.data.get(
            "application-types",
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass(eq=False)
class AppConfig:
    """compile.json 中的一个 application 条目"""

    index: int
    data: dict[str, Any]
    target_configs: list[TargetConfig] = field(default_factory=list)
    app: Application | None = None

    @property
    def type(self) -> str:
        return self.data.get("type") or "browser"

    @property
    def name(self) -> str:
        return self.data.get("name") or ""

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass
class CompileInfo:
    """每个应用、每个目标独立构建的中间结果，不跨应用共享"""

    application: Application
    environment: dict[str, Any]
    library: Library | None = None
    namespace: str = ""
    configdata: dict[str, Any] = field(default_factory=dict)
    pkgdata: dict[str, Any] = field(default_factory=dict)
    assets: list[Any] = field(default_factory=list)
    parts: dict[str, list[str]] = field(default_factory=dict)
    uris: list[str] = field(default_factory=list)
    bundles: dict[str, list[str]] = field(default_factory=dict)
    pre_boot_code: list[str] = field(default_factory=list)
