"""编译管线：库 -> 分析 -> 目标 -> 加载器"""

from qxtool.core.compile.library import Library
from qxtool.core.compile.maker import AppMaker, Maker
from qxtool.core.compile.models import AppConfig, Application, Part, TargetConfig
from qxtool.core.compile.resolver import CompileOverrides, TargetConfigResolver
from qxtool.core.compile.targets import BuildTarget, SourceTarget, Target
from qxtool.core.compile.watch import Watch

__all__ = [
    "AppConfig",
    "AppMaker",
    "Application",
    "BuildTarget",
    "CompileOverrides",
    "Library",
    "Maker",
    "Part",
    "SourceTarget",
    "Target",
    "TargetConfig",
    "TargetConfigResolver",
    "Watch",
]
