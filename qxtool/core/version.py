"""semver 版本解析与范围匹配

包兼容性计算和编译期依赖检查共用的纯函数集合，基于 semantic_version 的 NpmSpec
实现 npm 风格范围（^ ~ x 连字符 ||）。

约定:
- 非法版本 / 非法范围不会抛出到匹配函数外，统一视为 "不满足"，
  由调用方记录日志后跳过对应条目
- compare / gt 需要全序，非法输入抛 InvalidVersionError
"""

from __future__ import annotations

import itertools
import logging
import re

import semantic_version
from semantic_version.base import AllOf, Always, AnyOf, Never, Range

from qxtool.core.exceptions import InvalidVersionError

logger = logging.getLogger(__name__)

_LOOSE_PREFIX = re.compile(r"^[=v\s]+")
# ">= 1.0.0" -> ">=1.0.0"，NpmSpec 只接受紧凑写法
_OPERATOR_SPACE = re.compile(r"(<=|>=|<|>|=|\^|~)\s+")
_MULTI_SPACE = re.compile(r"\s+")


def parse_version(
    text: str | None, loose: bool = True,
) -> semantic_version.Version | None:
    """解析版本字符串，非法时返回 None

    loose 模式接受前导 v / =、首尾空白以及不完整版本（1.2 -> 1.2.0）。
    """
    if not isinstance(text, str):
        return None
    candidate = text.strip()
    if loose:
        candidate = _LOOSE_PREFIX.sub("", candidate)
    try:
        return semantic_version.Version(candidate)
    except ValueError:
        pass
    if not loose:
        return None
    # 仅在纯数字的不完整版本上补零，带预发布后缀的残缺版本仍视为非法
    if re.fullmatch(r"\d+(\.\d+)?", candidate):
        return semantic_version.Version.coerce(candidate)
    return None


def is_valid(text: str | None, loose: bool = False) -> bool:
    return parse_version(text, loose=loose) is not None


def _parse_range(range_expr: str) -> semantic_version.NpmSpec | None:
    if not isinstance(range_expr, str):
        return None
    expr = range_expr.strip()
    expr = _OPERATOR_SPACE.sub(r"\1", expr)
    expr = _MULTI_SPACE.sub(" ", expr)
    try:
        return semantic_version.NpmSpec(expr)
    except ValueError:
        logger.debug("无法解析版本范围: %r", range_expr)
        return None


# ---- 比较器展开 ----


def _comparator_sets(clause: object) -> list[list[Range]]:
    """把 NpmSpec 的子句树展开为 "或" 连接的比较器集合列表"""
    if isinstance(clause, Range):
        return [[clause]]
    if isinstance(clause, Always):
        return [[]]
    if isinstance(clause, Never):
        return []
    if isinstance(clause, AnyOf):
        sets: list[list[Range]] = []
        for sub in clause.clauses:
            sets.extend(_comparator_sets(sub))
        return sets
    if isinstance(clause, AllOf):
        combined: list[list[Range]] = [[]]
        for sub in clause.clauses:
            sub_sets = _comparator_sets(sub)
            combined = [a + b for a, b in itertools.product(combined, sub_sets)]
        return combined
    raise TypeError(f"未知的版本范围子句: {clause!r}")


def _test_comparator(rng: Range, version: semantic_version.Version) -> bool:
    """按数值比较单个比较器，预发布版本不做同补丁号限制"""
    target = rng.target
    op = rng.operator
    if op == Range.OP_EQ:
        return version == target
    if op == Range.OP_NEQ:
        return version != target
    if op == Range.OP_GT:
        return version > target
    if op == Range.OP_GTE:
        return version >= target
    if op == Range.OP_LT:
        # <2.0.0 不包含 2.0.0-beta
        if (
            version.prerelease
            and not target.prerelease
            and version.truncate() == target.truncate()
        ):
            return False
        return version < target
    if op == Range.OP_LTE:
        return version <= target
    raise ValueError(f"未知比较运算符: {op}")


# ---- 对外接口 ----


def satisfies(
    version: str | None,
    range_expr: str | None,
    loose: bool = True,
    include_prerelease: bool = False,
) -> bool:
    """版本是否落在范围内，非法版本或范围返回 False"""
    ver = parse_version(version, loose=loose)
    if ver is None or range_expr is None:
        return False
    spec = _parse_range(range_expr)
    if spec is None:
        return False
    if not include_prerelease or not ver.prerelease:
        return spec.match(ver)
    return any(
        all(_test_comparator(rng, ver) for rng in comparators)
        for comparators in _comparator_sets(spec.clause)
    )


def compare(a: str, b: str) -> int:
    """全序比较，返回 -1 / 0 / 1"""
    va = parse_version(a)
    vb = parse_version(b)
    if va is None:
        raise InvalidVersionError(f"无效的版本号: {a!r}")
    if vb is None:
        raise InvalidVersionError(f"无效的版本号: {b!r}")
    if va < vb:
        return -1
    if va > vb:
        return 1
    return 0


def gt(a: str, b: str) -> bool:
    return compare(a, b) > 0


def _above_upper_bound(
    version: semantic_version.Version, comparators: list[Range],
) -> bool:
    uppers = [
        rng for rng in comparators
        if rng.operator in (Range.OP_LT, Range.OP_LTE, Range.OP_EQ)
    ]
    if not uppers:
        # 无上界的集合不可能被超过
        return False
    for rng in uppers:
        if rng.operator == Range.OP_LT and version >= rng.target:
            return True
        if rng.operator in (Range.OP_LTE, Range.OP_EQ) and version > rng.target:
            return True
    return False


def greater_than_range(version: str | None, range_expr: str | None) -> bool:
    """版本是否高于范围允许的全部版本（gtr）"""
    ver = parse_version(version)
    if ver is None or range_expr is None:
        return False
    spec = _parse_range(range_expr)
    if spec is None:
        return False
    comparator_sets = _comparator_sets(spec.clause)
    if not comparator_sets:
        return False
    if satisfies(version, range_expr, include_prerelease=True):
        return False
    return all(_above_upper_bound(ver, comps) for comps in comparator_sets)


def toolchain_satisfies(actual: str, range_expr: str) -> bool:
    """工具链自身版本检查

    在包含预发布的匹配之外，0.x 版本只要高于声明范围也视为满足。
    """
    if satisfies(actual, range_expr, loose=True, include_prerelease=True):
        return True
    ver = parse_version(actual)
    return ver is not None and ver.major == 0 and greater_than_range(actual, range_expr)


def coerce(text: str | None) -> str | None:
    """尽力把任意版本字符串转换为合法 semver，失败返回 None"""
    if not isinstance(text, str):
        return None
    candidate = _LOOSE_PREFIX.sub("", text.strip())
    exact = parse_version(candidate, loose=False)
    if exact is not None:
        return str(exact)
    match = re.search(r"\d+(\.\d+){0,2}", candidate)
    if not match:
        return None
    return str(semantic_version.Version.coerce(match.group(0)))
