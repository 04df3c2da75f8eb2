"""包列表视图

在兼容性索引之上做过滤、排序、分组与渲染（纯文本列 / JSON）。
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
from dataclasses import asdict, dataclass

from qxtool.core import version as semver
from qxtool.core.exceptions import InvalidVersionError, UserError
from qxtool.core.package.models import (
    LOCAL_REPO_NAME,
    CompatibilityResult,
    LibraryRecord,
)

logger = logging.getLogger(__name__)

COLUMN_SPLITTER = "   "


@dataclass
class ListOptions:
    all: bool = False
    json: bool = False
    installed: bool = False
    match: str = ""
    libraries_only: bool = False
    short: bool = False
    noheaders: bool = False


@dataclass
class ListingRow:
    type: str
    uri: str
    name: str
    description: str
    namespace: str = ""
    installed_version: str | None = None
    latest_version: str | None = None
    latest_compatible: str | None = None


def build_rows(result: CompatibilityResult, opts: ListOptions) -> list[ListingRow]:
    """按列表规则展开为输出行"""
    if opts.all:
        repos = list(result.repositories)
    else:
        repos = [
            r for r in result.repositories
            if r.latest_compatible or (opts.installed and r.name == LOCAL_REPO_NAME)
        ]
    repos.sort(key=lambda r: r.name.lower())

    rows: list[ListingRow] = []
    for repo in repos:
        is_local = repo.name == LOCAL_REPO_NAME
        repo_rows: list[ListingRow] = []
        for lib in result.libraries.get(repo.name, []):
            if not semver.is_valid(lib.version, loose=True):
                logger.warning(
                    "忽略 '%s' 的库 '%s': 无效版本格式 '%s'",
                    repo.name, lib.name, lib.version,
                )
                continue
            if not is_local and not _same_version(lib.version, repo.latest_version):
                continue
            uri = lib.path if is_local else posixpath.join(repo.name, lib.path or "")
            repo_rows.append(ListingRow(
                type="library",
                uri=uri.rstrip("/"),
                namespace=lib.namespace,
                name=lib.name,
                description=lib.summary or repo.description,
                installed_version=lib.installed_version,
                latest_version=repo.latest_version,
                latest_compatible=repo.latest_compatible,
            ))

        # 多库仓库插入标题行
        if len(repo_rows) > 1 and not (opts.libraries_only or opts.short or is_local):
            rows.append(ListingRow(
                type="repository",
                uri=repo.name,
                name="",
                description=repo.description,
                installed_version=None,
                latest_version=repo.latest_version,
                latest_compatible=repo.latest_compatible,
            ))
            if not (opts.json or opts.installed or opts.match):
                for row in repo_rows:
                    row.uri = "| " + row.uri
        rows.extend(repo_rows)

    if opts.match:
        pattern = re.compile(opts.match, re.IGNORECASE)
        rows = [
            r for r in rows
            if pattern.search(r.uri) or pattern.search(r.name)
            or pattern.search(r.description or "")
        ]
    if opts.installed:
        rows = [r for r in rows if r.installed_version]
    return rows


def _same_version(a: str, b: str | None) -> bool:
    if b is None:
        return False
    try:
        return semver.compare(a, b) == 0
    except InvalidVersionError:
        return False


# ---- 渲染 ----


def _columns(rows: list[list[str]], headers: list[str] | None) -> str:
    table = ([headers] if headers else []) + rows
    if not table:
        return ""
    widths = [max(len(r[i]) for r in table) for i in range(len(table[0]))]
    lines = []
    for r in table:
        cells = [cell.ljust(widths[i]) for i, cell in enumerate(r)]
        lines.append(COLUMN_SPLITTER.join(cells).rstrip())
    return "\n".join(lines)


def render_rows(rows: list[ListingRow], opts: ListOptions) -> str:
    """渲染列表：JSON 或列对齐文本

    已安装版本缺失显示为空，最新 / 兼容版本缺失显示为 "-"。
    """
    if opts.json:
        return json.dumps([asdict(r) for r in rows], indent=2, ensure_ascii=False)

    keys = (
        ["uri", "installed_version", "latest_version", "latest_compatible"]
        if opts.short else
        ["uri", "name", "description", "installed_version",
         "latest_version", "latest_compatible"]
    )
    if opts.installed:
        keys.insert(1, "namespace")
    headings = {
        "uri": "URI", "name": "NAME", "description": "DESCRIPTION",
        "namespace": "NAMESPACE", "installed_version": "INSTALLED",
        "latest_version": "LATEST", "latest_compatible": "COMPATIBLE",
    }

    def _cell(row: ListingRow, key: str) -> str:
        value = getattr(row, key)
        if key == "installed_version":
            return value or ""
        if key in ("latest_version", "latest_compatible"):
            return value or "-"
        text = value or ""
        if key == "name":
            return text[:25]
        if key == "description":
            return text[:60]
        return text

    body = [[_cell(r, k) for k in keys] for r in rows]
    headers = None if opts.noheaders else [headings[k] for k in keys]
    return _columns(body, headers)


def render_repository_detail(
    result: CompatibilityResult, repo_name: str, known_repos: list[str],
) -> str:
    """单个仓库的库详情视图"""
    if repo_name not in known_repos:
        raise UserError(f"仓库 {repo_name} 不存在或不是有效的包仓库")
    libs: list[LibraryRecord] = result.libraries.get(repo_name, [])
    if not libs:
        logger.info("仓库 %s 中没有可用的库", repo_name)
        return ""
    keys = ["name", "namespace", "summary", "version", "compatibility",
            "required_range", "path", "installed_version"]

    def _cell(lib: LibraryRecord, key: str) -> str:
        value = getattr(lib, key)
        if key == "compatibility":
            if value is True:
                return "√"
            if value is False:
                return "not compatible / untested"
            return ""
        text = "" if value is None else str(value)
        return text[:60] if key == "summary" else text

    body = [[_cell(lib, k) for k in keys] for lib in libs]
    return _columns(body, [k.upper() for k in keys])
