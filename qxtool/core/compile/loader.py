"""启动脚本模板替换 + 入口 HTML 生成

模板语法:
    %{Token}  按行反复替换为映射值的 JSON（缩进 2），未知 Token 替换为空串
    %{PreBootCode} 等原样代码 Token 不做 JSON 序列化
    以 "delayDefer: false" 开头的行一律改为 true
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from qxtool.core.compile.models import CompileInfo

_TOKEN = re.compile(r"%\{([^}]+)\}")
_DELAY_DEFER = re.compile(r"^\s*delayDefer:\s*false\b")

RAW_TOKENS = frozenset({"PreBootCode"})

DEFAULT_TEMPLATE = Path(__file__).resolve().parent.parent.parent / "templates" / "loader.tmpl.js"

DEFAULT_INDEX_HTML = """<!DOCTYPE html>
<html>
<head>
  <meta http-equiv="Content-Type" content="text/html; charset=utf-8" />
  <title>{title}</title>
</head>
<body></body>
</html>
"""


def substitute_template(
    text: str, mapping: dict[str, Any], raw_tokens: frozenset[str] = RAW_TOKENS,
) -> str:
    lines = text.split("\n")
    for i, line in enumerate(lines):
        match = _TOKEN.search(line)
        while match:
            keyword = match.group(1)
            if keyword not in mapping:
                replace = ""
            elif keyword in raw_tokens:
                replace = str(mapping[keyword])
            else:
                replace = json.dumps(mapping[keyword], indent=2, ensure_ascii=False)
            line = line[:match.start()] + replace + line[match.end():]
            # 从替换内容之后继续，替换值中的 %{...} 不再展开
            match = _TOKEN.search(line, match.start() + len(replace))
        if _DELAY_DEFER.match(line):
            line = line.replace("false", "true", 1)
        lines[i] = line
    return "\n".join(lines)


def build_template_map(info: CompileInfo, locales: list[str]) -> dict[str, Any]:
    """由 CompileInfo 生成模板替换映射"""
    configdata = info.configdata
    loader = configdata["loader"]
    translations: dict[str, Any] = {"C": None}
    locale_map: dict[str, Any] = {"C": None}
    for locale in locales:
        translations[locale] = None
        locale_map[locale] = None
    return {
        "EnvSettings": configdata["environment"],
        "Libinfo": configdata["libraries"],
        "Resources": {},
        "Translations": translations,
        "Locales": locale_map,
        "Parts": loader["parts"],
        "Packages": loader["packages"],
        "UrisBefore": configdata["urisBefore"],
        "CssBefore": configdata["cssBefore"],
        "Boot": configdata["boot"],
        "ClosureParts": configdata["closureParts"],
        "BootIsInline": configdata["bootIsInline"],
        "NoCacheParam": configdata["addNoCacheParam"],
        "PreBootCode": "\n".join(info.pre_boot_code),
    }


def render_index_html(template: str | None, script_src: str, title: str) -> str:
    """在模板中注入一个引用启动脚本的 <script> 标签"""
    html = template if template is not None else DEFAULT_INDEX_HTML.format(title=title)
    tag = f'  <script type="text/javascript" src="{script_src}"></script>\n'
    lower = html.lower()
    for anchor in ("</head>", "</body>"):
        pos = lower.find(anchor)
        if pos >= 0:
            return html[:pos] + tag + html[pos:]
    return html + tag
