"""翻译目录（.po 文件）读取

只解析 msgid / msgid_plural / msgstr / msgstr[n]，注释与上下文忽略。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_KEYWORD_LINE = re.compile(r'^(msgid_plural|msgid|msgctxt|msgstr(?:\[(\d+)\])?)\s+"(.*)"\s*$')
_CONTINUATION = re.compile(r'^"(.*)"\s*$')
_ESCAPES = {"n": "\n", "t": "\t", '"': '"', "\\": "\\", "r": "\r"}


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), text)


@dataclass
class Translation:
    """一个库在某个语言下的翻译条目集合"""

    locale: str
    entries: dict[str, dict[str, Any]] = field(default_factory=dict)

    def get_entry(self, msgid: str) -> dict[str, Any] | None:
        return self.entries.get(msgid)

    @classmethod
    def load(cls, path: Path, locale: str) -> Translation:
        if not path.exists():
            return cls(locale=locale)
        return cls(locale=locale, entries=parse_po(path.read_text(encoding="utf-8")))


def parse_po(text: str) -> dict[str, dict[str, Any]]:
    """解析 .po 文本为 {msgid: {msgid, msgid_plural?, msgstr: [..]}}"""
    entries: dict[str, dict[str, Any]] = {}
    current: dict[str, Any] = {}
    last_key: tuple[str, int | None] | None = None

    def _flush() -> None:
        if "msgid" in current:
            msgstr = current.get("msgstr") or {}
            entry: dict[str, Any] = {
                "msgid": current["msgid"],
                "msgstr": [msgstr[i] for i in sorted(msgstr)],
            }
            if "msgid_plural" in current:
                entry["msgid_plural"] = current["msgid_plural"]
            entries[entry["msgid"]] = entry
        current.clear()

    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            if not line and current.get("msgstr"):
                _flush()
                last_key = None
            continue
        m = _KEYWORD_LINE.match(line)
        if m:
            keyword, index, value = m.group(1), m.group(2), _unescape(m.group(3))
            if keyword == "msgid" and current.get("msgstr"):
                _flush()
            if keyword.startswith("msgstr"):
                idx = int(index) if index is not None else 0
                current.setdefault("msgstr", {})[idx] = value
                last_key = ("msgstr", idx)
            else:
                current[keyword] = value
                last_key = (keyword, None)
            continue
        m = _CONTINUATION.match(line)
        if m and last_key is not None:
            value = _unescape(m.group(1))
            key, idx = last_key
            if key == "msgstr":
                current["msgstr"][idx] += value
            else:
                current[key] += value
        else:
            logger.debug("无法识别的 po 行: %r", raw)
    _flush()
    return entries
