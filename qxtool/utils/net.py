"""网络工具 - URL 安全校验 + JSON / 文件下载"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from qxtool.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = frozenset(("http", "https"))


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https，防止 file:// 等非预期协议访问

    Raises:
        ValidationError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，"
            f"仅支持 http/https: {url}"
        )


def fetch_json(url: str, *, timeout: int = 60) -> Any:
    """下载并解析 JSON 文档"""
    validate_url_scheme(url, context="json download")
    logger.debug("下载: %s", url)
    with urllib.request.urlopen(url, timeout=timeout) as resp:  # nosec B310
        return json.loads(resp.read().decode("utf-8"))


def download_file(url: str, dest: Path, *, timeout: int = 60) -> Path:
    """下载文件到 dest，返回 dest"""
    validate_url_scheme(url, context="archive download")
    dest.parent.mkdir(parents=True, exist_ok=True)
    logger.info("下载: %s -> %s", url, dest)
    with urllib.request.urlopen(url, timeout=timeout) as resp:  # nosec B310
        dest.write_bytes(resp.read())
    return dest
