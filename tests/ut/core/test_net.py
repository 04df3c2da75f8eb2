"""URL scheme 校验 / 下载工具测试"""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from qxtool.core.exceptions import ValidationError
from qxtool.utils import net
from qxtool.utils.net import download_file, fetch_json, validate_url_scheme


class _FakeResponse(io.BytesIO):
    def __enter__(self) -> _FakeResponse:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class TestValidateUrlScheme:
    def test_http_ok(self) -> None:
        validate_url_scheme("http://example.com/api")

    def test_https_ok(self) -> None:
        validate_url_scheme("https://example.com/api")

    def test_file_rejected(self) -> None:
        with pytest.raises(ValidationError, match="不允许的 URL 协议"):
            validate_url_scheme("file:///etc/passwd")

    def test_context_in_message(self) -> None:
        with pytest.raises(ValidationError, match="package cache"):
            validate_url_scheme("ftp://example.com/x", context="package cache")


class TestDownload:
    def test_fetch_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: list[str] = []

        def fake_urlopen(url: str, timeout: int = 0) -> _FakeResponse:
            seen.append(url)
            return _FakeResponse(json.dumps({"repos": {}}).encode("utf-8"))

        monkeypatch.setattr(net.urllib.request, "urlopen", fake_urlopen)
        assert fetch_json("https://example.com/cache.json") == {"repos": {}}
        assert seen == ["https://example.com/cache.json"]

    def test_fetch_json_rejects_file_url(self) -> None:
        with pytest.raises(ValidationError):
            fetch_json("file:///tmp/cache.json")

    def test_download_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            net.urllib.request, "urlopen",
            lambda url, timeout=0: _FakeResponse(b"archive"),
        )
        dest = download_file("https://example.com/a.tar.gz", tmp_path / "dl" / "a.tar.gz")
        assert dest.read_bytes() == b"archive"
