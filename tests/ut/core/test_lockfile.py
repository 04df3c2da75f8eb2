"""锁文件测试"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from qxtool.core.exceptions import ConfigError
from qxtool.core.package import InstalledLibraryRecord, Lockfile
from qxtool.core.package.models import LOCKFILE_VERSION


def _record(uri: str, repo: str | None = "acme/lib", tag: str | None = "v1.0.0") -> InstalledLibraryRecord:
    return InstalledLibraryRecord(
        library_name=uri.rsplit("/", 1)[-1], uri=uri,
        path=f"qx_packages/{uri.replace('/', '_')}", repo_name=repo, repo_tag=tag,
        library_version="1.0.0",
    )


class TestLockfile:
    def test_missing_file_defaults(self, tmp_path: Path) -> None:
        lock = Lockfile(tmp_path / "qx-lock.json")
        assert not lock.exists
        assert lock.to_dict() == {"version": LOCKFILE_VERSION, "libraries": []}

    def test_save_and_reload(self, tmp_path: Path) -> None:
        path = tmp_path / "qx-lock.json"
        lock = Lockfile(path)
        lock.add_or_replace(_record("acme/lib"))
        lock.add_or_replace(_record("local/thing", repo=None, tag=None))
        lock.save()

        reloaded = Lockfile(path)
        assert reloaded.installed_tag("acme/lib", "lib") == "v1.0.0"
        assert reloaded.find_by_uri("local/thing").repo_name is None
        assert [r.uri for r in reloaded.local_libraries()] == ["local/thing"]
        raw = json.loads(path.read_text(encoding="utf-8"))
        assert "repo_tag" not in raw["libraries"][1]

    def test_add_or_replace_by_uri(self, tmp_path: Path) -> None:
        lock = Lockfile(tmp_path / "qx-lock.json")
        lock.add_or_replace(_record("acme/lib"))
        lock.add_or_replace(_record("acme/lib", tag="v2.0.0"))
        assert len(lock.libraries) == 1
        assert lock.libraries[0].repo_tag == "v2.0.0"

    def test_remove_where_returns_removed(self, tmp_path: Path) -> None:
        lock = Lockfile(tmp_path / "qx-lock.json")
        lock.add_or_replace(_record("acme/lib/one"))
        lock.add_or_replace(_record("acme/lib/two"))
        lock.add_or_replace(_record("other/repo", repo="other/repo"))
        removed = lock.remove_where(lambda r: r.repo_name == "acme/lib")
        assert [r.uri for r in removed] == ["acme/lib/one", "acme/lib/two"]
        assert lock.packages_map() == {"other/repo": "qx_packages/other_repo"}

    def test_corrupt_lockfile_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "qx-lock.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(ConfigError):
            Lockfile(path)
