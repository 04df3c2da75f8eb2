"""ServiceContainer 单元测试"""

from __future__ import annotations

from pathlib import Path

from qxtool.core.config import Config, get_config
from qxtool.services.container import (
    ServiceContainer,
    get_container,
    reset_container,
)


class TestServiceContainer:
    def test_lazy_loading(self) -> None:
        c = ServiceContainer()
        assert len(c._instances) == 0
        _ = c.packages
        assert "packages" in c._instances

    def test_shared_instances(self) -> None:
        c = ServiceContainer()
        assert c.packages is c.packages
        assert c.compile is c.compile

    def test_compile_gets_package_service(self) -> None:
        c = ServiceContainer()
        assert c.compile.packages is c.packages

    def test_config_and_project_dir(self, tmp_path: Path) -> None:
        cfg = Config(config_dir=str(tmp_path))
        c = ServiceContainer(cfg, project_dir=tmp_path / "proj")
        assert c.config is cfg
        assert c.packages.project_dir == tmp_path / "proj"
        assert c.compile.project_dir == tmp_path / "proj"

    def test_default_config(self) -> None:
        assert ServiceContainer().config is get_config()


class TestGetContainer:
    def test_singleton(self) -> None:
        c1 = get_container()
        c2 = get_container()
        assert c1 is c2

    def test_reset(self) -> None:
        c1 = get_container()
        reset_container()
        c2 = get_container()
        assert c1 is not c2
