"""qxtool 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

from __future__ import annotations

import os
import sys
import traceback
from typing import Any

import click

from qxtool import __version__
from qxtool.core.exceptions import UserError, ValidationError
from qxtool.services.container import get_container
from qxtool.utils.logger import setup_logging


def _svc() -> Any:
    """获取全局服务容器的快捷方式"""
    return get_container()


def _parse_kv_pairs(pairs: tuple[str, ...]) -> dict[str, str]:
    """解析 key=value 参数对"""
    result: dict[str, str] = {}
    for p in pairs:
        if "=" in p:
            k, v = p.split("=", 1)
            result[k.strip()] = v.strip()
    return result


class QxToolGroup(click.Group):
    """UserError / ValidationError 只输出消息，其它异常输出堆栈；退出码均为 1"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except (UserError, ValidationError) as e:
            click.echo(f"错误: {e}", err=True)
            sys.exit(1)
        except (click.exceptions.Exit, click.ClickException, click.Abort):
            raise
        except Exception:  # noqa: BLE001
            click.echo(traceback.format_exc(), err=True)
            sys.exit(1)


@click.group(cls=QxToolGroup)
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="输出调试日志")
@click.option("--config", "config_file", default=None, help="qxtool.yml 配置文件路径")
def main(verbose: bool, config_file: str | None) -> None:
    """qxtool - 组件化应用的包管理与编译工具链"""
    level = "DEBUG" if verbose else os.getenv("QXTOOL_LOG_LEVEL", "INFO")
    setup_logging(
        level=level,
        json_output=os.getenv("QXTOOL_LOG_JSON", "") == "1",
    )
    if config_file:
        from qxtool.core.config import init_config
        from qxtool.services.container import reset_container
        init_config(config_file)
        reset_container()


# 注册各领域子命令
from qxtool.cli.cmd_compile import register as _reg_compile  # noqa: E402
from qxtool.cli.cmd_package import register as _reg_package  # noqa: E402

_reg_package(main)
_reg_compile(main)
