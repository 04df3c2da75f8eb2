"""CLI - 编译命令"""

from __future__ import annotations

import json
import logging

import click

from qxtool.cli import _parse_kv_pairs, _svc
from qxtool.core.compile.resolver import CompileOverrides
from qxtool.core.events import MADE, MAKING


def register(group: click.Group) -> None:
    group.add_command(compile_cmd)


def _env_value(text: str) -> object:
    """--set 的值按 JSON 解析（true / 1 / "x"），失败时保留原字符串"""
    try:
        return json.loads(text)
    except ValueError:
        return text


@click.command(name="compile")
@click.argument("config_file", required=False)
@click.option("--target", "-t", "target_type", default=None, help="目标类型 (source / build)")
@click.option("--output-path", "-o", default=None, help="输出目录")
@click.option("--locale", "locales", multiple=True, help="语言（可多次指定）")
@click.option("--clean", is_flag=True, help="编译前删除输出目录和数据库")
@click.option("--watch", "-w", is_flag=True, help="监视源码变化并重新编译")
@click.option("--minify", type=click.Choice(["off", "minify", "mangle", "beautify"]),
              default=None, help="压缩模式")
@click.option("--app-name", "app_names", multiple=True, help="只编译指定应用（可多次指定）")
@click.option("--warn-as-error", "-e", is_flag=True, help="依赖警告视为错误")
@click.option("--no-download", is_flag=True, help="缺少库信息时不自动安装")
@click.option("--no-bundling", is_flag=True, help="source 目标不合并 bundle")
@click.option("--typescript", is_flag=True, help="输出 TypeScript 声明文件")
@click.option("--write-all-translations", is_flag=True, help="输出全部翻译条目")
@click.option("--no-erase", is_flag=True, help="版本变化时不删除输出目录")
@click.option("--set", "set_env", multiple=True, help="环境变量覆盖: KEY=VALUE（可多次指定）")
@click.option("--verbose", "-v", is_flag=True, help="输出调试日志")
def compile_cmd(
    config_file: str | None, target_type: str | None, output_path: str | None,
    locales: tuple[str, ...], clean: bool, watch: bool, minify: str | None,
    app_names: tuple[str, ...], warn_as_error: bool, no_download: bool,
    no_bundling: bool, typescript: bool, write_all_translations: bool,
    no_erase: bool, set_env: tuple[str, ...], verbose: bool,
) -> None:
    """编译应用"""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    overrides = CompileOverrides(
        target_type=target_type,
        output_path=output_path,
        locales=list(locales) or None,
        minify=minify,
        app_names=list(app_names) or None,
        warn_as_error=warn_as_error,
        download=not no_download,
        bundling=not no_bundling,
        typescript=typescript,
        write_all_translations=write_all_translations,
        erase=not no_erase,
        environment={k: _env_value(v) for k, v in _parse_kv_pairs(set_env).items()},
    )
    service = _svc().compile
    service.events.on(MAKING, lambda _src: click.echo("正在编译..."))
    service.events.on(MADE, lambda _src: click.echo("编译完成。"))
    service.compile(config_file, overrides, clean=clean, watch=watch)
