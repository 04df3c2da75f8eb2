"""CLI - 包管理命令"""

from __future__ import annotations

import click

from qxtool.cli import _svc
from qxtool.core.package.listing import ListOptions


def register(group: click.Group) -> None:
    group.add_command(package)


@click.group()
def package() -> None:
    """库包管理（安装 / 删除 / 列表 / 迁移）"""


@package.command(name="list")
@click.argument("repository", required=False)
@click.option("--all", "-a", "show_all", is_flag=True, help="显示全部仓库（含不兼容 / 已弃用）")
@click.option("--json", "-j", "as_json", is_flag=True, help="JSON 输出")
@click.option("--installed", "-i", is_flag=True, help="只显示已安装的库")
@click.option("--match", "-m", default="", help="按正则过滤 uri / 名称 / 描述")
@click.option("--libraries", "-l", is_flag=True, help="只输出库，不输出仓库标题行")
@click.option("--short", "-s", is_flag=True, help="精简输出")
@click.option("--noheaders", "-H", is_flag=True, help="不输出表头")
@click.option("--qx-version", default=None, help="指定框架版本（默认取项目使用的版本）")
def list_packages(
    repository: str | None, show_all: bool, as_json: bool, installed: bool,
    match: str, libraries: bool, short: bool, noheaders: bool, qx_version: str | None,
) -> None:
    """列出可安装的包"""
    opts = ListOptions(
        all=show_all, json=as_json, installed=installed, match=match,
        libraries_only=libraries, short=short, noheaders=noheaders,
    )
    output = _svc().packages.list_packages(opts, repository, qx_version=qx_version)
    if output:
        click.echo(output)


@package.command()
@click.argument("spec", required=False)
@click.option("--from-path", "-p", default=None, help="从本地目录安装")
@click.option("--no-save", is_flag=True, help="不修改 Manifest.json 的 requires")
@click.option("--reinstall", "-r", is_flag=True, help="重新下载")
@click.option("--qx-version", default=None, help="指定框架版本")
def install(
    spec: str | None, from_path: str | None, no_save: bool, reinstall: bool,
    qx_version: str | None,
) -> None:
    """安装包: owner/repo[/path][@tag]；不带参数时安装 Manifest.json 中的全部依赖"""
    mutation = _svc().packages.install(
        spec, from_path=from_path, save=not no_save,
        reinstall=reinstall, qx_version=qx_version,
    )
    for record in mutation.installed:
        version = record.repo_tag or record.library_version or ""
        click.echo(f"已安装: {record.uri} {version} -> {record.path}")
    if not mutation.installed and not mutation.skipped:
        click.echo("没有需要安装的库。")


@package.command()
@click.argument("uri")
def remove(uri: str) -> None:
    """删除已安装的包"""
    deleted = _svc().packages.remove(uri)
    for path in deleted:
        click.echo(f"已删除: {path}")


@package.command()
@click.option("--url", default=None, help="包缓存地址（默认取配置）")
def update(url: str | None) -> None:
    """更新包注册表缓存"""
    count = _svc().packages.update(url)
    click.echo(f"包缓存已更新: {count} 个仓库")


@package.command()
@click.option("--announce", is_flag=True, help="只报告需要迁移的内容")
def migrate(announce: bool) -> None:
    """迁移旧版包系统文件与 Manifest"""
    result = _svc().packages.migrate(announce_only=announce)
    if result.skipped:
        click.echo("迁移已在进行中。")
    elif result.needs_fix and announce:
        raise click.ClickException("需要迁移，请运行 'qxtool package migrate'")
    elif result.needs_fix:
        click.echo("迁移完成。")
    else:
        click.echo("所有内容均为最新，无需迁移。")
