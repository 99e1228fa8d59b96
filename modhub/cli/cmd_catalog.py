"""CLI — 目录查看与更新命令"""

from __future__ import annotations

from concurrent.futures import TimeoutError as FutureTimeout

import click

from modhub.cli import _svc
from modhub.core.exceptions import ModHubError


def register(group: click.Group) -> None:
    group.add_command(list_modules)
    group.add_command(update)
    group.add_command(check)


@click.command(name="modules")
@click.option("--source", "-s", "sources", multiple=True, help="源地址（默认全部已登记的源）")
@click.option("--repository", "-r", default=None, help="仓库名（默认使用当前设置）")
@click.option("--installed", "installed_only", is_flag=True, help="只列出已安装模块")
def list_modules(sources: tuple[str, ...], repository: str | None, installed_only: bool) -> None:
    """列出目录中的模块"""
    svc = _svc()
    repo = repository or svc.settings.repository
    source_ids = svc.settings.source_ids(sources) if sources else svc.settings.all_source_ids()
    if not source_ids:
        click.echo("没有已登记的源。")
        return

    try:
        svc.catalogs.reload(source_ids, repo)
        catalog = svc.catalogs.snapshot(source_ids, repo)
    except ModHubError as e:
        raise click.ClickException(str(e)) from e

    names = sorted(catalog.installed if installed_only else catalog.available)
    if not names:
        click.echo(f"仓库 {repo} 中没有模块。")
        return
    click.echo(f"仓库: {repo}  特性版本: {catalog.feature_version}")
    for name in names:
        module = catalog.available.get(name) or catalog.installed[name]
        mark = "已安装" if name in catalog.installed else "可拉取"
        deps = ",".join(module.depends_on) or "-"
        click.echo(
            f"  {name:24s} src={module.source_id:<3d} level={module.level:<3d} "
            f"[{mark}] depends={deps}"
        )


@click.command()
@click.option("--timeout", default=600.0, type=float, help="等待超时（秒）")
def update(timeout: float) -> None:
    """拉取全部已登记源的最新清单，重新下载变更模块"""
    session = _svc().loader.start_update()
    if session is None:
        click.echo("没有可更新的源，或已有会话进行中。")
        return
    click.echo(f"更新会话已启动: {session.token}")
    try:
        result = session.result(timeout=timeout)
    except FutureTimeout:
        raise click.ClickException(f"等待更新会话 {session.token} 超时") from None
    except ModHubError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"更新结束: {result.error_code.name}")
    for key in sorted(result.missing):
        click.echo(f"  已更新: {key}")


@click.command()
@click.option("--force", is_flag=True, help="忽略检查周期，立即检查")
def check(force: bool) -> None:
    """检查已登记的源是否有新清单"""
    svc = _svc()
    if not force and not svc.settings.update_check_due():
        click.echo(f"未到检查周期（每 {svc.settings.check_frequency_days} 天）。")
        return
    if svc.loader.check_for_updates(force=True):
        click.echo("有可用更新，执行 `modhub update` 以拉取。")
    else:
        click.echo("所有源均已是最新。")
