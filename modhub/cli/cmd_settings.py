"""CLI — 运行时设置与服务命令（源、仓库、检查频率、HTTP 服务）"""

from __future__ import annotations

import click

from modhub.cli import _svc
from modhub.core.exceptions import ValidationError


def register(group: click.Group) -> None:
    group.add_command(sources)
    group.add_command(repository)
    group.add_command(frequency)
    group.add_command(serve)


@click.command()
def sources() -> None:
    """列出已登记的源"""
    registry = _svc().settings.sources()
    if not registry:
        click.echo("没有已登记的源。")
        return
    for url, sid in sorted(registry.items(), key=lambda item: item[1]):
        click.echo(f"  {sid:<4d} {url}")


@click.command()
@click.argument("name", required=False)
def repository(name: str | None) -> None:
    """查看或切换当前仓库"""
    settings = _svc().settings
    if not name:
        click.echo(f"当前仓库: {settings.repository}（可选: {', '.join(settings.repositories)}）")
        return
    try:
        settings.set_repository(name)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="NAME") from e
    click.echo(f"仓库已切换: {name}")


@click.command()
@click.argument("days", required=False, type=int)
def frequency(days: int | None) -> None:
    """查看或设置更新检查频率（天）"""
    settings = _svc().settings
    if days is None:
        click.echo(f"检查频率: 每 {settings.check_frequency_days} 天")
        return
    try:
        settings.set_check_frequency(days)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="DAYS") from e
    click.echo(f"检查频率已设置: 每 {days} 天")


@click.command()
@click.option("--host", default="127.0.0.1", help="监听地址")
@click.option("--port", default=8890, help="监听端口")
def serve(host: str, port: int) -> None:
    """启动 HTTP 服务"""
    from modhub.web.app import run_server
    run_server(port=port, host=host)
