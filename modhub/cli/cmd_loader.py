"""CLI — 模块加载请求"""

from __future__ import annotations

from concurrent.futures import TimeoutError as FutureTimeout

import click

from modhub.cli import _parse_kv_pairs, _svc
from modhub.core.exceptions import ModHubError
from modhub.services.session import LoaderResult


def register(group: click.Group) -> None:
    group.add_command(resolve)


def _print_result(result: LoaderResult) -> None:
    click.echo(f"结果: {result.error_code.name} ({int(result.error_code)})")
    if result.error_message:
        click.echo(f"说明: {result.error_message}")
    if result.missing:
        click.echo(f"缺失模块: {', '.join(sorted(result.missing))}")
    if not result.ok:
        return
    if result.loader_class_name:
        click.echo(f"加载类: {result.loader_class_name}")
    click.echo(f"模块根目录: {result.lib_path}")
    click.echo("加载顺序:")
    for lib in result.libraries:
        click.echo(f"  {lib}")
    if result.jar_path:
        click.echo(f"jar 路径: {result.jar_path}")
    for cls in result.static_init_classes:
        click.echo(f"  静态初始化: {cls}")


@click.command()
@click.argument("modules", nargs=-1, required=True)
@click.option("--source", "-s", "sources", multiple=True, help="源地址（可多次指定，默认用配置中的源）")
@click.option("--repository", "-r", default="", help="仓库名（默认使用当前设置）")
@click.option("--app", "app_title", default="modhub-cli", help="请求方应用名")
@click.option("--api-level", default=1, type=int, help="请求方协议版本")
@click.option("--min-version", default=0, type=int, help="要求的最低特性版本")
@click.option("--env", "env_pairs", multiple=True, help="附加环境变量 key=value")
@click.option("--no-download", is_flag=True, help="缺失模块时不拉取，直接报告")
@click.option("--wait/--no-wait", default=True, help="是否等待拉取结束")
@click.option("--timeout", default=600.0, type=float, help="等待超时（秒）")
def resolve(
    modules: tuple[str, ...],
    sources: tuple[str, ...],
    repository: str,
    app_title: str,
    api_level: int,
    min_version: int,
    env_pairs: tuple[str, ...],
    no_download: bool,
    wait: bool,
    timeout: float,
) -> None:
    """请求一组模块，输出加载顺序或缺失模块"""
    params = {
        "required_modules": list(modules),
        "application_title": app_title,
        "minimum_api_level": api_level,
        "minimum_feature_version": min_version,
        "sources": list(sources),
        "repository": repository,
        "environment_variables": _parse_kv_pairs(env_pairs),
        "download_missing": not no_download,
    }
    session = _svc().loader.request_loader(params)

    if not session.done() and not wait:
        click.echo(f"会话等待拉取: {session.token}（缺失 {len(session.missing)} 个模块）")
        return

    try:
        result = session.result(timeout=timeout)
    except FutureTimeout:
        raise click.ClickException(f"等待会话 {session.token} 超时") from None
    except ModHubError as e:
        raise click.ClickException(str(e)) from e

    _print_result(result)
    if not result.ok:
        raise SystemExit(int(result.error_code))
