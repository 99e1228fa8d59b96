"""modhub 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

from __future__ import annotations

from typing import Any

import click

from modhub import __version__
from modhub.services.container import get_container
from modhub.utils.logger import setup_logging_from_env


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


@click.group()
@click.version_option(version=__version__)
@click.option(
    "-c", "--config", "config_path", default=None,
    help="配置文件路径（默认 configs/modhub.yml，不存在则使用默认配置）",
)
def main(config_path: str | None) -> None:
    """modhub - 模块目录、依赖解析与拉取协调"""
    setup_logging_from_env()
    if config_path:
        from modhub.core.config import init_config
        from modhub.services.container import reset_container
        init_config(config_path)
        reset_container()


# 注册各领域子命令
from modhub.cli.cmd_loader import register as _reg_loader  # noqa: E402
from modhub.cli.cmd_catalog import register as _reg_catalog  # noqa: E402
from modhub.cli.cmd_settings import register as _reg_settings  # noqa: E402

_reg_loader(main)
_reg_catalog(main)
_reg_settings(main)
