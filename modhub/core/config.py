"""集中配置管理

静态配置从 YAML 文件加载 + 编程式覆盖；可变的运行时设置
（当前仓库、源登记表、检查时间）见 modhub.core.settings。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from modhub.core.exceptions import ConfigError
from modhub.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "configs/modhub.yml"


@dataclass
class Config:
    """全局配置"""

    # 目录
    root_dir: str = "data/modhub"

    # 仓库 / 源
    default_repository: str = "stable"
    repositories: list[str] = field(
        default_factory=lambda: ["stable", "testing", "unstable"],
    )
    default_sources: list[str] = field(default_factory=list)
    platform_tag: str = "default"

    # 更新检查
    check_frequency_days: int = 7

    # 校验
    verify_hashes: bool = True
    hash_algorithm: str = "sha1"

    # 兼容的协议版本区间
    min_api_level: int = 1
    max_api_level: int = 4

    # 拉取
    retrieval_mode: str = "auto"  # auto | manual
    retrieval_workers: int = 1
    network_timeout: int = 30  # 秒

    # 放不到字段里的配置项
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.retrieval_mode not in ("auto", "manual"):
            raise ConfigError(f"不支持的 retrieval_mode: {self.retrieval_mode}")
        if self.min_api_level > self.max_api_level:
            raise ConfigError(
                f"min_api_level ({self.min_api_level}) 大于 "
                f"max_api_level ({self.max_api_level})"
            )
        if self.default_repository not in self.repositories:
            raise ConfigError(
                f"默认仓库 '{self.default_repository}' 不在 {self.repositories} 中"
            )

    @property
    def settings_file(self) -> Path:
        return Path(self.root_dir) / "settings.json"

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_FILE) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except ValueError as e:
            raise ConfigError(f"配置文件无效: {path} - {e}") from e
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        try:
            cfg = cls(**matched)
        except TypeError as e:
            raise ConfigError(f"配置文件字段无效: {path} - {e}") from e
        cfg.extra = extra
        return cfg


# 首次 import 时不加载文件；由 CLI / Web 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = DEFAULT_CONFIG_FILE) -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
