"""运行时设置与源登记表

与静态 Config 不同，这里保存会被运行时修改的状态，持久化为 JSON:
  - repository: 当前使用的仓库（stable / testing / unstable）
  - check_frequency_days / last_check: 更新检查频率与上次检查时间
  - sources: 源地址 -> 源 id 登记表（同一地址始终对应同一 id）
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Iterable
from pathlib import Path

from modhub.core.exceptions import ConfigError, ValidationError
from modhub.utils.net import normalize_source_url
from modhub.utils.yaml_io import load_json, save_json

logger = logging.getLogger(__name__)

_DAY_SECONDS = 24 * 3600


class Settings:
    """可持久化的运行时设置（线程安全）"""

    def __init__(
        self,
        path: str | Path,
        *,
        default_repository: str = "stable",
        repositories: Iterable[str] = ("stable", "testing", "unstable"),
        check_frequency_days: int = 7,
    ) -> None:
        self.path = Path(path)
        self.repositories = list(repositories)
        self._lock = threading.RLock()
        self._repository = default_repository
        self._check_frequency_days = check_frequency_days
        self._last_check = 0.0
        self._sources: dict[str, int] = {}
        self._next_id = 0
        self._load()

    # ---- 持久化 ----

    def _load(self) -> None:
        try:
            data = load_json(self.path)
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigError(f"设置文件无法读取: {self.path} - {e}") from e
        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"设置文件格式错误: {self.path}")

        repository = data.get("repository")
        if repository in self.repositories:
            self._repository = repository
        try:
            self._check_frequency_days = int(
                data.get("check_frequency_days", self._check_frequency_days),
            )
            self._last_check = float(data.get("last_check", 0.0))
            for entry in data.get("sources") or []:
                source_id = int(entry["id"])
                self._sources[normalize_source_url(entry["url"])] = source_id
                self._next_id = max(self._next_id, source_id + 1)
        except (TypeError, ValueError, KeyError) as e:
            raise ConfigError(f"设置文件字段无效: {self.path} - {e}") from e

    def _save(self) -> None:
        save_json(self.path, self.to_dict())

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "repository": self._repository,
                "check_frequency_days": self._check_frequency_days,
                "last_check": self._last_check,
                "sources": [
                    {"url": url, "id": sid} for url, sid in self._sources.items()
                ],
            }

    # ---- 源登记 ----

    def source_ids(self, urls: Iterable[str]) -> list[int]:
        """返回源地址对应的 id，未登记的地址自动分配新 id"""
        ids: list[int] = []
        with self._lock:
            changed = False
            for url in urls:
                url = normalize_source_url(url)
                if url not in self._sources:
                    self._sources[url] = self._next_id
                    self._next_id += 1
                    changed = True
                    logger.info("登记新源: %s -> %d", url, self._sources[url])
                ids.append(self._sources[url])
            if changed:
                self._save()
        return ids

    def source_url(self, source_id: int) -> str | None:
        with self._lock:
            for url, sid in self._sources.items():
                if sid == source_id:
                    return url
        return None

    def all_source_ids(self) -> list[int]:
        with self._lock:
            return list(self._sources.values())

    def sources(self) -> dict[str, int]:
        with self._lock:
            return dict(self._sources)

    # ---- 仓库 / 检查频率 ----

    @property
    def repository(self) -> str:
        with self._lock:
            return self._repository

    def set_repository(self, value: str) -> None:
        if value not in self.repositories:
            raise ValidationError(f"不支持的仓库: {value}，可选: {self.repositories}")
        with self._lock:
            self._repository = value
            self._last_check = 0.0
            self._save()

    @property
    def check_frequency_days(self) -> int:
        with self._lock:
            return self._check_frequency_days

    def set_check_frequency(self, days: int) -> None:
        if days <= 0:
            raise ValidationError(f"检查频率必须为正整数天: {days}")
        with self._lock:
            self._check_frequency_days = days
            self._last_check = 0.0
            self._save()

    def update_check_due(self, now: float | None = None) -> bool:
        """距上次检查是否已超过检查频率"""
        now = time.time() if now is None else now
        with self._lock:
            return now - self._last_check > self._check_frequency_days * _DAY_SECONDS

    def mark_checked(self, now: float | None = None) -> None:
        with self._lock:
            self._last_check = time.time() if now is None else now
            self._save()
