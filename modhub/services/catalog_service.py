"""目录服务 — 持有各源的目录快照

职责:
- 为解析提供多源合并视图（snapshot）
- 从本地存储重建目录（reload）
- 拉取远端新清单 → 比对 → 持久化 → 原子替换（update_source）
- 一次性检查是否有新清单（has_updates）

读写一致性:
  所有对 _catalogs 的读写都在 _lock 下进行。网络拉取在锁外完成，
  比对、清理、保存清单、重建目录在同一把锁内完成，因此解析读到的
  要么是完整的旧目录，要么是完整的新目录。
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from modhub.core.catalog.differ import DiffResult, UpdateDiffer
from modhub.core.catalog.models import Catalog, SourceCatalog
from modhub.core.catalog.store import CatalogStore
from modhub.core.exceptions import ModHubError, ValidationError
from modhub.core.protocols import ManifestSource
from modhub.core.settings import Settings

logger = logging.getLogger(__name__)


class CatalogService:
    """目录服务"""

    def __init__(
        self,
        store: CatalogStore,
        settings: Settings,
        manifest_source: ManifestSource,
        *,
        differ: UpdateDiffer | None = None,
        verify_hashes: bool = True,
    ) -> None:
        self.store = store
        self.settings = settings
        self.manifest_source = manifest_source
        self.differ = differ or UpdateDiffer()
        self.verify_hashes = verify_hashes
        self._lock = threading.RLock()
        self._catalogs: dict[tuple[int, str], SourceCatalog] = {}

    def _build_locked(self, source_id: int, repository: str) -> SourceCatalog:
        key = (source_id, repository)
        # 首次加载做完整哈希校验，之后只检查文件存在（下载时已校验）
        verify = self.verify_hashes and key not in self._catalogs
        catalog = self.store.build_catalog(source_id, repository, verify_hashes=verify)
        self._catalogs[key] = catalog
        return catalog

    def reload(self, source_ids: Iterable[int], repository: str) -> None:
        """从本地存储重建指定源的目录"""
        with self._lock:
            for source_id in source_ids:
                self._build_locked(source_id, repository)

    def snapshot(self, source_ids: Iterable[int], repository: str) -> Catalog:
        """多源合并视图，未加载过的源按需从本地构建"""
        with self._lock:
            parts = []
            for source_id in source_ids:
                part = self._catalogs.get((source_id, repository))
                if part is None:
                    part = self._build_locked(source_id, repository)
                parts.append(part)
            return Catalog.merge(parts)

    def source_catalog(self, source_id: int, repository: str) -> SourceCatalog:
        with self._lock:
            part = self._catalogs.get((source_id, repository))
            if part is None:
                part = self._build_locked(source_id, repository)
            return part

    def _source_url(self, source_id: int) -> str:
        url = self.settings.source_url(source_id)
        if url is None:
            raise ValidationError(f"未登记的源 id: {source_id}")
        return url

    def base_url(self, source_id: int, repository: str) -> str:
        return self.manifest_source.base_url(self._source_url(source_id), repository)

    def update_source(self, source_id: int, repository: str) -> DiffResult:
        """拉取远端最新清单并与当前已安装模块比对

        返回 DiffResult；首次拉取（本地无清单）只保存清单，结果为空。
        """
        url = self._source_url(source_id)
        current = self.source_catalog(source_id, repository)
        latest = self.manifest_source.latest_generation(url, repository)
        if current.manifest is not None and current.manifest.generation == latest:
            logger.info(
                "源 %s/%s 已是最新: generation=%s", source_id, repository, latest,
                extra={"source": source_id},
            )
            return DiffResult()

        new_manifest = self.manifest_source.fetch_manifest(source_id, url, repository)

        with self._lock:
            current = self._catalogs.get((source_id, repository)) or current
            if current.manifest is None:
                result = DiffResult()
            else:
                result = self.differ.diff(
                    source_id, current.installed, new_manifest.modules, current.libs_root,
                )
            self.store.save_manifest(new_manifest)
            self._build_locked(source_id, repository)

        logger.info(
            "源 %s/%s 已更新到 generation=%s",
            source_id, repository, new_manifest.generation,
            extra={"source": source_id},
        )
        return result

    def has_updates(self, source_ids: Iterable[int], repository: str) -> bool:
        """本地清单与远端 latest 是否不一致；单个源失败只记录日志"""
        found = False
        for source_id in source_ids:
            try:
                local = self.store.load_manifest(source_id, repository)
                if local is None:
                    continue
                latest = self.manifest_source.latest_generation(
                    self._source_url(source_id), repository,
                )
            except ModHubError as e:
                logger.warning(
                    "检查更新失败: source=%s (%s)", source_id, e, extra={"source": source_id},
                )
                continue
            if local.generation != latest:
                logger.info(
                    "源 %s 有新清单: %s -> %s", source_id, local.generation, latest,
                    extra={"source": source_id},
                )
                found = True
        return found
