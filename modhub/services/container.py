"""服务容器 — 统一构造与销毁

同一容器内的实例共享状态（目录快照、会话队列）。CLI 和 Web 层通过
get_container() 获取服务，不直接构造。协调器是容器持有的显式实例，
通过引用传递给加载服务和拉取服务。

依赖关系（→ 表示依赖）:
  loader    → settings, catalogs, coordinator
  retrieval → catalogs, coordinator
  catalogs  → store, settings, 清单拉取器

用法:
    container = ServiceContainer(config=Config.from_file("configs/modhub.yml"))
    session = container.loader.request_loader(params)
    result = session.result(timeout=60)
    container.close()
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from modhub.core.catalog.store import CatalogStore
    from modhub.core.config import Config
    from modhub.core.settings import Settings
    from modhub.services.catalog_service import CatalogService
    from modhub.services.coordinator import SessionCoordinator
    from modhub.services.loader_service import LoaderService
    from modhub.services.retrieval import RetrievalService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(self, config: Config | None = None) -> None:
        self._instances: dict[str, object] = {}
        self._lock = threading.RLock()
        if config is None:
            from modhub.core.config import get_config
            config = get_config()
        self._config = config

    @property
    def config(self) -> Config:
        return self._config

    # ---- 核心 ----

    @property
    def settings(self) -> Settings:
        with self._lock:
            if "settings" not in self._instances:
                from modhub.core.settings import Settings
                self._instances["settings"] = Settings(
                    self._config.settings_file,
                    default_repository=self._config.default_repository,
                    repositories=self._config.repositories,
                    check_frequency_days=self._config.check_frequency_days,
                )
            return self._instances["settings"]  # type: ignore[return-value]

    @property
    def store(self) -> CatalogStore:
        with self._lock:
            if "store" not in self._instances:
                from modhub.core.catalog.store import CatalogStore
                self._instances["store"] = CatalogStore(
                    self._config.root_dir,
                    hash_algorithm=self._config.hash_algorithm,
                )
            return self._instances["store"]  # type: ignore[return-value]

    # ---- 服务 ----

    @property
    def catalogs(self) -> CatalogService:
        with self._lock:
            if "catalogs" not in self._instances:
                from modhub.core.catalog.fetcher import ManifestFetcher
                from modhub.services.catalog_service import CatalogService
                self._instances["catalogs"] = CatalogService(
                    self.store,
                    self.settings,
                    ManifestFetcher(
                        platform_tag=self._config.platform_tag,
                        timeout=self._config.network_timeout,
                    ),
                    verify_hashes=self._config.verify_hashes,
                )
            return self._instances["catalogs"]  # type: ignore[return-value]

    @property
    def coordinator(self) -> SessionCoordinator:
        with self._lock:
            if "coordinator" not in self._instances:
                from modhub.services.coordinator import SessionCoordinator
                coordinator = SessionCoordinator()
                self._instances["coordinator"] = coordinator
                coordinator.set_launcher(self.retrieval)
            return self._instances["coordinator"]  # type: ignore[return-value]

    @property
    def retrieval(self) -> RetrievalService:
        with self._lock:
            if "retrieval" not in self._instances:
                from modhub.core.catalog.fetcher import ArtifactFetcher
                from modhub.services.retrieval import RetrievalService
                retrieval = RetrievalService(
                    self.catalogs,
                    ArtifactFetcher(
                        hash_algorithm=self._config.hash_algorithm,
                        timeout=self._config.network_timeout,
                        verify_hashes=self._config.verify_hashes,
                    ),
                    mode=self._config.retrieval_mode,
                    workers=self._config.retrieval_workers,
                )
                self._instances["retrieval"] = retrieval
                retrieval.bind(self.coordinator)
            return self._instances["retrieval"]  # type: ignore[return-value]

    @property
    def loader(self) -> LoaderService:
        with self._lock:
            if "loader" not in self._instances:
                from modhub.services.loader_service import LoaderService
                self._instances["loader"] = LoaderService(
                    self._config, self.settings, self.catalogs, self.coordinator,
                )
            return self._instances["loader"]  # type: ignore[return-value]

    def close(self) -> None:
        """终止未结束的会话并关闭后台执行器"""
        with self._lock:
            loader = self._instances.get("loader")
            retrieval = self._instances.get("retrieval")
            self._instances.clear()
        if loader is not None:
            loader.close()  # type: ignore[attr-defined]
        if retrieval is not None:
            retrieval.shutdown()  # type: ignore[attr-defined]
        logger.debug("服务容器已关闭")


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例（线程安全）"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def reset_container() -> None:
    """关闭并重置全局容器（测试与进程退出时使用）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        container, _global = _global, None
    if container is not None:
        container.close()
