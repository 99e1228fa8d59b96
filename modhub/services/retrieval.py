"""拉取服务 — 默认的拉取流程启动方

两种模式:
  - auto:   后台线程完成 更新清单 → 重新检查缺失 → 下载 → 重建目录，
            结束后回调 coordinator.complete_active
  - manual: 只记录会话在等待外部流程（UI 等），由外部通过
            LoaderService.complete() 回调结束

网络与磁盘操作都在后台执行器中进行，不占用协调器的锁。
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from modhub.core.catalog.models import Module
from modhub.core.exceptions import ModHubError, RetrievalError
from modhub.core.protocols import ArtifactSource
from modhub.services.catalog_service import CatalogService
from modhub.services.session import Outcome, Session

if TYPE_CHECKING:
    from modhub.services.coordinator import SessionCoordinator

logger = logging.getLogger(__name__)


class RetrievalService:
    """后台拉取服务"""

    def __init__(
        self,
        catalogs: CatalogService,
        artifacts: ArtifactSource,
        *,
        coordinator: SessionCoordinator | None = None,
        mode: str = "auto",
        workers: int = 1,
    ) -> None:
        self.catalogs = catalogs
        self.artifacts = artifacts
        self.mode = mode
        self._coordinator = coordinator
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, workers), thread_name_prefix="modhub-retrieval",
        )

    def bind(self, coordinator: SessionCoordinator) -> None:
        self._coordinator = coordinator

    def begin_retrieval(self, session_id: int, session: Session) -> None:
        if self.mode == "manual":
            logger.info(
                "会话 %d 等待外部拉取流程 (缺失 %d 个模块)",
                session_id, len(session.missing),
            )
            return
        self._executor.submit(self._run, session_id, session)

    def shutdown(self, wait: bool = False) -> None:
        # 不等待时丢弃尚未开始的任务
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    # ---- 后台任务 ----

    def _run(self, session_id: int, session: Session) -> None:
        try:
            outcome = self.retrieve(session)
        except Exception:  # noqa: BLE001 - 任何失败都以 Canceled 结束，不能让会话悬空
            logger.exception("会话 %d 拉取失败", session_id)
            outcome = Outcome.CANCELED
        if self._coordinator is None:
            logger.error("拉取服务未绑定协调器，会话 %d 无法结束", session_id)
            return
        self._coordinator.complete_active(session_id, outcome)

    def retrieve(self, session: Session) -> Outcome:
        """执行一次拉取，返回终态"""
        if session.update:
            to_fetch = self._update_sources(session)
        else:
            self._refresh_sources(session)
            session.refresh()
            to_fetch = list(session.missing.values())

        logger.info(
            "会话 %s 需要下载 %d 个模块", session.token, len(to_fetch),
            extra={"session": session.token},
        )
        for module in to_fetch:
            if session.cancel_requested:
                logger.info("会话 %s 已取消，停止下载", session.token)
                return Outcome.CANCELED
            self._download(module, session.repository)

        self.catalogs.reload(session.source_ids, session.repository)
        return Outcome.CANCELED if session.cancel_requested else Outcome.COMPLETED

    def _refresh_sources(self, session: Session) -> None:
        """先同步远端清单，新出现的模块才能进入缺失集合"""
        for source_id in session.source_ids:
            try:
                self.catalogs.update_source(source_id, session.repository)
            except ModHubError as e:
                logger.warning("源 %s 清单更新失败: %s", source_id, e, extra={"source": source_id})

    def _update_sources(self, session: Session) -> list[Module]:
        changed: dict[str, Module] = {}
        for source_id in session.source_ids:
            try:
                diff = self.catalogs.update_source(source_id, session.repository)
            except ModHubError as e:
                logger.warning("源 %s 清单更新失败: %s", source_id, e, extra={"source": source_id})
                continue
            changed.update(diff.changed)
        session.missing = changed
        return list(changed.values())

    def _download(self, module: Module, repository: str) -> None:
        # 单个模块失败不影响其他模块，最终解析会把它报告为缺失
        try:
            part = self.catalogs.source_catalog(module.source_id, repository)
            base_url = self.catalogs.base_url(module.source_id, repository)
            self.artifacts.download(module, part.libs_root, base_url)
        except (RetrievalError, OSError) as e:
            logger.error("模块下载失败: %s (%s)", module.name, e)
