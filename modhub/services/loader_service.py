"""加载服务 — 处理客户端的模块请求

一次请求的流程:
  1. 登记请求的源（缺省使用配置的默认源），确定仓库
  2. 从本地存储重建相关源的目录
  3. 校验参数 / 特性版本 / 协议版本，不满足则立即交付错误码
  4. 解析模块: 全部满足 → 交付结果；缺失且允许下载 → 交给协调器排队拉取；
     缺失且不允许下载 → 交付 NOT_FOUND 并附带缺失集合
  5. 拉取结束后重建目录并最后解析一次，取消时标注 RETRIEVAL_CANCELED

目录损坏（含依赖成环）作为异常交付给请求方，不当作"模块不存在"。
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from modhub.core.catalog.models import Catalog
from modhub.core.catalog.resolver import ModuleResolver, ResolutionResult
from modhub.core.config import Config
from modhub.core.exceptions import CatalogError, SessionNotFoundError
from modhub.core.settings import Settings
from modhub.services.catalog_service import CatalogService
from modhub.services.coordinator import SessionCoordinator
from modhub.services.session import (
    ErrorCode,
    LoaderRequest,
    LoaderResult,
    Outcome,
    Session,
)

logger = logging.getLogger(__name__)

# 保留的已结束会话数量上限，供轮询结果
_MAX_FINISHED = 200


class LoaderService:
    """模块加载请求的宿主逻辑"""

    def __init__(
        self,
        config: Config,
        settings: Settings,
        catalogs: CatalogService,
        coordinator: SessionCoordinator,
        resolver: ModuleResolver | None = None,
    ) -> None:
        self.config = config
        self.settings = settings
        self.catalogs = catalogs
        self.coordinator = coordinator
        self.resolver = resolver or ModuleResolver()
        self._sessions: dict[str, Session] = {}
        self._sessions_lock = threading.Lock()

    # ------------------------------------------------------------------
    # 请求入口
    # ------------------------------------------------------------------

    def request_loader(self, params: dict[str, Any]) -> Session:
        """处理一次加载请求，返回会话（结果通过 session.result() 获取）"""
        request = LoaderRequest.from_params(params)
        urls = request.sources or self.config.default_sources
        if not urls:
            request.invalid_fields.append("sources")

        # 参数无效时不登记源，也不读取目录
        source_ids = self.settings.source_ids(urls) if request.valid else []
        repository = self._pick_repository(request.repository)
        session = Session(request, source_ids, repository, handler=self)
        self._track(session)
        logger.info(
            "收到加载请求: app=%s modules=%s sources=%s repo=%s",
            request.application_title, request.required_modules, source_ids, repository,
            extra={"session": session.token},
        )

        try:
            if request.valid:
                self.catalogs.reload(source_ids, repository)
            self.check(session, download_missing=request.download_missing)
        except CatalogError as e:
            logger.error("目录损坏，请求 %s 失败: %s", session.token, e)
            session.fail(e)
        return session

    def _pick_repository(self, requested: str) -> str:
        if requested and requested in self.config.repositories:
            return requested
        if requested:
            logger.warning("未知仓库 '%s'，使用当前设置", requested)
        return self.settings.repository

    # ------------------------------------------------------------------
    # 检查与解析
    # ------------------------------------------------------------------

    def check(
        self,
        session: Session,
        *,
        download_missing: bool,
        outcome: Outcome | None = None,
    ) -> None:
        """检查会话的请求；满足条件时交付结果，否则交给协调器拉取"""
        request = session.request
        if request is None:
            raise ValueError("更新会话没有请求参数")

        if not request.valid:
            logger.error("参数无效: %s", request.invalid_fields)
            session.deliver(LoaderResult.error(
                ErrorCode.INVALID_PARAMETERS,
                f"参数无效或缺失: {', '.join(request.invalid_fields)}",
            ))
            return

        catalog = self.catalogs.snapshot(session.source_ids, session.repository)

        # 尚未拿到任何清单时无法判断版本，交给拉取流程先同步清单
        if catalog.loaded and request.minimum_feature_version > catalog.feature_version:
            logger.error(
                "需要特性版本 %d，可用 %d",
                request.minimum_feature_version, catalog.feature_version,
            )
            session.deliver(LoaderResult.error(
                ErrorCode.INVALID_REQUIRED_VERSION,
                f"需要特性版本 {request.minimum_feature_version}，"
                f"当前可用 {catalog.feature_version}",
            ))
            return

        api_level = request.minimum_api_level
        if not self.config.min_api_level <= api_level <= self.config.max_api_level:
            logger.error("无法满足协议版本: %d", api_level)
            session.deliver(LoaderResult.error(
                ErrorCode.INCOMPATIBLE,
                f"协议版本 {api_level} 不在支持范围 "
                f"[{self.config.min_api_level}, {self.config.max_api_level}] 内",
            ))
            return

        resolution = self.resolver.resolve(
            request.required_modules, catalog, collect_missing=True,
        )
        session.missing = dict(resolution.missing)
        result = self._build_result(session, request, catalog, resolution)

        if download_missing and not resolution.ok:
            self.coordinator.submit(session)
            return

        if not download_missing and outcome == Outcome.CANCELED:
            result.error_code = ErrorCode.RETRIEVAL_CANCELED
            result.error_message = "模块拉取已取消"
        session.deliver(result)

    def _build_result(
        self,
        session: Session,
        request: LoaderRequest,
        catalog: Catalog,
        resolution: ResolutionResult,
    ) -> LoaderResult:
        roots = [catalog.root_of(sid) for sid in session.source_ids]
        result = LoaderResult(
            libraries=list(resolution.libraries),
            jars=list(resolution.jars),
            static_init_classes=list(resolution.init_classes),
            loader_class_name=catalog.loader_class_name,
            lib_path=roots[0] if roots else "",
            libs_paths=roots,
            environment_variables={
                **catalog.environment_variables, **request.environment_variables,
            },
            application_parameters=[
                *catalog.application_parameters, *request.application_parameters,
            ],
        )
        if not resolution.ok:
            result.error_code = ErrorCode.NOT_FOUND
            result.error_message = "依赖模块缺失"
            result.missing = dict(resolution.missing)
        return result

    # ------------------------------------------------------------------
    # SessionHandler 回调（由协调器在锁外调用）
    # ------------------------------------------------------------------

    def refresh_session(self, session: Session) -> None:
        """基于最新本地目录重新计算会话的缺失集合"""
        self.catalogs.reload(session.source_ids, session.repository)
        if session.update or session.request is None:
            return
        catalog = self.catalogs.snapshot(session.source_ids, session.repository)
        resolution = self.resolver.resolve(
            session.request.required_modules, catalog, collect_missing=True,
        )
        session.missing = dict(resolution.missing)
        logger.info("会话 %s 重新检查: 缺失 %d 个模块", session.token, len(session.missing))

    def finish_session(self, session: Session, outcome: Outcome) -> None:
        """拉取结束：重建目录并最后解析一次（取消时同样交付结果）"""
        try:
            self.catalogs.reload(session.source_ids, session.repository)
            if session.update:
                code = (
                    ErrorCode.RETRIEVAL_CANCELED if outcome == Outcome.CANCELED
                    else ErrorCode.NO_ERROR
                )
                session.deliver(LoaderResult(error_code=code, missing=dict(session.missing)))
                return
            self.check(session, download_missing=False, outcome=outcome)
        except CatalogError as e:
            logger.error("目录损坏，会话 %s 失败: %s", session.token, e)
            session.fail(e)

    # ------------------------------------------------------------------
    # 全量更新
    # ------------------------------------------------------------------

    def start_update(self) -> Session | None:
        """对所有已登记源发起更新会话；已有会话进行中时返回 None"""
        source_ids = self.settings.all_source_ids()
        if not source_ids:
            logger.info("没有已登记的源，无需更新")
            return None
        session = Session(
            None, source_ids, self.settings.repository, handler=self, update=True,
        )
        self._track(session)
        if self.coordinator.submit_exclusive(session) is None:
            self._forget(session.token)
            logger.info("已有会话进行中，跳过更新")
            return None
        return session

    def check_for_updates(self, *, force: bool = False) -> bool:
        """检查已登记源是否有新清单；未到检查周期且非强制时返回 False"""
        if not force and not self.settings.update_check_due():
            return False
        self.settings.mark_checked()
        return self.catalogs.has_updates(
            self.settings.all_source_ids(), self.settings.repository,
        )

    # ------------------------------------------------------------------
    # 会话管理
    # ------------------------------------------------------------------

    def _track(self, session: Session) -> None:
        with self._sessions_lock:
            self._sessions[session.token] = session
            finished = [t for t, s in self._sessions.items() if s.done()]
            overflow = len(finished) - _MAX_FINISHED
            for token in finished[:max(0, overflow)]:
                del self._sessions[token]

    def _forget(self, token: str) -> None:
        with self._sessions_lock:
            self._sessions.pop(token, None)

    def get_session(self, token: str) -> Session:
        with self._sessions_lock:
            session = self._sessions.get(token)
        if session is None:
            raise SessionNotFoundError(f"会话不存在: {token}")
        return session

    def list_sessions(self) -> list[dict[str, Any]]:
        with self._sessions_lock:
            sessions = list(self._sessions.values())
        return [s.to_dict() for s in sessions]

    def _queued_id(self, session: Session) -> int | None:
        # 队列清空后 id 会重置复用，必须确认 id 仍指向这个会话
        sid = session.session_id
        if sid is None or session.done() or self.coordinator.get(sid) is not session:
            return None
        return sid

    def complete(self, token: str, outcome: Outcome) -> None:
        """外部拉取流程结束时的回调"""
        session = self.get_session(token)
        sid = self._queued_id(session)
        if sid is None or not self.coordinator.complete_active(sid, outcome):
            raise SessionNotFoundError(f"会话不在拉取队列中: {token}")

    def cancel(self, token: str) -> bool:
        session = self.get_session(token)
        sid = self._queued_id(session)
        if sid is None:
            return False
        return self.coordinator.cancel(sid)

    def close(self) -> None:
        """终止所有未结束的会话"""
        for session in self.coordinator.shutdown():
            session.retrieval_finished(Outcome.CANCELED)
