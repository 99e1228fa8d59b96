"""会话协调器 — 同一时刻至多一个活动的拉取流程

状态:
  idle   → 无活动会话
  active → 一个会话正在驱动拉取，其余会话按提交顺序排队

转换:
  submit(session)              分配递增 id；空闲则立即激活，否则排队
  complete_active(id, outcome) 移除 id 并通知会话结束；队列为空时回到 idle
                               并重置 id 计数，否则提升最早排队的会话，
                               让它先基于最新目录重新检查，再启动拉取

所有状态修改都在 _lock 内完成，锁只覆盖状态转换本身；
会话回调和拉取启动都在锁外执行。
"""

from __future__ import annotations

import logging
import threading

from modhub.core.protocols import CoordinatedSession, RetrievalLauncher
from modhub.services.session import Outcome

logger = logging.getLogger(__name__)

IDLE = "idle"
ACTIVE = "active"

_Entry = tuple[int, CoordinatedSession]


class SessionCoordinator:
    """串行化拉取流程的协调器"""

    def __init__(self, launcher: RetrievalLauncher | None = None) -> None:
        self._lock = threading.Lock()
        self._pending: dict[int, CoordinatedSession] = {}
        self._active_id: int | None = None
        self._next_id = 0
        self._launcher = launcher

    def set_launcher(self, launcher: RetrievalLauncher) -> None:
        self._launcher = launcher

    # ---- 查询 ----

    @property
    def state(self) -> str:
        with self._lock:
            return IDLE if self._active_id is None else ACTIVE

    @property
    def active_id(self) -> int | None:
        with self._lock:
            return self._active_id

    def pending_ids(self) -> list[int]:
        """所有未结束会话的 id（含活动会话），按提交顺序"""
        with self._lock:
            return list(self._pending)

    def get(self, session_id: int) -> CoordinatedSession | None:
        with self._lock:
            return self._pending.get(session_id)

    # ---- 状态转换 ----

    def _admit_locked(self, session: CoordinatedSession) -> tuple[int, bool]:
        session_id = self._next_id
        self._next_id += 1
        self._pending[session_id] = session
        session.session_id = session_id
        activate = self._active_id is None
        if activate:
            self._active_id = session_id
        return session_id, activate

    def submit(self, session: CoordinatedSession) -> int:
        """提交会话，返回会话 id"""
        with self._lock:
            session_id, activate = self._admit_locked(session)

        if activate:
            self._start(session_id, session, refresh=False)
        else:
            session.mark_queued()
            logger.info("会话 %d 已排队，等待当前拉取结束", session_id)
        return session_id

    def submit_exclusive(self, session: CoordinatedSession) -> int | None:
        """仅在空闲时提交（用于全量更新会话），否则返回 None"""
        with self._lock:
            if self._pending:
                return None
            session_id, _ = self._admit_locked(session)
        self._start(session_id, session, refresh=False)
        return session_id

    def complete_active(self, session_id: int, outcome: Outcome) -> bool:
        """会话的拉取流程结束；id 不存在时返回 False"""
        finished = self._remove(session_id)
        if finished is None:
            return False
        session, nxt = finished
        logger.info("会话 %d 结束: %s", session_id, outcome.value, extra={"session": session_id})
        self._notify_finished(session, outcome)
        self._promote(nxt)
        return True

    def cancel(self, session_id: int) -> bool:
        """取消会话：活动会话只设置取消标志，排队会话直接以 Canceled 结束"""
        with self._lock:
            session = self._pending.get(session_id)
            if session is None:
                return False
            is_active = session_id == self._active_id
        if is_active:
            session.request_cancel()
            logger.info("已请求取消活动会话 %d", session_id)
            return True
        return self.complete_active(session_id, Outcome.CANCELED)

    def shutdown(self) -> list[CoordinatedSession]:
        """清空队列，返回未结束的会话（由调用方决定如何终止）"""
        with self._lock:
            sessions = list(self._pending.values())
            self._pending.clear()
            self._active_id = None
            self._next_id = 0
        return sessions

    # ---- 内部 ----

    def _remove(self, session_id: int) -> tuple[CoordinatedSession, _Entry | None] | None:
        """移除会话；若它是活动会话，选出下一个活动会话"""
        with self._lock:
            session = self._pending.pop(session_id, None)
            if session is None:
                return None
            nxt: _Entry | None = None
            if not self._pending:
                self._active_id = None
                self._next_id = 0
            elif session_id == self._active_id:
                next_id = next(iter(self._pending))
                self._active_id = next_id
                nxt = (next_id, self._pending[next_id])
            return session, nxt

    def _promote(self, nxt: _Entry | None) -> None:
        # 循环而非递归：启动失败的会话以 Canceled 结束后继续提升下一个
        while nxt is not None:
            next_id, session = nxt
            logger.info("提升会话 %d 为活动会话", next_id)
            if self._start(next_id, session, refresh=True):
                return
            failed = self._remove(next_id)
            if failed is None:
                return
            self._notify_finished(failed[0], Outcome.CANCELED)
            nxt = failed[1]

    def _start(self, session_id: int, session: CoordinatedSession, *, refresh: bool) -> bool:
        """启动拉取流程；submit 路径上启动失败时直接以 Canceled 结束"""
        try:
            session.mark_active()
            if refresh:
                session.refresh()
            if self._launcher is None:
                raise RuntimeError("未配置拉取流程启动方")
            self._launcher.begin_retrieval(session_id, session)
        except Exception:  # noqa: BLE001 - 任何启动失败都不能让会话悬空
            logger.exception("会话 %d 的拉取流程启动失败", session_id)
            if not refresh:
                self.complete_active(session_id, Outcome.CANCELED)
            return False
        return True

    @staticmethod
    def _notify_finished(session: CoordinatedSession, outcome: Outcome) -> None:
        try:
            session.retrieval_finished(outcome)
        except Exception:  # noqa: BLE001 - 宿主回调异常不应破坏队列推进
            logger.exception("会话结束回调失败: %r", session)
