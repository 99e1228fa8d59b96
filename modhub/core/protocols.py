"""协议定义

集中定义服务之间以及与外部协作方之间的接口契约（Protocol），
上层依赖抽象而非具体实现，测试中可直接替换为 mock。
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

from modhub.core.catalog.models import Module, SourceManifest


# =========================================================================
# 远程传输
# =========================================================================

class ManifestSource(Protocol):
    """远程清单来源"""

    def base_url(self, source_url: str, repository: str) -> str:
        """源 + 仓库 + 平台对应的远端根地址"""
        ...

    def latest_generation(self, source_url: str, repository: str) -> str:
        """远端最新一代清单标识"""
        ...

    def fetch_manifest(
        self, source_id: int, source_url: str, repository: str,
    ) -> SourceManifest:
        """拉取并解析远端最新清单"""
        ...


class ArtifactSource(Protocol):
    """制品下载"""

    def download(self, module: Module, libs_root: str | Path, base_url: str) -> Path:
        """下载模块制品及辅助文件到 libs_root，返回制品路径"""
        ...


# =========================================================================
# 会话协调
# =========================================================================

class CoordinatedSession(Protocol):
    """可被协调器调度的会话"""

    session_id: int | None

    def mark_queued(self) -> None:
        """进入等待队列"""
        ...

    def mark_active(self) -> None:
        """成为唯一活动会话"""
        ...

    def refresh(self) -> None:
        """被提升为活动会话前，基于最新本地目录重新检查缺失集合"""
        ...

    def retrieval_finished(self, outcome: Any) -> None:
        """拉取流程结束（Completed / Canceled），会话据此给出最终结果"""
        ...

    def request_cancel(self) -> None:
        """请求取消正在进行的拉取"""
        ...


class RetrievalLauncher(Protocol):
    """拉取流程启动方，启动后须最终回调 coordinator.complete_active"""

    def begin_retrieval(self, session_id: int, session: Any) -> None:
        ...
