"""会话模型

一个会话对应一个未完成的客户端请求:
  创建 → (排队 / 活动) → 交付唯一一次最终结果（Completed / Canceled）

结果通过 Future 交付，请求方可阻塞等待，也可轮询。
"""

from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Protocol

from modhub.core.catalog.models import Module

logger = logging.getLogger(__name__)


class ErrorCode(IntEnum):
    """交付给请求方的错误码"""

    NO_ERROR = 0
    INCOMPATIBLE = 1
    NOT_FOUND = 2
    INVALID_PARAMETERS = 3
    INVALID_REQUIRED_VERSION = 4
    RETRIEVAL_CANCELED = 5


class Outcome(str, Enum):
    """拉取流程的终态"""

    COMPLETED = "completed"
    CANCELED = "canceled"


class SessionStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELED = "canceled"
    FAILED = "failed"


# 请求参数键
REQUIRED_MODULES_KEY = "required_modules"
APPLICATION_TITLE_KEY = "application_title"
MINIMUM_API_LEVEL_KEY = "minimum_api_level"
MINIMUM_FEATURE_VERSION_KEY = "minimum_feature_version"
REQUIRED_KEYS = (
    REQUIRED_MODULES_KEY,
    APPLICATION_TITLE_KEY,
    MINIMUM_API_LEVEL_KEY,
    MINIMUM_FEATURE_VERSION_KEY,
)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_str_list(value: Any) -> list[str] | None:
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return list(value)
    return None


@dataclass
class LoaderRequest:
    """客户端请求参数"""

    required_modules: list[str] = field(default_factory=list)
    application_title: str = ""
    minimum_api_level: int = 0
    minimum_feature_version: int = 0
    sources: list[str] = field(default_factory=list)
    repository: str = ""
    environment_variables: dict[str, str] = field(default_factory=dict)
    application_parameters: list[str] = field(default_factory=list)
    download_missing: bool = True
    invalid_fields: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.invalid_fields

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> LoaderRequest:
        """从原始参数构建请求，缺失或类型错误的必填字段记入 invalid_fields"""
        req = cls()
        invalid = [k for k in REQUIRED_KEYS if k not in params or params[k] is None]

        modules = _as_str_list(params.get(REQUIRED_MODULES_KEY))
        if modules is None:
            invalid.append(REQUIRED_MODULES_KEY)
        else:
            req.required_modules = modules
        req.application_title = str(params.get(APPLICATION_TITLE_KEY) or "")

        for key, attr in (
            (MINIMUM_API_LEVEL_KEY, "minimum_api_level"),
            (MINIMUM_FEATURE_VERSION_KEY, "minimum_feature_version"),
        ):
            number = _as_int(params.get(key))
            if number is None:
                invalid.append(key)
            else:
                setattr(req, attr, number)

        req.sources = _as_str_list(params.get("sources")) or []
        req.repository = str(params.get("repository") or "")
        env = params.get("environment_variables") or {}
        if isinstance(env, dict):
            req.environment_variables = {str(k): str(v) for k, v in env.items()}
        req.application_parameters = _as_str_list(params.get("application_parameters")) or []
        download_missing = params.get("download_missing", True)
        if isinstance(download_missing, bool):
            req.download_missing = download_missing
        else:
            invalid.append("download_missing")
        # 去重并保持顺序
        req.invalid_fields = list(dict.fromkeys(invalid))
        return req


@dataclass
class LoaderResult:
    """交付给请求方的加载参数"""

    error_code: ErrorCode = ErrorCode.NO_ERROR
    error_message: str = ""
    libraries: list[str] = field(default_factory=list)
    jars: list[str] = field(default_factory=list)
    static_init_classes: list[str] = field(default_factory=list)
    loader_class_name: str = ""
    lib_path: str = ""
    libs_paths: list[str] = field(default_factory=list)
    environment_variables: dict[str, str] = field(default_factory=dict)
    application_parameters: list[str] = field(default_factory=list)
    missing: dict[str, Module] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error_code == ErrorCode.NO_ERROR

    @property
    def jar_path(self) -> str:
        return os.pathsep.join(self.jars)

    @classmethod
    def error(cls, code: ErrorCode, message: str) -> LoaderResult:
        return cls(error_code=code, error_message=message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": int(self.error_code),
            "error_name": self.error_code.name.lower(),
            "error_message": self.error_message,
            "libraries": list(self.libraries),
            "jar_path": self.jar_path,
            "static_init_classes": list(self.static_init_classes),
            "loader_class_name": self.loader_class_name,
            "lib_path": self.lib_path,
            "libs_paths": list(self.libs_paths),
            "environment_variables": dict(self.environment_variables),
            "application_parameters": list(self.application_parameters),
            "missing": sorted(self.missing),
        }


class SessionHandler(Protocol):
    """会话的宿主逻辑（由 LoaderService 实现）"""

    def refresh_session(self, session: Session) -> None: ...

    def finish_session(self, session: Session, outcome: Outcome) -> None: ...


class Session:
    """一个未完成的请求

    由 SessionCoordinator 独占调度；对外只暴露 token 句柄与结果 Future。
    """

    def __init__(
        self,
        request: LoaderRequest | None,
        source_ids: list[int],
        repository: str,
        *,
        handler: SessionHandler | None = None,
        update: bool = False,
    ) -> None:
        self.token = str(uuid.uuid4())[:8]
        self.session_id: int | None = None
        self.request = request
        self.source_ids = list(source_ids)
        self.repository = repository
        self.update = update
        self.status = SessionStatus.PENDING
        self.outcome: Outcome | None = None
        self.missing: dict[str, Module] = {}
        self.created_at = time.time()
        self._handler = handler
        self._cancel = threading.Event()
        self._future: Future[LoaderResult] = Future()

    def __repr__(self) -> str:
        return f"Session(token={self.token}, id={self.session_id}, status={self.status.value})"

    # ---- 协调器回调 ----

    def mark_queued(self) -> None:
        self.status = SessionStatus.QUEUED

    def mark_active(self) -> None:
        self.status = SessionStatus.ACTIVE

    def refresh(self) -> None:
        if self._handler is not None:
            self._handler.refresh_session(self)

    def retrieval_finished(self, outcome: Outcome) -> None:
        self.outcome = outcome
        if self._handler is not None:
            try:
                self._handler.finish_session(self, outcome)
            except Exception as e:
                # 会话已离开协调器，必须在这里终结
                self.fail(e)
                raise
        elif not self.done():
            code = ErrorCode.RETRIEVAL_CANCELED if outcome == Outcome.CANCELED else ErrorCode.NO_ERROR
            self.deliver(LoaderResult(error_code=code))

    def request_cancel(self) -> None:
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    # ---- 结果交付 ----

    def deliver(self, result: LoaderResult) -> None:
        """交付最终结果，每个会话只交付一次"""
        if self._future.done():
            logger.warning("会话 %s 已交付结果，忽略重复交付", self.token)
            return
        if self.outcome == Outcome.CANCELED:
            self.status = SessionStatus.CANCELED
        else:
            self.status = SessionStatus.COMPLETED
        self._future.set_result(result)

    def fail(self, exc: BaseException) -> None:
        if self._future.done():
            return
        self.status = SessionStatus.FAILED
        self._future.set_exception(exc)

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> LoaderResult:
        """阻塞等待最终结果"""
        return self._future.result(timeout=timeout)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "token": self.token,
            "session_id": self.session_id,
            "status": self.status.value,
            "update": self.update,
            "source_ids": list(self.source_ids),
            "repository": self.repository,
            "missing": sorted(self.missing),
        }
        if self.request is not None:
            data["application_title"] = self.request.application_title
            data["required_modules"] = list(self.request.required_modules)
        if self.outcome is not None:
            data["outcome"] = self.outcome.value
        return data
