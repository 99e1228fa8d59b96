"""加载请求 API Blueprint

POST /api/loader 提交一次模块请求:
  - 结果已可交付（或 wait 秒内完成）→ 200 + 结果
  - 需要拉取且未在等待时间内完成 → 202 + 会话 token，之后轮询 /api/sessions/<token>
"""

from __future__ import annotations

import contextlib
from concurrent.futures import TimeoutError as FutureTimeout

from flask import Blueprint, Response, request

from modhub.core.exceptions import ModHubError
from modhub.web.responses import bad_request, from_error, ok

loader_bp = Blueprint("loader", __name__, url_prefix="/api/loader")

# 同步等待的上限，避免占满 worker
MAX_WAIT_SECONDS = 120.0


def _loader_svc():  # type: ignore[no-untyped-def]
    from modhub.services.container import get_container
    return get_container().loader


@loader_bp.route("", methods=["POST"])
def request_loader() -> tuple[Response, int] | Response:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return bad_request("请求体必须是 JSON 对象")
    try:
        wait = min(float(body.pop("wait", 0) or 0), MAX_WAIT_SECONDS)
    except (TypeError, ValueError):
        return bad_request("wait 必须是数字")

    session = _loader_svc().request_loader(body)
    if not session.done() and wait > 0:
        # 超时或失败都按下面的会话状态处理
        with contextlib.suppress(FutureTimeout, ModHubError):
            session.result(timeout=wait)

    if not session.done():
        return ok({"token": session.token, "session": session.to_dict()}, status=202)
    try:
        result = session.result()
    except ModHubError as e:
        return from_error(e)
    return ok({"token": session.token, "result": result.to_dict()})
