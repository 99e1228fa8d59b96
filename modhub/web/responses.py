"""Web 层统一响应辅助函数"""

from __future__ import annotations

from flask import Response, jsonify

from modhub.core.exceptions import ModHubError

# 业务异常 code -> HTTP 状态码，未列出的按 500 处理
STATUS_BY_CODE: dict[str, int] = {
    "VALIDATION_ERROR": 400,
    "SESSION_NOT_FOUND": 404,
    "CATALOG_ERROR": 422,
    "DEPENDENCY_CYCLE": 422,
    "RETRIEVAL_ERROR": 502,
    "CONFIG_ERROR": 500,
}


def ok(data: dict, status: int = 200) -> tuple[Response, int] | Response:
    """成功响应"""
    if status == 200:
        return jsonify(data)
    return jsonify(data), status


def bad_request(message: str) -> tuple[Response, int]:
    """请求参数错误"""
    return jsonify(error=message), 400


def from_error(exc: ModHubError) -> tuple[Response, int]:
    """业务异常转 JSON 响应"""
    body: dict = {"error": str(exc), "code": exc.code}
    details = getattr(exc, "details", None)
    if details:
        body["details"] = details
    return jsonify(body), STATUS_BY_CODE.get(exc.code, 500)
