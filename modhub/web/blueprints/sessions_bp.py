"""会话 API Blueprint（轮询、完成、取消）"""

from __future__ import annotations

from flask import Blueprint, Response, jsonify, request

from modhub.core.exceptions import ModHubError
from modhub.services.session import Outcome
from modhub.web.responses import bad_request, from_error, ok

sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


def _loader_svc():  # type: ignore[no-untyped-def]
    from modhub.services.container import get_container
    return get_container().loader


@sessions_bp.route("", methods=["GET"])
def list_sessions() -> Response:
    return jsonify(sessions=_loader_svc().list_sessions())


@sessions_bp.route("/<token>", methods=["GET"])
def get_session(token: str) -> tuple[Response, int] | Response:
    session = _loader_svc().get_session(token)
    data: dict = {"session": session.to_dict()}
    if session.done():
        try:
            data["result"] = session.result().to_dict()
        except ModHubError as e:
            return from_error(e)
    return ok(data)


@sessions_bp.route("/<token>/complete", methods=["POST"])
def complete(token: str) -> tuple[Response, int] | Response:
    """外部拉取流程结束时回调"""
    body = request.get_json(silent=True) or {}
    try:
        outcome = Outcome(body.get("outcome", Outcome.COMPLETED.value))
    except ValueError:
        return bad_request("outcome 只能是 completed 或 canceled")
    _loader_svc().complete(token, outcome)
    return ok({"message": f"会话已结束: {token}", "outcome": outcome.value})


@sessions_bp.route("/<token>/cancel", methods=["POST"])
def cancel(token: str) -> tuple[Response, int] | Response:
    if not _loader_svc().cancel(token):
        return jsonify(error=f"会话不在拉取队列中: {token}"), 409
    return ok({"message": f"已请求取消: {token}"})
