"""目录与设置 API Blueprint"""

from __future__ import annotations

from flask import Blueprint, Response, jsonify, request

from modhub.web.responses import ok

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


def _svc():  # type: ignore[no-untyped-def]
    from modhub.services.container import get_container
    return get_container()


@catalog_bp.route("/catalog", methods=["GET"])
def catalog() -> Response:
    svc = _svc()
    repo = request.args.get("repository") or svc.settings.repository
    source_ids = svc.settings.all_source_ids()
    svc.catalogs.reload(source_ids, repo)
    merged = svc.catalogs.snapshot(source_ids, repo)
    modules = [
        {
            "name": name,
            "source_id": module.source_id,
            "installed": name in merged.installed,
            **module.to_dict(),
        }
        for name, module in sorted(merged.available.items())
    ]
    return jsonify(
        repository=repo,
        feature_version=merged.feature_version,
        loader_class_name=merged.loader_class_name,
        modules=modules,
    )


@catalog_bp.route("/catalog/update", methods=["POST"])
def start_update() -> tuple[Response, int] | Response:
    session = _svc().loader.start_update()
    if session is None:
        return jsonify(error="没有可更新的源，或已有会话进行中"), 409
    return ok({"token": session.token, "session": session.to_dict()}, status=202)


@catalog_bp.route("/catalog/check", methods=["POST"])
def check_updates() -> Response:
    body = request.get_json(silent=True) or {}
    available = _svc().loader.check_for_updates(force=bool(body.get("force", False)))
    return jsonify(updates_available=available)


@catalog_bp.route("/sources", methods=["GET"])
def sources() -> Response:
    settings = _svc().settings
    return jsonify(
        repository=settings.repository,
        check_frequency_days=settings.check_frequency_days,
        sources=[{"url": url, "id": sid} for url, sid in settings.sources().items()],
    )
