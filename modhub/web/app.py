"""HTTP 服务（基于 Flask）

对宿主进程暴露加载请求、会话轮询 / 完成 / 取消、目录查看与更新。

启动方式: modhub serve --port 8890
生产部署: gunicorn --config deploy/gunicorn.conf.py modhub.web.app:app
"""

from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from modhub import __version__
from modhub.core.exceptions import ModHubError
from modhub.web.blueprints import catalog_bp, loader_bp, sessions_bp
from modhub.web.responses import from_error

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # 1 MB

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = MAX_CONTENT_LENGTH

app.register_blueprint(loader_bp)
app.register_blueprint(sessions_bp)
app.register_blueprint(catalog_bp)


# =========================================================================
# 全局 JSON 错误处理
# =========================================================================


@app.errorhandler(ModHubError)
def handle_modhub_error(exc: ModHubError):
    """业务异常按 code 映射状态码"""
    logger.warning("请求失败 [%s]: %s", exc.code, exc)
    return from_error(exc)


@app.errorhandler(HTTPException)
def handle_http_exception(exc):
    """将所有 HTTP 异常统一返回 JSON"""
    return jsonify(error=exc.description), exc.code


@app.errorhandler(Exception)
def handle_generic_exception(exc):  # noqa: ARG001
    """捕获未处理异常，返回 500 JSON"""
    logger.exception("未处理的异常")
    return jsonify(error="服务器内部错误"), 500


@app.route("/api/health")
def health():
    return jsonify(status="ok", version=__version__)


def run_server(port: int = 8890, debug: bool = False, host: str = "127.0.0.1") -> None:
    logger.info("modhub 服务已启动: http://%s:%d", host, port)
    app.run(host=host, port=port, debug=debug)
