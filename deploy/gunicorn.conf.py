"""Gunicorn 生产配置

用法:
  gunicorn --config deploy/gunicorn.conf.py modhub.web.app:app

会话队列与目录快照保存在进程内存中，因此只使用单个 worker，
并发由线程承担。
"""

import os

# ---------- 网络 ----------
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8890")

# ---------- 并发 ----------
workers = 1
threads = int(os.getenv("GUNICORN_THREADS", "8"))
worker_class = "gthread"
# POST /api/loader 可能同步等待拉取
timeout = 180

# ---------- 日志 ----------
accesslog = os.getenv("GUNICORN_ACCESS_LOG", "-")
errorlog = os.getenv("GUNICORN_ERROR_LOG", "-")
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")

# ---------- 进程管理 ----------
graceful_timeout = 30
keepalive = 5


def post_worker_init(worker):  # noqa: ARG001
    from modhub.utils.logger import setup_logging_from_env
    setup_logging_from_env()


def worker_exit(server, worker):  # noqa: ARG001
    from modhub.services.container import reset_container
    reset_container()
