"""日志配置测试"""

from __future__ import annotations

import json
import logging

import pytest

from modhub.utils.logger import (
    LOG_JSON_ENV,
    LOG_LEVEL_ENV,
    JSONFormatter,
    reset_logging,
    setup_logging,
    setup_logging_from_env,
)


@pytest.fixture(autouse=True)
def _clean_root():
    yield
    reset_logging()
    logging.getLogger().setLevel(logging.WARNING)


class TestJSONFormatter:
    def test_fields_and_extra(self) -> None:
        record = logging.LogRecord("modhub.test", logging.INFO, __file__, 10, "会话 %s", ("ab12",), None)
        record.session = "ab12"
        data = json.loads(JSONFormatter().format(record))
        assert data["level"] == "INFO"
        assert data["message"] == "会话 ab12"
        assert data["session"] == "ab12"
        assert "source" not in data

    def test_exception_included(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            import sys
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        data = json.loads(JSONFormatter().format(record))
        assert "ValueError: boom" in data["exception"]


class TestSetupLogging:
    def test_single_handler(self) -> None:
        setup_logging("DEBUG")
        setup_logging("DEBUG")
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(LOG_LEVEL_ENV, "error")
        monkeypatch.setenv(LOG_JSON_ENV, "1")
        setup_logging_from_env()
        root = logging.getLogger()
        assert root.level == logging.ERROR
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
