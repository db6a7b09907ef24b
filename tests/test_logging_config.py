from __future__ import annotations

import logging
from pathlib import Path

import pytest

from loan_engine.logging_config import configure_logging


@pytest.fixture(autouse=True)
def _restore_sql_logger():
    sql_logger = logging.getLogger("sqlalchemy.engine")
    level = sql_logger.level
    yield
    sql_logger.setLevel(level)


def test_sql_logging_is_quiet_by_default(monkeypatch) -> None:
    monkeypatch.delenv("SQL_LOG_LEVEL", raising=False)
    configure_logging(level="INFO")
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_sql_log_level_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("SQL_LOG_LEVEL", "INFO")
    configure_logging(level="INFO")
    assert logging.getLogger("sqlalchemy.engine").level == logging.INFO


def test_log_file_from_environment(monkeypatch, tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "loan_engine.log"
    monkeypatch.setenv("LOAN_ENGINE_LOG_FILE", str(log_file))
    configure_logging(level="DEBUG")
    logging.getLogger("loan_engine.test").info("hello")
    assert "hello" in log_file.read_text(encoding="utf-8")
