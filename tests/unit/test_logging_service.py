"""Unit tests for server logging setup."""

import logging

import pytest

from esusu.services.logging import get_log_level, setup_server_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def test_level_defaults_to_configured_value(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    assert get_log_level() == logging.INFO


def test_env_overrides_configured_level(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    assert get_log_level() == logging.DEBUG


def test_unknown_level_falls_back_to_info():
    assert get_log_level("chatty") == logging.INFO


def test_setup_writes_to_stdout_and_file(tmp_path, restore_root_logger):
    log_file = tmp_path / "logs" / "server.log"

    setup_server_logging(str(log_file), level="WARNING")
    setup_server_logging(str(log_file), level="WARNING")
    logging.getLogger("esusu.test").warning("slot taken")
    for handler in restore_root_logger.handlers:
        handler.flush()

    assert restore_root_logger.level == logging.WARNING
    assert len(restore_root_logger.handlers) == 2
    assert "esusu.test - WARNING - slot taken" in log_file.read_text()
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
