"""Tests for the application entry point and logging setup."""

import logging

import pytest

from market_powercap import app
from market_powercap.util.logging import LoggingUtil


def test_main_exits_on_invalid_configuration(monkeypatch, caplog):
    monkeypatch.delenv("NODE_NAME", raising=False)

    with pytest.raises(SystemExit) as excinfo:
        app.main()

    assert excinfo.value.code == 1
    assert "Failed to initialize power manager" in caplog.text


def test_main_exits_when_no_rapl_domain(monkeypatch, tmp_path, caplog):
    monkeypatch.setenv("NODE_NAME", "worker-1")
    monkeypatch.setenv("RAPL_BASE_PATH", str(tmp_path / "missing"))

    with pytest.raises(SystemExit) as excinfo:
        app.main()

    assert excinfo.value.code == 1


def test_set_level_updates_existing_loggers():
    logger = LoggingUtil.get_logger("market_powercap.test_level")
    try:
        LoggingUtil.set_level("debug")
        assert logger.level == logging.DEBUG
        assert LoggingUtil.get_logger("market_powercap.other").level == logging.DEBUG

        LoggingUtil.set_level("verbose")
        assert logger.level == logging.INFO
    finally:
        LoggingUtil.set_level("INFO")
