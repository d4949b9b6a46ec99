"""Tests for gemstock.core.logging."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from gemstock.config import AppConfig, DBConfig, get_config
from gemstock.core.logging import configure_logging


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _config(**kwargs) -> AppConfig:
    return AppConfig(db=DBConfig(url="sqlite+aiosqlite:///:memory:"), **kwargs)


def test_json_format_renders_one_object_per_line(capsys):
    configure_logging(_config(log_format="json"))

    structlog.get_logger("gemstock.test").warning("parcel_reduced", parcel_id="P-100")

    line = capsys.readouterr().err.strip().splitlines()[-1]
    event = json.loads(line)
    assert event["event"] == "parcel_reduced"
    assert event["parcel_id"] == "P-100"
    assert event["level"] == "warning"


def test_text_format_is_not_json(capsys):
    configure_logging(_config(log_format="TEXT"))

    structlog.get_logger("gemstock.test").warning("parcel_reduced")

    err = capsys.readouterr().err
    assert "parcel_reduced" in err
    with pytest.raises(json.JSONDecodeError):
        json.loads(err.strip().splitlines()[-1])


def test_level_comes_from_config(capsys):
    configure_logging(_config(log_level="warning"))

    assert logging.getLogger().level == logging.WARNING
    logging.getLogger("gemstock.test").info("hidden")
    assert "hidden" not in capsys.readouterr().err


def test_log_file(tmp_path):
    log_file = tmp_path / "logs" / "gemstock.log"
    configure_logging(_config(log_file=str(log_file)))

    logging.getLogger("gemstock.test").error("written to file")

    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "written to file" in log_file.read_text()


def test_unknown_format_rejected():
    with pytest.raises(ValueError, match="LOG_FORMAT"):
        configure_logging(_config(log_format="xml"))


def test_defaults_to_environment_config(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "ERROR")

    configure_logging()

    assert get_config().log_level == "ERROR"
    assert logging.getLogger().level == logging.ERROR
