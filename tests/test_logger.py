"""Logging helpers: operation id stamping, JSON lines, dictConfig wiring."""

import json
import logging

from filevault.core import logger as logger_module
from filevault.core.config import Settings


def _record(msg="hello", level=logging.INFO):
    return logging.LogRecord("filevault", level, __file__, 1, msg, None, None)


def test_operation_id_filter_stamps_records():
    record = _record()
    logger_module.set_operation_id("op-42")
    try:
        assert logger_module.OperationIdFilter().filter(record) is True
    finally:
        logger_module.set_operation_id(None)

    assert record.operation_id == "op-42"
    assert logger_module.get_operation_id() is None


def test_json_formatter_emits_one_object():
    record = _record("uploaded %s")
    record.args = ("a.txt",)
    record.operation_id = "op-1"

    payload = json.loads(logger_module.JsonFormatter().format(record))

    assert payload["msg"] == "uploaded a.txt"
    assert payload["level"] == "INFO"
    assert payload["operation_id"] == "op-1"
    assert payload["ts"]


def test_color_formatter_plain_without_tty():
    formatter = logger_module.ColorFormatter("%(levelname)s %(message)s", use_colors=False)

    assert formatter.format(_record("x", logging.ERROR)) == "ERROR x"


def test_color_formatter_wraps_level_color():
    formatter = logger_module.ColorFormatter("%(message)s", use_colors=True)

    rendered = formatter.format(_record("careful", logging.WARNING))

    assert rendered.startswith("\033[33m")
    assert rendered.endswith("\033[0m")


def test_setup_logging_builds_rotating_file_config(tmp_path, monkeypatch):
    settings = Settings(LOG_DIR=str(tmp_path / "logs"), LOG_JSON=True, LOG_LEVEL="WARNING")
    captured = {}
    monkeypatch.setattr(logger_module, "get_settings", lambda: settings)
    monkeypatch.setattr(logger_module.logging.config, "dictConfig", captured.update)

    logger_module.setup_logging()

    assert (tmp_path / "logs").is_dir()
    file_handler = captured["handlers"]["file"]
    assert file_handler["filename"] == str(tmp_path / "logs" / "filevault.log")
    assert file_handler["formatter"] == "json"
    assert file_handler["when"] == "midnight"
    assert captured["handlers"]["default"]["formatter"] == "json"
    assert captured["loggers"]["filevault"] == {"handlers": ["default", "file"], "level": "WARNING", "propagate": False}
    assert captured["loggers"]["botocore"]["level"] == "WARNING"
