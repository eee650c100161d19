"""Tests for structured JSON logging."""

import json
import logging
import sys

from app.logging_config import _JsonFormatter, _request_id_var, configure_logging


def _record(msg="hello %s", args=("world",), **extra):
    record = logging.LogRecord("app.test", logging.INFO, __file__, 10, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_single_line_json():
    line = _JsonFormatter().format(_record())

    payload = json.loads(line)
    assert payload["message"] == "hello world"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "app.test"
    assert "\n" not in line


def test_formatter_includes_extra_fields_only():
    payload = json.loads(_JsonFormatter().format(_record(batch_id="b1", jobs=3)))

    assert payload["batch_id"] == "b1"
    assert payload["jobs"] == 3
    for builtin in ("args", "msg", "pathname", "lineno", "process", "taskName"):
        assert builtin not in payload


def test_formatter_includes_request_id_from_context():
    token = _request_id_var.set("req-42")
    try:
        payload = json.loads(_JsonFormatter().format(_record()))
    finally:
        _request_id_var.reset(token)

    assert payload["request_id"] == "req-42"


def test_formatter_includes_exception():
    try:
        raise RuntimeError("kaboom")
    except RuntimeError:
        record = logging.LogRecord(
            "app.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
        )

    payload = json.loads(_JsonFormatter().format(record))
    assert "RuntimeError: kaboom" in payload["exc_info"]


def test_configure_logging_installs_json_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging("debug")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, _JsonFormatter)
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
