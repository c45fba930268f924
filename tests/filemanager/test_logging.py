"""日志配置：请求 ID 注入与 JSON 输出。"""

import json
import logging

from app.packages.filemanager.core.logger import (
    MANAGED_LOGGERS,
    JsonFormatter,
    RequestIdFilter,
    build_logging_config,
    set_request_id,
)


def _record(msg="File uploaded: id=%s", args=(1,)):
    return logging.LogRecord("app", logging.INFO, __file__, 10, msg, args, None)


def test_request_id_filter_uses_context():
    set_request_id("req-42")
    try:
        record = _record()
        assert RequestIdFilter().filter(record) is True
        assert record.request_id == "req-42"
    finally:
        set_request_id(None)

    record = _record()
    RequestIdFilter().filter(record)
    assert record.request_id == "-"


def test_json_formatter_renders_one_line():
    record = _record()
    record.request_id = "abc"
    payload = json.loads(JsonFormatter().format(record))
    assert payload["msg"] == "File uploaded: id=1"
    assert payload["level"] == "INFO"
    assert payload["request_id"] == "abc"


def test_logging_config_follows_settings(settings):
    config = build_logging_config(settings)
    assert set(config["loggers"]) == set(MANAGED_LOGGERS)
    assert config["handlers"]["file"]["filename"].endswith("app.log")
    assert config["handlers"]["console"]["formatter"] == "console"

    settings.log_json = True
    config = build_logging_config(settings)
    assert config["handlers"]["console"]["formatter"] == "json"
    assert config["handlers"]["file"]["formatter"] == "json"
