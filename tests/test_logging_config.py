import json
import logging

import pytest

from yenta import logging_config
from yenta.logging_config import JsonFormatter, setup_logging


def test_json_formatter_emits_one_object() -> None:
    record = logging.LogRecord("yenta.test", logging.INFO, __file__, 1, "scored %s", ("HOT",), None)
    payload = json.loads(JsonFormatter().format(record))
    assert payload["level"] == "INFO"
    assert payload["logger"] == "yenta.test"
    assert payload["message"] == "scored HOT"


def test_setup_logging_configures_root(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    log_file = tmp_path / "logs" / "yenta.log"
    monkeypatch.setattr(logging_config.settings.logging, "format", "json")
    monkeypatch.setattr(logging_config.settings.logging, "file", str(log_file))
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level

    try:
        setup_logging()
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert len(root.handlers) == 2
        assert log_file.parent.exists()
        assert logging.getLogger("openai").level == logging.WARNING
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
