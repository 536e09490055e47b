"""
Logging configuration tests: JSON lines carry the lifecycle/generation
``extra=`` fields, the readable format appends the user.
"""

import json
import logging
from datetime import datetime, timezone

import pytest
from flask import Flask

from app.middleware.logging_config import JSONFormatter, ReadableFormatter, configure_logging


def _record(**extra):
    record = logging.LogRecord("app.services.module_lifecycle", logging.INFO, __file__, 10,
                               "Module %s completed", ("MOD_201",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture()
def root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestFormatters:

    def test_json_includes_extra_fields(self):
        line = JSONFormatter().format(_record(user_id="u1", module_id="MOD_201", attempt=2))
        entry = json.loads(line)
        assert entry["message"] == "Module MOD_201 completed"
        assert entry["level"] == "INFO"
        assert entry["user_id"] == "u1"
        assert entry["module_id"] == "MOD_201"
        assert entry["attempt"] == 2
        assert "model" not in entry

    def test_json_stringifies_non_serializable_extras(self):
        when = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        entry = json.loads(JSONFormatter().format(_record(request_id=when)))
        assert entry["request_id"] == str(when)

    def test_readable_appends_user(self):
        line = ReadableFormatter().format(_record(user_id="u1"))
        assert "Module MOD_201 completed" in line
        assert line.endswith("[user=u1]")

    def test_readable_without_user_has_no_suffix(self):
        line = ReadableFormatter().format(_record())
        assert line.endswith("Module MOD_201 completed")


class TestConfigureLogging:

    def test_testing_app_uses_readable_format_and_config_level(self, root_logger):
        flask_app = Flask(__name__)
        flask_app.config.update(TESTING=True, LOG_LEVEL="warning")

        configure_logging(flask_app)

        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, ReadableFormatter)
        assert root_logger.level == logging.WARNING
        assert logging.getLogger("openai").level == logging.WARNING

    def test_production_app_uses_json(self, root_logger):
        flask_app = Flask(__name__)
        flask_app.config.update(TESTING=False, DEBUG=False, LOG_LEVEL="INFO")

        configure_logging(flask_app)

        assert isinstance(root_logger.handlers[0].formatter, JSONFormatter)
        assert root_logger.level == logging.INFO
