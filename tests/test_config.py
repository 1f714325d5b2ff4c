"""
Tests for configuration and structured logging
"""

import json
import logging

from docflow import config as config_module
from docflow.config import DocflowConfig, get_config, reload_config
from docflow.logging_config import JSONFormatter, log_action, setup_logging


class TestConfig:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DOCFLOW_DATABASE_URL", raising=False)
        config = DocflowConfig(_env_file=None)

        assert config.database_url == "sqlite:///docflow.db"
        assert config.default_days_per_stage == 5
        assert config.active_workflows_limit == 100
        assert config.log_format == "json"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("DOCFLOW_DATABASE_URL", "memory://")
        monkeypatch.setenv("DOCFLOW_ACTIVE_WORKFLOWS_LIMIT", "25")

        config = DocflowConfig(_env_file=None)

        assert config.database_url == "memory://"
        assert config.active_workflows_limit == 25

    def test_reload_config(self, monkeypatch):
        original = get_config()
        monkeypatch.setenv("DOCFLOW_API_PORT", "9999")
        try:
            assert reload_config().api_port == 9999
            assert get_config().api_port == 9999
        finally:
            config_module.config = original


class CaptureHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestLogging:

    def test_json_formatter_includes_structured_fields(self):
        logger = logging.getLogger("docflow.test.json")
        handler = CaptureHandler()
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            log_action(logger, "info", "Workflow started", user_id="alice",
                       action="start_workflow", resource="workflow:w1", extra={"stage": 1})
        finally:
            logger.removeHandler(handler)

        entry = json.loads(JSONFormatter().format(handler.records[0]))

        assert entry["message"] == "Workflow started"
        assert entry["level"] == "INFO"
        assert entry["user_id"] == "alice"
        assert entry["action"] == "start_workflow"
        assert entry["resource"] == "workflow:w1"
        assert entry["extra"] == {"stage": 1}

    def test_setup_logging_replaces_handlers(self, tmp_path):
        log_file = tmp_path / "docflow.log"

        logger = setup_logging("DEBUG", logger_name="docflow.test.setup", log_file=str(log_file))
        logger = setup_logging("DEBUG", logger_name="docflow.test.setup", log_file=str(log_file))
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()

        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG
        assert json.loads(log_file.read_text().strip())["message"] == "hello"

        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
