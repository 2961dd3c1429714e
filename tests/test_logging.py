"""日志基础设施测试。

包含 get_logger / parse_level / configure_root_logger 的单元测试。
"""

import logging

import pytest

from academic_orchestrator.utils.logging import (
    DEFAULT_DATE_FORMAT,
    DEFAULT_FORMAT,
    _ROOT_LOGGER_NAME,
    configure_root_logger,
    get_logger,
    parse_level,
)


@pytest.fixture(autouse=True)
def _cleanup_loggers():
    """每个测试后清理 academic_orchestrator logger 的 handler。"""
    yield
    root = logging.getLogger(_ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


class TestGetLogger:
    """get_logger 工厂函数测试。"""

    def test_returns_logger_with_prefixed_name(self):
        assert get_logger("workflow_engine").name == "academic_orchestrator.workflow_engine"

    def test_dotted_module_name(self):
        assert get_logger("qwen.executor").name == "academic_orchestrator.qwen.executor"

    def test_empty_or_none_falls_back_to_root(self):
        assert get_logger("").name == "academic_orchestrator"
        assert get_logger(None).name == "academic_orchestrator"

    def test_dunder_name_is_not_prefixed_twice(self):
        """直接传入 __name__ 风格的名称时不重复拼接前缀。"""
        logger = get_logger("academic_orchestrator.router")
        assert logger.name == "academic_orchestrator.router"

    def test_custom_level(self):
        logger = get_logger("test_level", level=logging.DEBUG)
        assert logger.level == logging.DEBUG

    def test_default_level_not_set(self):
        assert get_logger("test_no_level").level == logging.NOTSET

    def test_returns_same_logger_instance(self):
        assert get_logger("same_module") is get_logger("same_module")


class TestParseLevel:
    """日志级别解析测试。"""

    @pytest.mark.parametrize("raw,expected", [
        ("DEBUG", logging.DEBUG),
        ("info", logging.INFO),
        (" warning ", logging.WARNING),
        (logging.ERROR, logging.ERROR),
    ])
    def test_valid_levels(self, raw, expected):
        assert parse_level(raw) == expected

    def test_unknown_level(self):
        with pytest.raises(ValueError):
            parse_level("LOUD")


class TestConfigureRootLogger:
    """configure_root_logger 测试。"""

    def test_adds_single_stream_handler(self):
        configure_root_logger()
        configure_root_logger()
        root = logging.getLogger(_ROOT_LOGGER_NAME)
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.StreamHandler)

    def test_accepts_level_name(self):
        configure_root_logger("DEBUG")
        root = logging.getLogger(_ROOT_LOGGER_NAME)
        assert root.level == logging.DEBUG
        assert root.handlers[0].level == logging.DEBUG

    def test_default_format(self):
        configure_root_logger()
        formatter = logging.getLogger(_ROOT_LOGGER_NAME).handlers[0].formatter
        assert formatter._fmt == DEFAULT_FORMAT
        assert formatter.datefmt == DEFAULT_DATE_FORMAT

    def test_custom_format(self):
        configure_root_logger(format_str="%(message)s", date_format="%H:%M")
        formatter = logging.getLogger(_ROOT_LOGGER_NAME).handlers[0].formatter
        assert formatter._fmt == "%(message)s"
        assert formatter.datefmt == "%H:%M"

    def test_child_logger_propagates(self, caplog):
        configure_root_logger(logging.INFO)
        with caplog.at_level(logging.INFO, logger=_ROOT_LOGGER_NAME):
            get_logger("orchestrator").info("pipeline started")
        assert "pipeline started" in caplog.text
