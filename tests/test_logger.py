"""Tests for logger module."""

import logging
import sys
from unittest.mock import patch

from carecord.util.logger import (
    DATE_FORMAT,
    LOG_FORMAT,
    NOISY_LOGGERS,
    ColorFormatter,
    PromptToolkitHandler,
    get_log_filepath,
    get_logger,
    handle_exception,
    setup_logger,
    should_use_color,
)


def make_record(level: int, msg: str) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
        func="test_func",
    )


class TestShouldUseColor:
    """Tests for should_use_color function."""

    @patch('sys.stderr.isatty')
    def test_should_use_color_tty(self, mock_isatty):
        mock_isatty.return_value = True
        assert should_use_color() is True

    @patch('sys.stderr.isatty')
    def test_should_use_color_no_tty(self, mock_isatty):
        mock_isatty.return_value = False
        assert should_use_color() is False

    @patch('sys.stderr.isatty')
    def test_should_use_color_exception(self, mock_isatty):
        """Test color returns False on exception."""
        mock_isatty.side_effect = Exception("Error")
        assert should_use_color() is False


class TestColorFormatter:
    """Tests for ColorFormatter class."""

    def test_error_is_wrapped_in_red(self):
        formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        formatted = formatter.format(make_record(logging.ERROR, "Persisting crisis event failed"))

        assert formatted.startswith("\033[31m")
        assert formatted.endswith("\033[0m")
        assert "Persisting crisis event failed" in formatted

    def test_unknown_level_is_left_plain(self):
        formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT)
        record = make_record(logging.INFO, "plain")
        record.levelname = "NOTICE"

        assert "\033[" not in formatter.format(record)


class TestPromptToolkitHandler:
    """Tests for the prompt_toolkit console handler."""

    @patch('carecord.util.logger.print_formatted_text')
    def test_emit_prints_formatted_record(self, mock_print):
        handler = PromptToolkitHandler(formatter=logging.Formatter("%(message)s"))

        handler.emit(make_record(logging.INFO, "[SAFETY PIPELINE] hello"))

        mock_print.assert_called_once()

    @patch('carecord.util.logger.print_formatted_text')
    def test_emit_failure_is_routed_to_handle_error(self, mock_print):
        mock_print.side_effect = OSError("closed")
        handler = PromptToolkitHandler()

        with patch.object(handler, "handleError") as mock_handle_error:
            handler.emit(make_record(logging.INFO, "boom"))

        mock_handle_error.assert_called_once()


class TestSetupLogger:
    """Tests for setup_logger function."""

    def test_setup_logger_creates_logger(self):
        logger = setup_logger("carecord_test_logger_1")

        assert logger.name == "carecord_test_logger_1"
        assert logger.level == logging.DEBUG
        assert logger.propagate is False

    def test_setup_logger_returns_existing_without_duplicate_handlers(self):
        logger1 = setup_logger("carecord_test_logger_2")
        handler_count = len(logger1.handlers)
        logger2 = setup_logger("carecord_test_logger_2")

        assert logger1 is logger2
        assert len(logger2.handlers) == handler_count

    def test_console_and_file_handlers(self):
        logger = setup_logger("carecord_test_logger_3")

        levels = sorted(handler.level for handler in logger.handlers)
        assert levels == [logging.DEBUG, logging.INFO]

    def test_log_file_is_shared(self):
        assert get_log_filepath() == get_log_filepath()
        assert get_log_filepath().suffix == ".log"


class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger_same_name_returns_same(self):
        assert get_logger("carecord_module_1") is get_logger("carecord_module_1")

    def test_logger_with_exception(self):
        logger = get_logger("carecord_module_2")

        try:
            raise ValueError("Test exception")
        except ValueError:
            logger.exception("Exception occurred")


class TestExceptionHook:
    """Tests for the global exception hook."""

    def test_keyboard_interrupt_goes_to_default_hook(self):
        with patch.object(sys, "__excepthook__") as default_hook:
            handle_exception(KeyboardInterrupt, KeyboardInterrupt(), None)

        default_hook.assert_called_once()

    def test_other_exceptions_are_logged(self):
        with patch("carecord.util.logger.logging.error") as mock_error:
            handle_exception(RuntimeError, RuntimeError("x"), None)

        mock_error.assert_called_once()

    def test_noisy_libraries_are_quieted(self):
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.ERROR
