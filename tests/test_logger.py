"""
Tests for logging setup
"""

import logging
from logging.handlers import RotatingFileHandler

from logger import CustomFormatter, get_logger, setup_logger


def _record(level=logging.INFO, msg="Session recorded"):
    return logging.LogRecord("StudyTracker", level, __file__, 10, msg, None, None)


class TestSetup:
    def test_console_only(self):
        log = setup_logger("StudyTrackerConsoleOnly", log_file=None)

        assert len(log.handlers) == 1
        assert not any(isinstance(h, RotatingFileHandler) for h in log.handlers)

    def test_file_handler(self, tmp_path, monkeypatch):
        monkeypatch.setattr("logger.LOGS_DIR", str(tmp_path))
        log = setup_logger("StudyTrackerWithFile", log_file="test.log")

        assert any(isinstance(h, RotatingFileHandler) for h in log.handlers)
        assert (tmp_path / "test.log").exists()

        for handler in log.handlers:
            handler.close()
        log.handlers.clear()

    def test_repeat_setup_adds_no_handlers(self):
        first = setup_logger("StudyTrackerRepeat", log_file=None)
        second = setup_logger("StudyTrackerRepeat", log_file=None)

        assert first is second
        assert len(second.handlers) == 1

    def test_component_logger(self):
        assert get_logger("sessions").name == "StudyTracker.sessions"


class TestFormatter:
    def test_plain(self):
        line = CustomFormatter(use_colour=False).format(_record())

        assert "INFO - Session recorded" in line
        assert "\x1b[" not in line

    def test_coloured(self):
        line = CustomFormatter(use_colour=True).format(_record(logging.ERROR))

        assert line.startswith(CustomFormatter.red)
        assert line.endswith(CustomFormatter.reset)
