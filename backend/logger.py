"""
Study Tracker - Logging
Coloured console output plus an optional rotating log file
"""

import logging
import sys
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

LOGS_DIR = os.getenv("STUDY_TRACKER_LOG_DIR", os.path.join(os.path.dirname(__file__), "logs"))
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class CustomFormatter(logging.Formatter):
    """Level-coloured console output, plain when stdout is not a terminal"""

    grey = "\x1b[38;20m"
    blue = "\x1b[34;20m"
    yellow = "\x1b[33;20m"
    red = "\x1b[31;20m"
    bold_red = "\x1b[31;1m"
    reset = "\x1b[0m"
    format_str = LOG_FORMAT + " (%(filename)s:%(lineno)d)"

    COLOURS = {
        logging.DEBUG: grey,
        logging.INFO: blue,
        logging.WARNING: yellow,
        logging.ERROR: red,
        logging.CRITICAL: bold_red
    }

    def __init__(self, use_colour: bool = True):
        super().__init__(datefmt=DATE_FORMAT)
        self.use_colour = use_colour

    def format(self, record):
        log_fmt = self.format_str
        if self.use_colour:
            log_fmt = self.COLOURS.get(record.levelno, "") + log_fmt + self.reset
        formatter = logging.Formatter(log_fmt, datefmt=DATE_FORMAT)
        return formatter.format(record)


def setup_logger(
    name: str = "StudyTracker",
    level: int = logging.INFO,
    log_file: Optional[str] = "study_tracker.log"
) -> logging.Logger:
    """Configures and returns a logger. Pass log_file=None for console only."""

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Prevent duplicate handlers if function is called multiple times
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(CustomFormatter(use_colour=sys.stdout.isatty()))
    logger.addHandler(console_handler)

    if log_file:
        os.makedirs(LOGS_DIR, exist_ok=True)
        # 5MB max size per file, keep last 5 backups
        file_handler = RotatingFileHandler(
            os.path.join(LOGS_DIR, log_file), maxBytes=5*1024*1024, backupCount=5, encoding='utf-8'
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(component: str) -> logging.Logger:
    """Child logger for a backend component, e.g. get_logger("sessions")"""
    return logger.getChild(component)


def _env_level() -> int:
    return getattr(logging, os.getenv("STUDY_TRACKER_LOG_LEVEL", "INFO").upper(), logging.INFO)


def _env_log_file() -> Optional[str]:
    if os.getenv("STUDY_TRACKER_LOG_TO_FILE", "true").lower() in ("0", "false", "no"):
        return None
    return "study_tracker.log"


# Global logger instance
logger = setup_logger(level=_env_level(), log_file=_env_log_file())
