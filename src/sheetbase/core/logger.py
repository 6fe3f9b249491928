import logging
import os
from logging.handlers import RotatingFileHandler

from .config import LoggingSettings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_settings: LoggingSettings) -> logging.Logger:
    """Configure the root logger with a console handler and an optional rotating file.

    Safe to call more than once; handlers installed by a previous call are replaced.
    """
    level = logging.getLevelName(log_settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    formatter = logging.Formatter(LOG_FORMAT)
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_sheetbase", False):
            root.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler._sheetbase = True  # type: ignore[attr-defined]
    root.addHandler(console_handler)

    if log_settings.LOG_FILE:
        log_dir = os.path.dirname(log_settings.LOG_FILE)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_settings.LOG_FILE,
            maxBytes=log_settings.LOG_FILE_MAX_BYTES,
            backupCount=log_settings.LOG_FILE_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler._sheetbase = True  # type: ignore[attr-defined]
        root.addHandler(file_handler)

    root.setLevel(level)
    return logging.getLogger("sheetbase")
