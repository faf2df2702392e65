import logging
import os
import sys
from pathlib import Path

import psutil

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO", log_file: Path | None = None) -> logging.Logger:
    """Attach stderr (and optionally file) handlers to the package logger.

    Handlers are only added once, so repeated calls just adjust the level.
    """
    package_logger = logging.getLogger("cc_caffeine")
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    if not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in package_logger.handlers
    ):
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        package_logger.addHandler(stream_handler)

    if log_file is not None and not any(
        isinstance(h, logging.FileHandler) for h in package_logger.handlers
    ):
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    return package_logger


def log_process_status(role: str) -> None:
    """Log this process's pid and resident memory."""
    pid = os.getpid()
    try:
        rss_mb: int | None = psutil.Process(pid).memory_info().rss // (1024**2)
    except psutil.Error:
        rss_mb = None
    logger.info(
        "%s pid=%d%s",
        role,
        pid,
        f" | RSS={rss_mb}MB" if rss_mb is not None else "",
    )
