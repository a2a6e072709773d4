import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Mounted as a volume in deployment so the files outlive the container.
log_dir = Path("logs")


def setup_logging(level: int = logging.INFO):
    """
    Configures the root logger used across the application.

    Logs go both to stdout (for development) and to a size-rotated file
    (for production).
    """
    log_dir.mkdir(exist_ok=True)

    # Time - module - level - message
    log_format = "%(asctime)s - [%(name)s] - %(levelname)s - %(message)s"

    logger = logging.getLogger()
    logger.setLevel(level)

    # Drop handlers installed by uvicorn and friends so one format wins.
    if logger.hasHandlers():
        logger.handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(stdout_handler)

    # app.log rolls over to app.log.1 .. app.log.5 past 5 MB.
    file_handler = RotatingFileHandler(
        log_dir / "app.log",
        maxBytes=5*1024*1024,
        backupCount=5
    )
    file_handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(file_handler)
