import os
import logging
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logger(name: str, log_file: str, level: int = logging.INFO) -> logging.Logger:
    """
    Create and return a logger that writes to `log_file`.
    - Ensures the directory exists.
    - Uses a rotating handler to avoid giant files.
    """
    directory = os.path.dirname(log_file)
    if directory:
        os.makedirs(directory, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # setup_logger runs once per app factory call; don't stack handlers
    if not any(isinstance(h, RotatingFileHandler) and h.baseFilename == os.path.abspath(log_file)
               for h in logger.handlers):
        handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger


def configure_app_logging(app) -> None:
    """Route the app's and the project's loggers to ``LOG_FILE`` when configured."""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    log_file = app.config.get("LOG_FILE")
    if not log_file:
        return
    for name in (app.logger.name, "keys", "key_loans", "receipts", "files", "core", "utilities"):
        setup_logger(name, log_file, level)
