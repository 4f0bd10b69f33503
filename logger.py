# logger.py - Centralized logging configuration
import os
import logging
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]"
CONSOLE_FORMAT = "%(name)s - %(levelname)s - %(message)s"
LOG_MAX_BYTES = 1024 * 1024
LOG_BACKUP_COUNT = 10


def _rotating_handler(path, level):
    handler = RotatingFileHandler(path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(level)
    return handler


def setup_logger(name, log_file=None, level=logging.INFO, log_dir=None):
    """
    Named logger writing to `<log_dir>/<name>.log` (LOG_DIR env by default).
    A console handler is added outside production. Calling it twice for the
    same name returns the already configured logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    log_dir = log_dir or os.environ.get("LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)

    logger.setLevel(level)
    logger.addHandler(_rotating_handler(log_file or os.path.join(log_dir, f"{name}.log"), level))

    if os.environ.get("FLASK_ENV") != "production":
        console = logging.StreamHandler()
        console.setLevel(logging.DEBUG)
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        logger.addHandler(console)

    return logger


def configure_app_logging(app):
    """Attach the rotating file handler to the Flask app logger."""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    log_dir = app.config.get("LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)

    app.logger.handlers.clear()
    app.logger.addHandler(_rotating_handler(os.path.join(log_dir, "app.log"), level))
    app.logger.setLevel(level)
    app.logger.propagate = False  # Prevent duplicate logs

    if app.debug:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        app.logger.addHandler(console_handler)


# Account lifecycle: sign-ups, logins, role changes
app_logger = setup_logger("accounts")

# Global logger for admin approvals and balance movements
approvals_logger = setup_logger("approvals")
