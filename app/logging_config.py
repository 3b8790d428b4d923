import logging
import sys

from app.config import settings

_QUIET_LOGGERS = ("googleapiclient", "google_auth_httplib2", "apscheduler", "aiosqlite", "asyncio")


def setup_logging(level: str | None = None) -> None:
    """
    Configure the root logger once: a single stderr handler shared with
    gunicorn/uvicorn output. Chatty third-party loggers are capped at WARNING.
    """
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    # Avoid duplicate handlers when the app module is imported twice (reloaders, tests)
    for handler in list(root.handlers):
        if getattr(handler, "_duesync", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler._duesync = True
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
