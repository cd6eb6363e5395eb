from __future__ import annotations

import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from datetime import datetime


ROOT_DIR = os.path.normpath(os.path.join(os.path.dirname(__file__), os.pardir, os.pardir))
_LOG_DIR = os.environ.get("ADVENTEDITOR_LOG_DIR") or os.path.normpath(os.path.join(ROOT_DIR, "debug", "logs"))
_LOG_NAME = "app.log"


def ensure_log_dir() -> str:
    os.makedirs(_LOG_DIR, exist_ok=True)
    return _LOG_DIR


def log_file_path() -> str:
    return os.path.join(_LOG_DIR, _LOG_NAME)


def setup_logging(level: int = logging.DEBUG, console_level: int = logging.INFO) -> logging.Logger:
    """Configure a rotating file logger under debug/logs/app.log.

    Returns the configured top-level logger ("adventeditor"). If the log
    directory cannot be created only the console handler is installed.
    """
    logger = logging.getLogger("adventeditor")
    logger.setLevel(level)

    # Avoid duplicate handlers if called twice
    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        try:
            ensure_log_dir()
            fhandler = RotatingFileHandler(log_file_path(), maxBytes=512_000, backupCount=3, encoding="utf-8")
        except OSError as e:
            print(f"[WARN] File logging disabled: {e}", file=sys.stderr)
        else:
            fhandler.setLevel(logging.DEBUG)
            fhandler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
            logger.addHandler(fhandler)

    # RotatingFileHandler is itself a StreamHandler subclass
    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        ch = logging.StreamHandler()
        ch.setLevel(console_level)
        ch.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        logger.addHandler(ch)

    logger.debug("Logging initialized at %s", log_file_path())
    return logger


def install_excepthook(logger: logging.Logger | None = None) -> None:
    """Install a sys.excepthook that logs uncaught exceptions with traceback."""
    lg = logger or logging.getLogger("adventeditor")

    def _hook(exc_type, exc, tb):
        lg.error("Uncaught exception:")
        for line in traceback.format_exception(exc_type, exc, tb):
            lg.error(line.rstrip())
        # Chain to default hook for console visibility
        sys.__excepthook__(exc_type, exc, tb)

    sys.excepthook = _hook


def log_exception_context(msg: str, logger: logging.Logger | None = None) -> None:
    lg = logger or logging.getLogger("adventeditor")
    lg.error(msg)
    lg.error("Last exception:")
    lg.error(traceback.format_exc())


def crash_hint() -> str:
    """Return a short hint with the log file location to show users."""
    lf = log_file_path()
    ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    return f"[{ts}] See log for details: {lf}"
