"""Logging setup.

Log files live in `data/logs/` (relative to CWD) unless another directory is
given, rotated daily at midnight UTC. Calling `setup_logging` again replaces
the handlers installed by the previous call.
"""
from __future__ import annotations

import glob
import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler

_DEFAULT_LOG_DIR = os.path.join(os.getcwd(), "data", "logs")
_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_file_handler: logging.Handler | None = None
_console_handler: logging.Handler | None = None


def setup_logging(
    level: str = "INFO",
    log_dir: str | None = None,
    retention_days: int = 30,
    to_file: bool = True,
) -> None:
    global _file_handler, _console_handler

    level_str = (level or "INFO").strip().upper()
    if level_str not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        level_str = "INFO"
    log_level = getattr(logging, level_str, logging.INFO)
    retention_days = max(1, min(365, int(retention_days or 30)))

    root = logging.getLogger()
    for h in (_file_handler, _console_handler):
        if h is not None and h in root.handlers:
            root.removeHandler(h)
            h.close()
    _file_handler = None

    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)

    if to_file:
        log_dir = log_dir or _DEFAULT_LOG_DIR
        os.makedirs(log_dir, exist_ok=True)
        fh = TimedRotatingFileHandler(
            os.path.join(log_dir, "app.log"),
            when="midnight",
            interval=1,
            backupCount=retention_days,
            encoding="utf-8",
            utc=True,
        )
        fh.suffix = "%Y-%m-%d"
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        root.addHandler(fh)
        _file_handler = fh
        _cleanup_old_logs(log_dir, retention_days)

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(formatter)
    root.addHandler(ch)
    _console_handler = ch

    root.setLevel(log_level)

    # ldap3 logs through its own logger; keep it quiet unless debugging.
    logging.getLogger("ldap3").setLevel(max(log_level, logging.WARNING))
    logging.getLogger("uvicorn.access").setLevel(max(log_level, logging.WARNING))

    logging.getLogger("ldap_auth_driver").info(
        "Logging configured: level=%s, retention=%d days", level_str, retention_days,
    )


def _cleanup_old_logs(log_dir: str, retention_days: int) -> None:
    """Remove rotated files left over from a longer retention setting."""
    cutoff = time.time() - (retention_days * 86400)
    for f in glob.glob(os.path.join(log_dir, "app.log.*")):
        try:
            if os.path.getmtime(f) < cutoff:
                os.remove(f)
        except OSError:
            pass
