"""Logging setup for applications embedding ldapauth.

The library itself only uses module loggers (`ldapauth.*`). Applications that
don't configure logging on their own can call `setup_logging()`:

- console handler always;
- with `log_dir`, a file handler rotated at midnight (UTC), keeping
  `retention_days` files.

Calling it again replaces the handlers installed by the previous call.
"""
from __future__ import annotations

import glob
import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler

_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LOG_FILE = "ldapauth.log"

# Handlers installed by us, removed on reconfiguration.
_file_handler: logging.Handler | None = None
_console_handler: logging.Handler | None = None


def setup_logging(level: str = "INFO", log_dir: str | None = None, retention_days: int = 30) -> None:
    global _file_handler, _console_handler

    level_str = (level or "INFO").strip().upper()
    if level_str not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        level_str = "INFO"
    log_level = getattr(logging, level_str, logging.INFO)
    retention_days = max(1, min(365, int(retention_days or 30)))

    root = logging.getLogger()
    if _file_handler is not None and _file_handler in root.handlers:
        root.removeHandler(_file_handler)
        _file_handler.close()
    _file_handler = None
    if _console_handler is not None and _console_handler in root.handlers:
        root.removeHandler(_console_handler)

    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(formatter)
    _console_handler = ch
    root.addHandler(ch)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        fh = TimedRotatingFileHandler(
            os.path.join(log_dir, _LOG_FILE),
            when="midnight",
            interval=1,
            backupCount=retention_days,
            encoding="utf-8",
            utc=True,
        )
        fh.suffix = "%Y-%m-%d"
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        _file_handler = fh
        root.addHandler(fh)
        _cleanup_old_logs(log_dir, retention_days)

    root.setLevel(log_level)
    # ldap3 is chatty at DEBUG; keep it quiet unless tracing was asked for.
    logging.getLogger("ldap3").setLevel(max(log_level, logging.WARNING))

    logging.getLogger("ldapauth").info(
        "Logging configured: level=%s, file=%s, retention=%d days",
        level_str, bool(log_dir), retention_days,
    )


def _cleanup_old_logs(log_dir: str, retention_days: int) -> None:
    """Remove rotated files older than retention_days."""
    cutoff = time.time() - (retention_days * 86400)
    for f in glob.glob(os.path.join(log_dir, _LOG_FILE + ".*")):
        try:
            if os.path.getmtime(f) < cutoff:
                os.remove(f)
        except OSError:
            pass


def enable_ldap3_trace() -> None:
    """Route ldap3's own protocol trace to the `ldap3` logger at DEBUG.

    Passwords are masked by ldap3 (sensitive data hiding stays on).
    """
    from ldap3.utils.log import (
        EXTENDED,
        set_library_log_activation_level,
        set_library_log_detail_level,
        set_library_log_hide_sensitive_data,
    )

    set_library_log_activation_level(logging.DEBUG)
    set_library_log_detail_level(EXTENDED)
    set_library_log_hide_sensitive_data(True)
    logging.getLogger("ldap3").setLevel(logging.DEBUG)
