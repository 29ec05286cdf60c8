import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler

import pytest

from ldapauth import log_config


@pytest.fixture(autouse=True)
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    root.setLevel(level)
    logging.getLogger("ldap3").setLevel(logging.NOTSET)


def test_console_only():
    log_config.setup_logging("debug")
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert not any(isinstance(h, TimedRotatingFileHandler) for h in root.handlers)
    assert logging.getLogger("ldap3").level == logging.WARNING


def test_unknown_level_falls_back_to_info():
    log_config.setup_logging("chatty")
    assert logging.getLogger().level == logging.INFO


def test_file_handler_and_reconfigure(tmp_path):
    log_config.setup_logging("INFO", log_dir=str(tmp_path))
    logging.getLogger("ldapauth.test").info("hello")
    assert (tmp_path / "ldapauth.log").exists()

    log_config.setup_logging("WARNING", log_dir=str(tmp_path))
    root = logging.getLogger()
    assert sum(isinstance(h, TimedRotatingFileHandler) for h in root.handlers) == 1


def test_old_rotated_files_are_removed(tmp_path):
    old = tmp_path / "ldapauth.log.2020-01-01"
    old.write_text("x")
    past = time.time() - 10 * 86400
    os.utime(old, (past, past))
    fresh = tmp_path / "ldapauth.log.2099-01-01"
    fresh.write_text("y")

    log_config.setup_logging("INFO", log_dir=str(tmp_path), retention_days=5)

    assert not old.exists()
    assert fresh.exists()


def test_ldap3_trace():
    log_config.enable_ldap3_trace()
    assert logging.getLogger("ldap3").level == logging.DEBUG
