import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler

import pytest

from ldap_auth_driver import log_config
from ldap_auth_driver.log_config import setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    level = root.level
    yield
    for h in (log_config._file_handler, log_config._console_handler):
        if h is not None and h in root.handlers:
            root.removeHandler(h)
            h.close()
    log_config._file_handler = None
    log_config._console_handler = None
    root.setLevel(level)


def _file_handlers():
    return [h for h in logging.getLogger().handlers if isinstance(h, TimedRotatingFileHandler)]


def test_reconfigure_replaces_handlers(tmp_path):
    setup_logging("DEBUG", log_dir=str(tmp_path / "first"))
    setup_logging("warning", log_dir=str(tmp_path / "second"))

    handlers = _file_handlers()
    assert len(handlers) == 1
    assert handlers[0].baseFilename == str(tmp_path / "second" / "app.log")
    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("ldap3").level == logging.WARNING


def test_unknown_level_falls_back_to_info(tmp_path):
    setup_logging("chatty", to_file=False)
    assert _file_handlers() == []
    assert logging.getLogger().level == logging.INFO


def test_old_rotated_files_are_removed(tmp_path):
    old = tmp_path / "app.log.2020-01-01"
    recent = tmp_path / "app.log.2020-01-02"
    old.write_text("old\n")
    recent.write_text("recent\n")
    ten_days_ago = time.time() - 10 * 86400
    os.utime(old, (ten_days_ago, ten_days_ago))

    setup_logging("INFO", log_dir=str(tmp_path), retention_days=7)

    assert not old.exists()
    assert recent.exists()
