from __future__ import annotations

import logging
from pathlib import Path

from aither_config import logging_utils
from aither_config.logging_utils import LOG_FILENAME, configure_logging


def test_configure_logging_writes_file_once(root_logging, tmp_path):
    log_path = tmp_path / "logs" / "aither.log"
    actual = configure_logging(str(log_path), also_console=False)
    assert actual == str(log_path)

    added = len(root_logging.handlers)
    assert configure_logging(str(tmp_path / "other.log")) == str(log_path)
    assert len(root_logging.handlers) == added

    logging.getLogger("aither_config.test").info("hello from test")
    for h in root_logging.handlers:
        h.flush()
    assert "hello from test" in log_path.read_text(encoding="utf-8")


def test_configure_logging_falls_back_to_cwd(root_logging, tmp_path, monkeypatch):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    actual = configure_logging(str(blocker / "aither.log"), also_console=False)
    assert actual == str(Path.cwd() / LOG_FILENAME)


def test_default_log_path_next_to_store():
    assert logging_utils.default_log_path().endswith(LOG_FILENAME)
