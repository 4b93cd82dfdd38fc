import logging
import logging.handlers

import pytest

from protagonist.logger_config import LOG_FILE_NAME, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_setup_logging_writes_rotating_file(tmp_path, restore_root_logger):
    setup_logging("debug", str(tmp_path / "logs"))

    logging.getLogger("protagonist.test").debug("hello from the test")
    for handler in logging.getLogger().handlers:
        handler.flush()

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers)
    assert "hello from the test" in (tmp_path / "logs" / LOG_FILE_NAME).read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING
