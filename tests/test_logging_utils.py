import logging
from logging.handlers import RotatingFileHandler

import pytest

from batch_generation_service.config import Settings
from batch_generation_service.logging_utils import NOISY_LOGGERS, configure_from_settings, configure_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    saved_quiet = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if isinstance(handler, RotatingFileHandler):
            handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)
    for name, level in saved_quiet.items():
        logging.getLogger(name).setLevel(level)


def test_configure_logging_adds_console_and_file_handlers(tmp_path, restore_logging):
    log_file = tmp_path / "logs" / "service.log"

    configure_logging(level="DEBUG", log_file=log_file)
    logging.getLogger("batch_generation_service.test").info("hello")

    assert restore_logging.level == logging.DEBUG
    assert len(restore_logging.handlers) == 2
    assert any(isinstance(handler, RotatingFileHandler) for handler in restore_logging.handlers)
    for handler in restore_logging.handlers:
        handler.flush()
    assert "| INFO | batch_generation_service.test | hello" in log_file.read_text()


def test_configure_from_settings_uses_level_and_file(tmp_path, restore_logging):
    settings = Settings(data_dir=tmp_path, log_level="warning", log_file=tmp_path / "service.log")

    configure_from_settings(settings)

    assert restore_logging.level == logging.WARNING
    assert (tmp_path / "service.log").exists()
    assert logging.getLogger("httpx").level == logging.WARNING


def test_explicit_level_overrides_settings(tmp_path, restore_logging):
    logging.getLogger("httpx").setLevel(logging.NOTSET)

    configure_from_settings(Settings(data_dir=tmp_path, log_level="INFO"), level="DEBUG")

    assert restore_logging.level == logging.DEBUG
    assert len(restore_logging.handlers) == 1
    assert logging.getLogger("httpx").level == logging.NOTSET
