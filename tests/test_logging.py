"""Tests for logging configuration."""

import json
import logging

import pytest

from sentinel_monitor.logging import configure_logging, get_logger


@pytest.fixture
def root_handlers():
    """Restore the root logger's handlers after the test reconfigures them."""
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


class TestConfigureLogging:
    def test_reconfigure_closes_previous_file(self, root_handlers, tmp_path):
        first = tmp_path / "first.log"
        second = tmp_path / "second.log"

        configure_logging(log_file=first)
        first_handler = next(h for h in root_handlers.handlers if isinstance(h, logging.FileHandler))
        configure_logging(log_file=second)

        file_handlers = [h for h in root_handlers.handlers if isinstance(h, logging.FileHandler)]
        assert first_handler.stream is None
        assert [h.baseFilename for h in file_handlers] == [str(second)]

    def test_file_entries_are_json(self, root_handlers, tmp_path):
        path = tmp_path / "sentinel-monitor.log"
        configure_logging(level="INFO", log_file=path)

        logging.getLogger("sentinel_monitor.test").info("Checked %d files", 3)
        for handler in root_handlers.handlers:
            handler.flush()

        entry = json.loads(path.read_text().splitlines()[-1])
        assert entry["event"] == "Checked 3 files"
        assert entry["level"] == "info"

    def test_get_logger(self):
        assert get_logger("sentinel_monitor.test") is not None
