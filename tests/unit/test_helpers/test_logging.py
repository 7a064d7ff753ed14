"""Unit tests for the logging helpers."""

import io
import logging
import pytest

from docker_volume_backup.helpers.logging import (
    ROOT_LOGGER_NAME,
    Colors,
    LogManager,
    StructuredFormatter,
    get_logger,
)


def make_record(msg, **extra):
    record = logging.LogRecord("docker_volume_backup.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestStructuredFormatter:

    def test_container_becomes_prefix(self):
        formatter = StructuredFormatter(fmt="%(message)s")
        assert formatter.format(make_record("Stopping container", container="web")) == "[web] Stopping container"

    def test_other_extras_are_appended(self):
        formatter = StructuredFormatter(fmt="%(message)s")
        line = formatter.format(make_record("Archived", container="db", mount="/data"))
        assert line == "[db] Archived (mount=/data)"

    def test_record_is_left_untouched(self):
        formatter = StructuredFormatter(fmt="%(message)s")
        record = make_record("hello", container="web")
        formatter.format(record)
        assert record.msg == "hello"

    def test_colors(self):
        formatter = StructuredFormatter(fmt="%(message)s", use_colors=True)
        line = formatter.format(make_record("hi"))
        assert line.startswith(Colors.INFO)
        assert line.endswith(Colors.RESET)


@pytest.mark.unit
class TestLogManager:

    def test_get_logger_prefixes_package_root(self):
        assert get_logger("cores.x").name == f"{ROOT_LOGGER_NAME}.cores.x"
        assert get_logger(f"{ROOT_LOGGER_NAME}.cores.x").name == f"{ROOT_LOGGER_NAME}.cores.x"

    def test_configure_sets_level_and_writes_to_stream(self):
        stream = io.StringIO()
        manager = LogManager()
        manager.configure("debug", stream=stream)

        get_logger("test_logging").debug("visible", extra={'container': "web"})

        assert manager.level == logging.DEBUG
        assert "[web] visible" in stream.getvalue()

    def test_configure_replaces_previous_handler(self):
        manager = LogManager()
        manager.configure("info", stream=io.StringIO())
        manager.configure("warning", stream=io.StringIO())

        root = logging.getLogger(ROOT_LOGGER_NAME)
        assert root.handlers.count(manager._handler) == 1
        assert root.level == logging.WARNING

    def test_unknown_level_raises(self):
        with pytest.raises(ValueError):
            LogManager().configure("chatty")
