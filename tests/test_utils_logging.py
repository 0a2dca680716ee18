"""
Tests for utils.logging module.

Tests cover:
- JSON formatting with context, answer_id and batch_id
- Secret redaction in messages, args and context
- Log level selection in setup_logging()
"""

import json
import logging
import sys

import pytest

from llm_answer_positions.utils.logging import (
    JSONFormatter,
    SecretRedactingFilter,
    get_logger,
    log_with_context,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def _make_record(msg, args=None, **extra):
    record = logging.LogRecord("pipeline.batch", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_make_record("hello")))

        assert entry["level"] == "INFO"
        assert entry["component"] == "pipeline.batch"
        assert entry["message"] == "hello"
        assert entry["timestamp"].endswith("Z")
        assert "context" not in entry

    def test_structured_fields(self):
        record = _make_record("saved", context={"rows": 3}, answer_id=42, batch_id="b-1")

        entry = json.loads(JSONFormatter().format(record))

        assert entry["context"] == {"rows": 3}
        assert entry["answer_id"] == 42
        assert entry["batch_id"] == "b-1"

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )

        entry = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in entry["exception"]


class TestSecretRedactingFilter:
    def test_redacts_keys_in_message(self):
        record = _make_record("using key csk-abcdefghijklmnopqrstuvwxyz1234")

        SecretRedactingFilter().filter(record)

        assert "abcdefghijkl" not in record.msg
        assert record.msg.endswith("1234")

    def test_redacts_args(self):
        record = _make_record("key=%s", ("sk-abcdefghijklmnopqrstuvwxyzWXYZ",))

        SecretRedactingFilter().filter(record)

        assert record.getMessage() == "key=sk-...WXYZ"

    def test_redacts_google_key_in_context(self):
        record = _make_record(
            "request", context={"url": "key=AIzaSyA1234567890abcdefghijklmn", "n": 1}
        )

        SecretRedactingFilter().filter(record)

        assert record.context == {"url": "key=AIza...klmn", "n": 1}

    def test_leaves_normal_text(self):
        record = _make_record("Product lookup for brand 'Nike': found")

        SecretRedactingFilter().filter(record)

        assert record.msg == "Product lookup for brand 'Nike': found"


class TestSetupLogging:
    @pytest.mark.parametrize(
        "verbose,quiet_logs,level",
        [
            (False, False, logging.INFO),
            (True, False, logging.DEBUG),
            (True, True, logging.DEBUG),
            (False, True, logging.WARNING),
        ],
    )
    def test_levels(self, restore_root_logger, verbose, quiet_logs, level):
        setup_logging(verbose=verbose, quiet_logs=quiet_logs)

        assert restore_root_logger.level == level
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)

    def test_no_duplicate_handlers(self, restore_root_logger):
        setup_logging()
        setup_logging()

        assert len(restore_root_logger.handlers) == 1


def test_log_with_context(caplog):
    logger = get_logger("pipeline.orchestrator")

    with caplog.at_level(logging.INFO, logger="pipeline.orchestrator"):
        log_with_context(logger, logging.INFO, "Saved", context={"rows": 2}, answer_id=7)

    record = caplog.records[0]
    assert record.context == {"rows": 2}
    assert record.answer_id == 7
    assert not hasattr(record, "batch_id")
