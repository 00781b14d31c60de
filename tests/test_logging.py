"""Tests for the logging helpers."""
import logging
import sys

from portal.core.logging import ContextFormatter, get_logger


def make_record(**extra):
    record = logging.LogRecord("portal.services.policy_service", logging.INFO, __file__, 10, "Policy signed", (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestContextFormatter:
    def test_appends_extra_context(self):
        formatter = ContextFormatter("%(levelname)s [%(name)s] %(message)s")
        line = formatter.format(make_record(policy_id=3, client_id=9))
        assert line == "INFO [portal.services.policy_service] Policy signed policy_id=3 client_id=9"

    def test_plain_message_without_extra(self):
        formatter = ContextFormatter("%(levelname)s %(message)s")
        assert formatter.format(make_record()) == "INFO Policy signed"

    def test_context_stays_on_the_message_line(self):
        formatter = ContextFormatter("%(message)s")
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("portal", logging.ERROR, __file__, 1, "Upload failed", (), None)
            record.exc_info = sys.exc_info()
        record.bucket = "signatures"
        first_line, *rest = formatter.format(record).splitlines()
        assert first_line == "Upload failed bucket=signatures"
        assert rest[-1] == "RuntimeError: boom"


class TestGetLogger:
    def test_nests_names_under_portal(self):
        assert get_logger("seed_test_data").name == "portal.seed_test_data"
        assert get_logger("portal.api.deps").name == "portal.api.deps"

    def test_handler_uses_context_formatter(self):
        get_logger(__name__)
        handlers = logging.getLogger("portal").handlers
        assert any(isinstance(h.formatter, ContextFormatter) for h in handlers)
