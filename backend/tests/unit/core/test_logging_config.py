import json
import logging

import pytest

from repairdesk.core.config import Settings
from repairdesk.core.logging_config import StructuredFormatter, configure_logging
from repairdesk.core.request_context import RequestIdFilter, reset_request_id, set_request_id

pytestmark = pytest.mark.unit


@pytest.fixture
def restore_root_logger():
    handlers, level = list(logging.root.handlers), logging.root.level
    yield
    logging.root.handlers = handlers
    logging.root.setLevel(level)


def _record(**extra):
    record = logging.LogRecord("repairdesk.test", logging.WARNING, __file__, 1, "refund %s", ("failed",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    RequestIdFilter().filter(record)
    return record


def test_structured_formatter_includes_extra_fields():
    token = set_request_id("req-42")
    try:
        record = _record(booking_id="01BOOKING", saga="cancellation")
    finally:
        reset_request_id(token)

    payload = json.loads(StructuredFormatter().format(record))

    assert payload["message"] == "refund failed"
    assert payload["level"] == "WARNING"
    assert payload["request_id"] == "req-42"
    assert payload["booking_id"] == "01BOOKING"
    assert payload["saga"] == "cancellation"


def test_configure_logging_installs_single_handler(restore_root_logger):
    configure_logging(Settings(environment="test", structured_logs=True, log_level="debug"))

    [handler] = logging.root.handlers
    assert isinstance(handler.formatter, StructuredFormatter)
    assert any(isinstance(f, RequestIdFilter) for f in handler.filters)
    assert logging.root.level == logging.DEBUG
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_plain_formatter_by_default(restore_root_logger):
    configure_logging(Settings(environment="test", structured_logs=False))

    [handler] = logging.root.handlers
    assert not isinstance(handler.formatter, StructuredFormatter)
    assert "%(request_id)s" in handler.formatter._fmt
