from __future__ import annotations

import logging

from usersvc.middleware import CorrelationIdFilter, current_correlation_id


def test_filter_stamps_default_outside_requests() -> None:
    record = logging.LogRecord("usersvc.test", logging.INFO, __file__, 1, "hello", None, None)

    assert CorrelationIdFilter().filter(record) is True
    assert record.correlation_id == "-"
    assert current_correlation_id() == "-"
