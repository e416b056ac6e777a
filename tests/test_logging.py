"""Request-scoped logging."""

import logging

from shortener.dependencies import LOG_FORMAT, RequestContext, RequestIdFilter


def format_record(record: logging.LogRecord) -> str:
    RequestIdFilter().filter(record)
    return logging.Formatter(LOG_FORMAT).format(record)


def test_request_logger_tags_records(manager, caplog) -> None:
    ctx = RequestContext(services=manager, request_id="req-42", client_ip="10.0.0.1")

    with caplog.at_level(logging.INFO, logger="shortener"):
        ctx.logger.info("redirect served")

    record = caplog.records[-1]
    assert record.request_id == "req-42"
    assert record.client_ip == "10.0.0.1"
    assert "[req-42] redirect served" in format_record(record)


def test_records_outside_a_request_get_placeholder() -> None:
    record = logging.LogRecord("shortener.cache", logging.WARNING, __file__, 1, "cache down", None, None)
    assert "[-] cache down" in format_record(record)


def test_handler_installs_filter(manager) -> None:
    handlers = logging.getLogger("shortener").handlers
    assert any(isinstance(f, RequestIdFilter) for handler in handlers for f in handler.filters)
