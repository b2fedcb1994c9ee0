"""Tests for the structured logging system (joinery_kernel/logging_config.py)."""

import json
import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from joinery_kernel.domain.job import JobStatus
from joinery_kernel.exceptions import TransitionInFlightError, UnmappedStatusError
from joinery_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "joinery.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("transition_applied", extra={"attempt": 2, "to_status": "OFFER_SENT"})

        record = _parse_log(stream)
        assert record["attempt"] == 2
        assert record["to_status"] == "OFFER_SENT"

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info(
            "totals",
            extra={
                "balance": Decimal("12.50"),
                "status": JobStatus.CLOSED,
                "due": date(2024, 3, 1),
                "at": datetime(2024, 1, 1, 12, 0, tzinfo=UTC),
            },
        )

        record = _parse_log(stream)
        assert record["balance"] == "12.50"
        assert record["status"] == "CLOSED"
        assert record["due"] == "2024-03-01"
        assert record["at"] == "2024-01-01T12:00:00+00:00"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(correlation_id="abc-123", job_id="job-7")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["job_id"] == "job-7"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_joinery_exception_code_extracted(self):
        """Joinery exceptions carry a .code attribute and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")

        try:
            raise UnmappedStatusError("BOGUS", "production")
        except UnmappedStatusError:
            logger.error("flow_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "UNMAPPED_STATUS"
        assert record["exc_type"] == "UnmappedStatusError"
        assert record["exc_status"] == "BOGUS"
        assert record["exc_flow_name"] == "production"

    def test_in_flight_error_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")

        try:
            raise TransitionInFlightError("job-3")
        except TransitionInFlightError:
            logger.warning("busy", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == TransitionInFlightError.code
        assert record["exc_job_id"] == "job-3"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "job_id" not in record

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        uid = uuid4()
        logger.info("with_uuid", extra={"request_id": uid})

        record = _parse_log(stream)
        assert record["request_id"] == str(uid)

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert "ts" in record
            assert "level" in record
            assert "logger" in record
            assert "message" in record


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", job_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "job_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(job_id="outer")
        with LogContext.bind(job_id="inner"):
            assert LogContext.get_all()["job_id"] == "inner"
        assert LogContext.get_all()["job_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        assert "job_id" not in LogContext.get_all()
        with LogContext.bind(job_id="temp"):
            assert LogContext.get_all()["job_id"] == "temp"
        assert "job_id" not in LogContext.get_all()

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(job_id="j", producer="ignored"):
            assert LogContext.get_all() == {"job_id": "j"}

    def test_additive_set(self):
        LogContext.set(correlation_id="a")
        LogContext.set(actor_id="b")
        ctx = LogContext.get_all()
        assert ctx["correlation_id"] == "a"
        assert ctx["actor_id"] == "b"

    def test_all_fields(self):
        LogContext.set(correlation_id="c", job_id="j", actor_id="a", trace_id="t")
        ctx = LogContext.get_all()
        assert len(ctx) == 4
        assert ctx["trace_id"] == "t"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        root = logging.getLogger("joinery")
        assert len(root.handlers) == 1

    def test_get_logger_returns_child(self):
        logger = get_logger("services.lifecycle_controller")
        assert logger.name == "joinery.services.lifecycle_controller"

    def test_logger_hierarchy(self):
        """Child loggers inherit the joinery root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        child = get_logger("engines.reservation")
        child.debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "joinery.engines.reservation"
