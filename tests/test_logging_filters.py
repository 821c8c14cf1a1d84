"""Tests for credential redaction and context propagation in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from romc_api.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    set_request_id,
    set_user_id,
)


@pytest.fixture
def capture():
    logger = logging.getLogger("test_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)

    yield logger, stream

    logger.handlers.clear()
    clear_request_id()


def test_redacts_credentials(capture) -> None:
    logger, stream = capture

    logger.info(
        "auth_event",
        extra={
            "api_key": "romc_abc123",
            "x-api-key": "another-secret",
            "session_token": "sess-value",
            "csrf_token": "csrf-value",
            "cron_secret": "cron-value",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()
    for leaked in ("romc_abc123", "another-secret", "sess-value", "csrf-value", "cron-value"):
        assert leaked not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_hashes_are_not_redacted(capture) -> None:
    logger, stream = capture

    logger.info("api_key.rejected", extra={"key_hash": "deadbeef", "token_hash": "cafebabe"})

    record = json.loads(stream.getvalue())
    assert record["key_hash"] == "deadbeef"
    assert record["token_hash"] == "cafebabe"


def test_safe_fields_pass_through(capture) -> None:
    logger, stream = capture

    logger.info(
        "http.request",
        extra={"path": "/api/company/14399840/claim", "status": 200, "duration_ms": 12.5},
    )

    output = stream.getvalue()
    assert "/api/company/14399840/claim" in output
    assert "[REDACTED]" not in output


def test_redacts_nested_mappings(capture) -> None:
    logger, stream = capture

    logger.info(
        "nested_event",
        extra={"headers": {"x-csrf-token": "nested-secret", "user-agent": "pytest"}},
    )

    record = json.loads(stream.getvalue())
    assert record["headers"] == {"x-csrf-token": "[REDACTED]", "user-agent": "pytest"}


def test_request_and_user_ids_come_from_context(capture) -> None:
    logger, stream = capture
    set_request_id("req-7")
    set_user_id("user-9")

    logger.info("claim.created")

    record = json.loads(stream.getvalue())
    assert record["request_id"] == "req-7"
    assert record["user_id"] == "user-9"
