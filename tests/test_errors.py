"""Tests for the bless-fleet error hierarchy."""

import pytest

from bless_fleet.errors import (
    BlessFleetError,
    ConfigurationError,
    HttpStatusError,
    NonRetryableError,
    ParseError,
    RetryableError,
    TransportError,
    UnauthorizedError,
)


@pytest.mark.parametrize("error_cls", [TransportError, HttpStatusError, ParseError])
def test_node_phase_errors_are_retryable(error_cls):
    assert issubclass(error_cls, RetryableError)
    assert issubclass(error_cls, BlessFleetError)


@pytest.mark.parametrize("error_cls", [UnauthorizedError, ConfigurationError])
def test_account_errors_are_not_retryable(error_cls):
    assert issubclass(error_cls, NonRetryableError)
    assert not issubclass(error_cls, RetryableError)


def test_str_includes_code_and_context():
    error = HttpStatusError("ping failed: HTTP 503", status=503)
    assert str(error) == "[HTTP_STATUS_ERROR] ping failed: HTTP 503 (status=503)"


def test_custom_code():
    error = BlessFleetError("boom", code="CUSTOM")
    assert error.code == "CUSTOM"
    assert str(error) == "[CUSTOM] boom"
