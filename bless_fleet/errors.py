"""
bless-fleet Error Hierarchy

Unified exception hierarchy for the node fleet daemon. Every failure the
gateway client can produce is mapped onto one of these classes, so callers
decide between "restart the node" and "give up on the account" by type alone.

Usage:
    from bless_fleet.errors import RetryableError, UnauthorizedError

    try:
        nodes = await client.list_nodes()
    except UnauthorizedError as e:
        logger.error(f"Bad credential: {e.message}")
        raise
"""

from typing import Any

__all__ = [
    # Base error
    "BlessFleetError",
    # Retry/recovery errors
    "RetryableError",
    "NonRetryableError",
    # Gateway errors
    "TransportError",
    "HttpStatusError",
    "ParseError",
    "UnauthorizedError",
    "ConfigurationError",
]


class BlessFleetError(Exception):
    """Base exception for all bless-fleet errors.

    Attributes:
        code: Machine-readable error code for categorization
        message: Human-readable error description
        context: Additional context for debugging
    """
    code: str = "BLESS_FLEET_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"[{self.code}] {self.message} ({ctx})"
        return f"[{self.code}] {self.message}"


# =============================================================================
# Retry and Recovery Errors
# =============================================================================


class RetryableError(BlessFleetError):
    """Error that can be retried (network issues, transient failures).

    A supervisor that hits one of these while registering, starting a
    session or pinging schedules a restart of the node cycle.
    """
    code: str = "RETRYABLE_ERROR"


class NonRetryableError(BlessFleetError):
    """Error that should not be retried.

    Raised for bad credentials and bad configuration, where a retry would
    fail the same way.
    """
    code: str = "NON_RETRYABLE_ERROR"


# =============================================================================
# Gateway Errors
# =============================================================================


class TransportError(RetryableError):
    """Connection, DNS, proxy or timeout failure before a response arrived."""
    code: str = "TRANSPORT_ERROR"

    def __init__(
        self,
        message: str,
        url: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        if url:
            self.context["url"] = url


class HttpStatusError(RetryableError):
    """Gateway answered with a non-2xx status.

    Attributes:
        status: HTTP status code of the response
    """
    code: str = "HTTP_STATUS_ERROR"

    def __init__(
        self,
        message: str,
        status: int,
        url: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        self.status = status
        self.context["status"] = status
        if url:
            self.context["url"] = url


class ParseError(RetryableError):
    """Response body was not the JSON document the gateway promises."""
    code: str = "PARSE_ERROR"


class UnauthorizedError(NonRetryableError):
    """Gateway rejected the account credential (HTTP 401/403).

    Fatal for the whole account during node discovery.
    """
    code: str = "UNAUTHORIZED"

    def __init__(
        self,
        message: str,
        status: int = 401,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        self.status = status
        self.context["status"] = status


class ConfigurationError(NonRetryableError):
    """Invalid account file or proxy configuration."""
    code: str = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        config_path: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        if config_path:
            self.context["config_path"] = config_path

