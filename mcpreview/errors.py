"""Error hierarchy shared by the host, providers, git layer and CLI."""

from __future__ import annotations

from typing import Any, Optional

import httpx


class McpReviewError(Exception):
    """Base class for every error raised by mcpreview."""

    def __init__(self, message: str, code: str = "MCP_REVIEW_ERROR", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.cause = cause


class ToolServerError(McpReviewError):
    """Infrastructure failure while talking to a tool server."""

    def __init__(self, server_name: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, "TOOL_SERVER_ERROR", cause)
        self.server_name = server_name


class ApiError(McpReviewError):
    """Failure returned by an LLM provider API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, "API_ERROR", cause)
        self.status_code = status_code
        self.retryable = retryable


class RateLimitExhaustedError(ApiError):
    """Raised once rate-limit retries are used up."""

    def __init__(self, attempts: int, cause: Optional[BaseException] = None):
        super().__init__(
            f"Rate limited: gave up after {attempts} retries",
            status_code=429,
            retryable=False,
            cause=cause,
        )
        self.attempts = attempts


class GitError(McpReviewError):
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, "GIT_ERROR", cause)


class ConfigError(McpReviewError):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, "CONFIG_ERROR", cause)


class TransportError(McpReviewError):
    """Raised when stdio transport communication fails."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, "TRANSPORT_ERROR", cause)


class TransportTimeoutError(TransportError):
    """A single request got no response in time. The transport stays usable."""

    def __init__(self, method: str, timeout: float):
        super().__init__(f"Request timeout: {method} (after {timeout:g}s)")
        self.method = method
        self.timeout = timeout


class JsonRpcError(TransportError):
    """The peer answered a request with a JSON-RPC error object."""

    def __init__(self, message: str, rpc_code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.rpc_code = rpc_code
        self.data = data


class HostNotInitializedError(McpReviewError):
    def __init__(self) -> None:
        super().__init__("MCPHost not initialized. Call initialize() first.", "HOST_NOT_INITIALIZED")


_NETWORK_MARKERS = ("network", "socket hang up", "econnreset", "etimedout")


def is_retryable_error(error: BaseException) -> bool:
    """
    Check whether an error is worth retrying.

    Retryable: an ApiError flagged retryable, connection-level failures,
    and errors whose message mentions a network condition.
    """
    if isinstance(error, ApiError):
        return error.retryable

    if isinstance(error, (ConnectionError, TimeoutError, httpx.TransportError)):
        return True

    message = str(error).lower()
    return any(marker in message for marker in _NETWORK_MARKERS)


def format_error_for_user(error: BaseException) -> str:
    """Produce a one-line message without a traceback."""
    if isinstance(error, ToolServerError):
        return f'Tool server "{error.server_name}" error: {error.message}'

    if isinstance(error, ApiError):
        parts = [f"API error: {error.message}"]
        if error.status_code is not None:
            parts.append(f"(HTTP {error.status_code})")
        if error.retryable:
            parts.append("- this error may be resolved by retrying")
        return " ".join(parts)

    if isinstance(error, GitError):
        return f"Git error: {error.message}"

    if isinstance(error, ConfigError):
        return f"Configuration error: {error.message}"

    if isinstance(error, McpReviewError):
        return f"Error [{error.code}]: {error.message}"

    return f"Unexpected error: {error}"
