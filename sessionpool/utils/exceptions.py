"""
Custom exception hierarchy for the session pool.

Provides a structured exception hierarchy for different error scenarios:
- AppException: Base for all application errors
- ConfigError: Configuration-related errors
- ScraperError: Origin requests and responses
- CredentialError: Pool state and persistence

Each exception includes:
- Descriptive message
- Optional error code for programmatic handling
- Optional context dictionary for debugging

Example:
    >>> from sessionpool.utils.exceptions import EdgeBlockedError
    >>> raise EdgeBlockedError(url="https://www.vinted.co.uk/api/v2/items/1")
"""

from __future__ import annotations

from typing import Any, Dict, Optional


# ============================================
# Base Exception
# ============================================


class AppException(Exception):
    """
    Base exception for all session pool errors.

    Attributes:
        message: Human-readable error description.
        code: Optional error code for programmatic handling.
        context: Optional dictionary with debugging context.

    Example:
        >>> try:
        ...     raise AppException("Something went wrong", code="APP_001")
        ... except AppException as e:
        ...     print(f"Error {e.code}: {e.message}")
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self._default_code()
        self.context = context or {}
        super().__init__(self.message)

    def _default_code(self) -> str:
        """Generate default error code from class name."""
        # CamelCase -> UPPER_SNAKE_CASE
        name = self.__class__.__name__
        code = ""
        for i, char in enumerate(name):
            if char.isupper() and i > 0:
                code += "_"
            code += char.upper()
        return code

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "context": self.context,
        }


# ============================================
# Configuration Errors
# ============================================


class ConfigError(AppException):
    """Base exception for configuration-related errors."""

    pass


class ConfigFileNotFoundError(ConfigError):
    """Raised when an explicitly requested configuration file is missing."""

    def __init__(
        self,
        message: str = "Configuration file not found",
        path: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if path:
            context["path"] = path
        super().__init__(message, code="CONFIG_FILE_NOT_FOUND", context=context, **kwargs)


class ConfigurationError(ConfigError):
    """
    Raised when configuration is invalid or cannot be parsed.

    Example:
        >>> raise ConfigurationError(
        ...     "min_threshold must not exceed max_capacity",
        ...     context={"min_threshold": 30, "max_capacity": 20}
        ... )
    """

    def __init__(
        self,
        message: str = "Invalid configuration",
        **kwargs,
    ) -> None:
        super().__init__(message, code="CONFIG_INVALID", **kwargs)


# ============================================
# Scraper Errors
# ============================================


class ScraperError(AppException):
    """
    Base exception for errors talking to the origin.

    Raised when there are issues with:
    - HTTP transport
    - Authorization of API calls
    - Response payloads
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if url:
            context["url"] = url
        if status_code:
            context["status_code"] = status_code
        self.url = url
        self.status_code = status_code
        super().__init__(message, context=context, **kwargs)


class TransportError(ScraperError):
    """
    Raised when a request never produced a usable HTTP response.

    Covers timeouts, DNS failures and connection resets.

    Example:
        >>> raise TransportError(
        ...     "Connection timeout",
        ...     url="https://www.vinted.co.uk"
        ... )
    """

    def __init__(self, message: str = "Network request failed", **kwargs) -> None:
        kwargs.setdefault("code", "TRANSPORT_ERROR")
        super().__init__(message, **kwargs)


class UpstreamServerError(TransportError):
    """Raised when the origin answers with a 5xx status."""

    def __init__(self, message: str = "Origin server error", **kwargs) -> None:
        kwargs.setdefault("code", "UPSTREAM_SERVER_ERROR")
        super().__init__(message, **kwargs)


class AuthRejectedError(ScraperError):
    """Raised when the origin still answers 401 after one token rotation."""

    def __init__(self, message: str = "Session token rejected", **kwargs) -> None:
        kwargs.setdefault("status_code", 401)
        super().__init__(message, code="AUTH_REJECTED", **kwargs)


class ApplicationInvalidTokenError(ScraperError):
    """
    Raised when a nominally successful response carries the invalid token code.

    Attributes:
        token: The session token that was rejected, if known.
    """

    def __init__(
        self,
        message: str = "Origin reported an invalid authentication token",
        token: Optional[str] = None,
        **kwargs,
    ) -> None:
        self.token = token
        super().__init__(message, code="APPLICATION_INVALID_TOKEN", **kwargs)


class EdgeBlockedError(ScraperError):
    """Raised when edge protection (403) blocks a request."""

    def __init__(self, message: str = "Blocked by edge protection", **kwargs) -> None:
        kwargs.setdefault("status_code", 403)
        super().__init__(message, code="EDGE_BLOCKED", **kwargs)


class UnexpectedResponseError(ScraperError):
    """Raised for any other non-successful status below 500."""

    def __init__(self, message: str = "Unexpected response from origin", **kwargs) -> None:
        super().__init__(message, code="UNEXPECTED_RESPONSE", **kwargs)


class ResponseParsingError(ScraperError):
    """Raised when a response body cannot be decoded."""

    def __init__(self, message: str = "Failed to parse response payload", **kwargs) -> None:
        super().__init__(message, code="RESPONSE_PARSE", **kwargs)


class TokenExtractionError(ScraperError):
    """Raised when a landing response carries no session token cookie."""

    def __init__(self, message: str = "Session token not found in response", **kwargs) -> None:
        super().__init__(message, code="TOKEN_EXTRACTION", **kwargs)


# ============================================
# Credential Errors
# ============================================


class CredentialError(AppException):
    """Base exception for credential pool errors."""

    pass


class PoolExhaustedError(CredentialError):
    """
    Raised when no valid credential can be drawn for an origin.

    Example:
        >>> raise PoolExhaustedError(origin="co.uk")
    """

    def __init__(
        self,
        message: str = "No valid session credential available",
        origin: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if origin:
            context["origin"] = origin
        super().__init__(message, code="POOL_EXHAUSTED", context=context, **kwargs)


class CorruptStateError(CredentialError):
    """Raised internally when a persisted snapshot cannot be read."""

    def __init__(
        self,
        message: str = "Persisted pool snapshot is unreadable",
        path: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if path:
            context["path"] = path
        super().__init__(message, code="CORRUPT_STATE", context=context, **kwargs)
