"""Core exceptions for the proxy."""

from typing import Any, Optional


class ProxyError(Exception):
    """Base exception for proxy errors."""

    error_type = "server_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_envelope(self, code: Optional[str] = None) -> dict[str, Any]:
        """Render the error in the OpenAI error envelope shape."""
        return build_error_envelope(self.message, self.error_type, code)


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    error_type = "invalid_request_error"

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message)
        self.code = code

    def to_envelope(self, code: Optional[str] = None) -> dict[str, Any]:
        return build_error_envelope(self.message, self.error_type, code or self.code)


class AuthenticationError(ProxyError):
    """Base class for credential failures."""
    pass


class CredentialsMissingError(AuthenticationError):
    """No credential source produced a token."""

    def __init__(
        self, message: str = "No Claude CLI credentials found. Run: claude auth login"
    ) -> None:
        super().__init__(message)


class CredentialsExpiredError(AuthenticationError):
    """Credentials were found but are past their expiry margin."""

    def __init__(
        self, message: str = "Claude CLI credentials expired. Run: claude auth login"
    ) -> None:
        super().__init__(message)


class UpstreamError(ProxyError):
    """Non-success status or transport failure talking to the upstream API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProcessError(ProxyError):
    """Base class for subprocess backend failures."""
    pass


class ProcessNotFoundError(ProcessError):
    """The PTY wrapper or the CLI binary could not be found."""
    pass


class ProcessTimeoutError(ProcessError):
    """The child process exceeded its wall-clock budget and was killed."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Request timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class ProcessExitError(ProcessError):
    """The child process exited with a non-zero status."""

    def __init__(self, exit_code: Optional[int], detail: str = "") -> None:
        message = f"CLI process exited with code {exit_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.exit_code = exit_code


def build_error_envelope(
    message: str, error_type: str = "server_error", code: Optional[str] = None
) -> dict[str, Any]:
    """Build the ``{"error": {...}}`` body shared by JSON and SSE errors."""
    return {"error": {"message": message, "type": error_type, "code": code}}
