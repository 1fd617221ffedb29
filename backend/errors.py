"""
Error types shared by the relay, the store and the navigator.

    StudyTreeError
    ├── ConfigError        missing credential, surfaced as HTTP 500
    ├── UpstreamError      provider returned non-2xx or the connection failed
    ├── FrameParseError    one malformed streamed frame (logged, never fatal)
    ├── PersistenceError   store read/write failure
    └── NavigationError    operation not allowed from the current view
"""

from typing import Optional


class StudyTreeError(Exception):
    """Base error with a message and a details dict."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(StudyTreeError):
    status_code = 500

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        super().__init__(message, details={"config_key": config_key})


class UpstreamError(StudyTreeError):
    """The model provider failed. Carries its status code and body text."""

    def __init__(self, status_code: int, body: str = "", message: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message or "Model API request failed",
                         details={"status_code": status_code, "body": body[:500]})


class FrameParseError(StudyTreeError):
    def __init__(self, line: str, reason: Optional[str] = None):
        self.line = line
        message = "Could not parse streamed frame"
        if reason:
            message += f": {reason}"
        super().__init__(message, details={"line": line[:200]})


class PersistenceError(StudyTreeError):
    def __init__(self, operation: str, reason: Optional[str] = None):
        self.operation = operation
        message = f"Store operation '{operation}' failed"
        if reason:
            message += f": {reason}"
        super().__init__(message, details={"operation": operation, "reason": reason})


class NavigationError(StudyTreeError):
    """Raised when e.g. a section is opened before any topic."""
    pass
