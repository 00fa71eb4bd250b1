"""
Exception hierarchy for metals-standalone.

Provides:
- Base exception with error codes and categories
- Protocol-level errors raised by the LSP connection
- Lifecycle errors surfaced to the CLI (initialization, server exit, timeout)
"""

from __future__ import annotations

import asyncio
import json
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    RECOVERABLE = "recoverable"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    PROTOCOL = "protocol"


class MetalsStandaloneError(Exception):
    """Base exception for all metals-standalone errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class TimeoutError(MetalsStandaloneError):
    """Operation timeout error."""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            f"Operation '{operation}' timed out after {timeout_seconds}s",
            code="TIMEOUT",
            category=ErrorCategory.TIMEOUT,
            details={"operation": operation, "timeout_seconds": timeout_seconds},
        )


class RequestTimeoutError(TimeoutError):
    """An LSP request did not receive its response in time."""

    def __init__(self, method: str, request_id: int, timeout_seconds: float):
        super().__init__(method, timeout_seconds)
        self.code = "REQUEST_TIMEOUT"
        self.details["request_id"] = request_id
        self.method = method
        self.request_id = request_id


class ConnectionClosedError(MetalsStandaloneError):
    """The stream to the language server is closed; no more traffic is possible."""

    def __init__(self, reason: str = "stream closed"):
        super().__init__(reason, code="CONNECTION_CLOSED", category=ErrorCategory.FATAL)
        self.reason = reason


class LspResponseError(MetalsStandaloneError):
    """The language server answered a request with an error payload."""

    def __init__(self, method: str, code: int, message: str, data: Any = None):
        super().__init__(
            f"{method} failed ({code}): {message}",
            code="LSP_ERROR",
            category=ErrorCategory.PROTOCOL,
            details={"method": method, "rpc_code": code, "data": data},
        )
        self.method = method
        self.rpc_code = code
        self.rpc_message = message
        self.data = data


class InitializationError(MetalsStandaloneError):
    """The initialize handshake did not reach the ready state."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, code="INITIALIZATION_FAILED", category=ErrorCategory.FATAL, details=details)


class ServerExitedError(MetalsStandaloneError):
    """The language server process exited while the client still needed it."""

    def __init__(self, returncode: int | None):
        super().__init__(
            f"Language server process exited (returncode={returncode})",
            code="SERVER_EXITED",
            category=ErrorCategory.FATAL,
            details={"returncode": returncode},
        )
        self.returncode = returncode


class LaunchError(MetalsStandaloneError):
    """No usable Metals installation, or the process failed to spawn."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, code="LAUNCH_FAILED", category=ErrorCategory.NOT_FOUND, details=details)


class ProjectValidationError(MetalsStandaloneError):
    """The project path cannot be used as a workspace root."""

    def __init__(self, message: str, path: str):
        super().__init__(message, code="INVALID_PROJECT", category=ErrorCategory.VALIDATION, details={"path": path})


class McpServerError(MetalsStandaloneError):
    """The MCP endpoint never became healthy or went down."""

    def __init__(self, message: str, url: str | None = None):
        details = {"url": url} if url else {}
        super().__init__(message, code="MCP_UNAVAILABLE", category=ErrorCategory.RETRYABLE, details=details)


def classify_exception(exc: BaseException) -> tuple[str, ErrorCategory]:
    """Classify an exception and return (error_code, category)."""
    if isinstance(exc, MetalsStandaloneError):
        return exc.code, exc.category

    if isinstance(exc, FileNotFoundError):
        return "FILE_NOT_FOUND", ErrorCategory.NOT_FOUND

    if isinstance(exc, asyncio.TimeoutError):
        return "TIMEOUT", ErrorCategory.TIMEOUT

    if isinstance(exc, (BrokenPipeError, ConnectionResetError)):
        return "CONNECTION_CLOSED", ErrorCategory.FATAL

    if isinstance(exc, json.JSONDecodeError):
        return "JSON_PARSE_ERROR", ErrorCategory.VALIDATION

    if isinstance(exc, ValueError):
        return "INVALID_VALUE", ErrorCategory.VALIDATION

    return "INTERNAL_ERROR", ErrorCategory.FATAL
