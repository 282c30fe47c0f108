"""Exception classes for executor errors and validation failures.

Provides the error taxonomy shared by the orchestrator, the container
runtime client and the transport adapters. Every executor error carries an
ErrorKind so callers can report failures without matching on class names.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of execution failures reported to transport adapters.

    UNKNOWN_LANGUAGE: Requested language id is not in the registry
    IMAGE_NOT_FOUND: Shared runtime image has not been built
    RUNTIME_UNREACHABLE: Container engine cannot be contacted
    CONCURRENCY_REJECTED: Another execution is already in flight
    TIMEOUT: Execution exceeded the wall-clock deadline
    RUNTIME_ERROR: Any other container engine failure
    """
    UNKNOWN_LANGUAGE = "unknown_language"
    IMAGE_NOT_FOUND = "image_not_found"
    RUNTIME_UNREACHABLE = "runtime_unreachable"
    CONCURRENCY_REJECTED = "concurrency_rejected"
    TIMEOUT = "timeout"
    RUNTIME_ERROR = "runtime_error"


class PolicyValidationError(Exception):
    """Raised when execution policy configuration is invalid.

    Indicates that a provided ExecutionPolicy or policy TOML file
    contains invalid values (e.g., negative limits, overlapping mount
    and working directory paths).

    This exception wraps Pydantic ValidationError with a clearer
    domain-specific name for executor consumers.
    """

    pass


class ExecutorError(Exception):
    """Base class for failures raised while running a session."""

    kind: ErrorKind = ErrorKind.RUNTIME_ERROR


class UnknownLanguageError(ExecutorError):
    """Raised when a language id has no registry entry."""

    kind = ErrorKind.UNKNOWN_LANGUAGE

    def __init__(self, language_id: str) -> None:
        super().__init__(f"Unknown language: {language_id}")
        self.language_id = language_id


class ImageNotFoundError(ExecutorError):
    """Raised when the shared runtime image does not exist.

    Distinct from ContainerRuntimeError because the fix is user-actionable:
    build the base image and retry.
    """

    kind = ErrorKind.IMAGE_NOT_FOUND

    def __init__(self, image: str) -> None:
        super().__init__(f"Base image '{image}' not found. Build the base image first.")
        self.image = image


class RuntimeUnreachableError(ExecutorError):
    """Raised when the container engine does not answer."""

    kind = ErrorKind.RUNTIME_UNREACHABLE


class ConcurrencyRejectedError(ExecutorError):
    """Raised when a run is requested while another one is active."""

    kind = ErrorKind.CONCURRENCY_REJECTED

    def __init__(self, message: str = "An execution is already in progress") -> None:
        super().__init__(message)


class ExecutionTimeoutError(ExecutorError):
    """Raised when a container outlives the session deadline."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Execution exceeded {timeout_seconds:g}s timeout")
        self.timeout_seconds = timeout_seconds


class ContainerRuntimeError(ExecutorError):
    """Raised when the container engine rejects a create/attach/start/wait call.

    The engine's own message is passed through unchanged so it can be shown
    to the user in the system channel.
    """

    kind = ErrorKind.RUNTIME_ERROR
