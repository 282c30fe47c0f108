"""Core executor abstractions and models.

This module provides the foundational types and interfaces for the
container executor, including Pydantic models for type-safe configuration
and results, the container runtime abstraction, and error types.
"""

from __future__ import annotations

from .base import AttachedStream, ContainerRuntime
from .errors import (
    ConcurrencyRejectedError,
    ContainerRuntimeError,
    ErrorKind,
    ExecutionTimeoutError,
    ExecutorError,
    ImageNotFoundError,
    PolicyValidationError,
    RuntimeUnreachableError,
    UnknownLanguageError,
)
from .models import Channel, ContainerSpec, ExecutionPolicy, ExecutionResult, HealthStatus, LanguageInfo, OutputEvent

__all__ = [
    "AttachedStream",
    "Channel",
    "ConcurrencyRejectedError",
    "ContainerRuntime",
    "ContainerRuntimeError",
    "ContainerSpec",
    "ErrorKind",
    "ExecutionPolicy",
    "ExecutionResult",
    "ExecutionTimeoutError",
    "ExecutorError",
    "HealthStatus",
    "ImageNotFoundError",
    "LanguageInfo",
    "OutputEvent",
    "PolicyValidationError",
    "RuntimeUnreachableError",
    "UnknownLanguageError",
]
