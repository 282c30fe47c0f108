"""Structured logging for execution sessions and container lifecycle events.

Provides ExecutorLogger class that uses structlog for structured event emission
(execution.start, execution.complete, container lifecycle, teardown errors).
Configures structlog with console rendering by default but allows custom
configuration.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TextIO

import structlog

if TYPE_CHECKING:
    from executor.core.models import ExecutionPolicy, ExecutionResult, HealthStatus


def configure_structlog(level: int = logging.INFO, use_json: bool = False, stream: TextIO | None = None) -> None:
    """Configure structlog with sensible defaults for executor logging.

    Args:
        level: Minimum log level (default: logging.INFO)
        use_json: If True, use JSON renderer; otherwise use console renderer
        stream: File to print log lines to (default: stdout)
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )


class ExecutorLogger:
    """Wrapper for structured logging of execution events.

    Accepts either structlog or standard logging.Logger instances and normalizes
    emission so callers do not need to care which backend is in use.
    """

    _MAX_COMMAND_LENGTH = 200
    _TRUNCATION_SUFFIX = "...[truncated]"

    def __init__(self, logger: Any = None) -> None:
        """Initialize ExecutorLogger with optional custom logger.

        Args:
            logger: Optional structlog BoundLogger, logging.Logger, or string name.
                    If None, a default structlog logger named 'executor' is created.
                    If string, creates a structlog logger with that name.
        """
        if logger is None:
            self._logger = structlog.get_logger("executor")
        elif isinstance(logger, str):
            self._logger = structlog.get_logger(logger)
        else:
            self._logger = logger

    @property
    def logger(self) -> Any:
        """Expose the underlying logger instance (structlog or logging.Logger)."""
        return self._logger

    def _emit(self, level: int, message: str, **fields: Any) -> None:
        """Emit a log record regardless of logger backend."""
        extra = dict(fields)
        extra.setdefault("log_message", message)
        extra.setdefault("event", message.split(".", 1)[-1] if "." in message else message)
        extra.setdefault("event_type", extra.get("event"))

        if isinstance(self._logger, logging.Logger):
            self._logger.log(level, message, extra=extra)
            return

        method_name = logging.getLevelName(level).lower()
        log_method = getattr(self._logger, method_name, None)
        if not callable(log_method):
            log_method = self._logger.info

        log_kwargs = dict(extra)
        event_value = log_kwargs.pop("event", None)
        event_arg = event_value if event_value is not None else message
        log_method(event_arg, **log_kwargs)

    def _truncate(self, text: str) -> str:
        """Shorten long shell commands to keep logs concise."""
        if len(text) <= self._MAX_COMMAND_LENGTH:
            return text
        keep = self._MAX_COMMAND_LENGTH - len(self._TRUNCATION_SUFFIX)
        return f"{text[:keep]}{self._TRUNCATION_SUFFIX}"

    def log_execution_start(
        self,
        language: str,
        policy: ExecutionPolicy,
        session_id: str,
        dependencies: list[str] | None = None,
        **extra: Any,
    ) -> None:
        """Log the start of an execution session with its resource envelope.

        Args:
            language: Resolved language id
            policy: ExecutionPolicy applied to the container
            session_id: Random session token
            dependencies: Requested packages, if any
            **extra: Additional key-value pairs to include in log event
        """
        policy_snapshot = {
            "image": policy.image,
            "timeout_seconds": policy.timeout_seconds,
            "memory_bytes": policy.memory_bytes,
            "cpu_quota": policy.cpu_quota,
            "cpu_period": policy.cpu_period,
            "pids_limit": policy.pids_limit,
            "network_mode": policy.network_mode,
        }
        self._emit(
            logging.INFO,
            "executor.execution.start",
            event="execution.start",
            language=language,
            session_id=session_id,
            dependency_count=len(dependencies or []),
            policy=policy_snapshot,
            **extra,
        )

    def log_execution_complete(self, result: ExecutionResult) -> None:
        """Log the terminal outcome of a session.

        Args:
            result: ExecutionResult with exit status and failure classification
        """
        log_kwargs: dict[str, Any] = {
            "event": "execution.complete",
            "language": result.language,
            "session_id": result.session_id,
            "success": result.success,
            "exit_code": result.exit_code,
            "timed_out": result.timed_out,
            "duration_ms": result.duration_ms,
            "container_created": result.container_created,
        }
        if result.error_kind is not None:
            log_kwargs["error_kind"] = result.error_kind.value
            log_kwargs["error"] = result.error
        self._emit(logging.INFO, "executor.execution.complete", **log_kwargs)

    def log_execution_rejected(self, language: str) -> None:
        """Log a run refused because another session holds the gate."""
        self._emit(
            logging.WARNING,
            "executor.execution.rejected",
            event="execution.rejected",
            language=language,
        )

    def log_execution_timeout(self, session_id: str, container_id: str, timeout_seconds: float) -> None:
        """Log a session that hit its wall-clock deadline."""
        self._emit(
            logging.WARNING,
            "executor.execution.timeout",
            event="execution.timeout",
            session_id=session_id,
            container_id=container_id,
            timeout_seconds=timeout_seconds,
        )

    def log_staging_created(self, session_id: str, path: str, file_name: str) -> None:
        self._emit(
            logging.DEBUG,
            "executor.staging.created",
            event="staging.created",
            session_id=session_id,
            path=path,
            file_name=file_name,
        )

    def log_staging_removed(self, session_id: str, path: str) -> None:
        self._emit(
            logging.DEBUG,
            "executor.staging.removed",
            event="staging.removed",
            session_id=session_id,
            path=path,
        )

    def log_container_event(self, action: str, container_id: str, session_id: str | None = None, **extra: Any) -> None:
        """Log a container lifecycle transition.

        Args:
            action: One of "created", "started", "killed", "removed"
            container_id: Engine-assigned container id
            session_id: Owning session token
            **extra: Action-specific fields (e.g. command for "created")
        """
        if "command" in extra:
            extra["command"] = self._truncate(str(extra["command"]))
        event = f"container.{action}"
        self._emit(
            logging.INFO,
            f"executor.{event}",
            event=event,
            container_id=container_id,
            session_id=session_id,
            **extra,
        )

    def log_teardown_error(self, stage: str, error: str, session_id: str | None = None) -> None:
        """Log a cleanup failure that was swallowed to protect the result.

        Args:
            stage: Teardown step that failed ("kill", "remove", "staging", "stream")
            error: Error message from the failed step
            session_id: Owning session token
        """
        self._emit(
            logging.WARNING,
            "executor.teardown.error",
            event="teardown.error",
            stage=stage,
            error=error,
            session_id=session_id,
        )

    def log_stream_error(self, error: str, session_id: str | None = None) -> None:
        """Log an attach stream that failed before reaching end of output."""
        self._emit(
            logging.WARNING,
            "executor.stream.error",
            event="stream.error",
            error=error,
            session_id=session_id,
        )

    def log_callback_error(self, error: str, session_id: str | None = None) -> None:
        """Log an exception raised by an output consumer."""
        self._emit(
            logging.ERROR,
            "executor.callback.error",
            event="callback.error",
            error=error,
            session_id=session_id,
        )

    def log_runtime_health(self, status: HealthStatus) -> None:
        """Log the outcome of a container engine health check."""
        self._emit(
            logging.INFO if status.ok else logging.WARNING,
            "executor.runtime.health",
            event="runtime.health",
            ok=status.ok,
            error=status.error,
            detail=status.detail,
        )
