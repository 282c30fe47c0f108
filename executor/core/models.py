"""Pydantic models for type-safe executor configuration and results.

Provides validated data models for execution policies, container specs,
output events and execution results with automatic field validation and
JSON serialization support.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from executor.core.errors import ErrorKind, PolicyValidationError

MEBIBYTE = 1024 * 1024


class Channel(str, Enum):
    """Classification of a line of output.

    STDOUT: Program standard output
    STDERR: Program standard error
    SYSTEM: Notice generated by the orchestrator, never by the program
    """
    STDOUT = "stdout"
    STDERR = "stderr"
    SYSTEM = "system"


class OutputEvent(BaseModel):
    """One line of output without its trailing newline."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Line of output (no trailing newline)")
    channel: Channel = Field(description="Channel the line arrived on")


class ExecutionPolicy(BaseModel):
    """Process-wide resource envelope applied to every execution session.

    Defaults match the shared runtime image contract: one full core, 512 MiB
    without swap headroom, 128 processes, bridge networking and a non-root
    user. The policy is fixed when the orchestrator is built.

    Attributes:
        image: Name of the pre-built runtime image holding every toolchain
        timeout_seconds: Wall-clock deadline for one session
        memory_bytes: Memory ceiling, applied to both memory and memory+swap
        cpu_quota: CFS quota in microseconds per period
        cpu_period: CFS period in microseconds
        pids_limit: Maximum number of processes inside the container
        network_mode: Container network mode
        user: Non-root user the program runs as
        input_mount_path: Read-only in-container path of the staging directory
        working_dir: Writable in-container working directory
        staging_root: Host directory for staging directories (None = system temp)
        drain_timeout_seconds: Upper bound for flushing output after exit
    """

    image: str = Field(
        default="executor-base:latest",
        min_length=1,
        description="Pre-built runtime image with all toolchains installed"
    )

    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Wall-clock deadline for one session"
    )

    memory_bytes: int = Field(
        default=512 * MEBIBYTE,
        gt=0,
        description="Memory ceiling (memory and memory+swap)"
    )

    cpu_quota: int = Field(
        default=100_000,
        gt=0,
        description="CPU quota in microseconds"
    )

    cpu_period: int = Field(
        default=100_000,
        gt=0,
        description="CPU period in microseconds"
    )

    pids_limit: int = Field(
        default=128,
        gt=0,
        description="Process-count ceiling"
    )

    network_mode: str = Field(
        default="bridge",
        description="Container network mode"
    )

    user: str = Field(
        default="runner",
        min_length=1,
        description="Non-root user inside the container"
    )

    input_mount_path: str = Field(
        default="/input",
        description="Read-only mount point for the staged source"
    )

    working_dir: str = Field(
        default="/workspace",
        description="Writable working directory inside the container"
    )

    staging_root: str | None = Field(
        default=None,
        description="Host directory holding staging directories (None = system temp)"
    )

    drain_timeout_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Upper bound for flushing buffered output after exit"
    )

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise PolicyValidationError(f"Invalid execution policy: {e}") from e

    @classmethod
    def model_validate(cls, obj: Any, *, strict: bool | None = None, context: dict[str, Any] | None = None) -> "ExecutionPolicy":
        try:
            return super().model_validate(obj, strict=strict, context=context)  # type: ignore[arg-type]
        except ValidationError as e:
            raise PolicyValidationError(f"Invalid execution policy: {e}") from e

    @field_validator("user")
    @classmethod
    def validate_user(cls, v: str) -> str:
        """Reject root; programs never run with container root privileges."""
        if v in ("root", "0", "0:0"):
            raise ValueError("Container user must not be root")
        return v

    @field_validator("input_mount_path", "working_dir")
    @classmethod
    def validate_container_path(cls, v: str) -> str:
        """Ensure in-container paths are absolute POSIX paths."""
        if not PurePosixPath(v).is_absolute():
            raise ValueError("Container paths must be absolute")
        return str(PurePosixPath(v))

    @model_validator(mode="after")
    def validate_paths_disjoint(self) -> "ExecutionPolicy":
        """The writable working directory must not overlap the read-only mount."""
        mount = PurePosixPath(self.input_mount_path)
        workdir = PurePosixPath(self.working_dir)
        if mount == workdir or mount in workdir.parents or workdir in mount.parents:
            raise ValueError("working_dir must not overlap input_mount_path")
        return self


class ContainerSpec(BaseModel):
    """Everything the runtime client needs to create one container."""

    model_config = ConfigDict(frozen=True)

    image: str
    command: str = Field(description="Shell command run with sh -c")
    working_dir: str
    bind_source: str = Field(description="Host staging directory")
    bind_target: str = Field(description="In-container mount point")
    read_only: bool = True
    memory_bytes: int
    memory_swap_bytes: int
    cpu_quota: int
    cpu_period: int
    pids_limit: int
    network_mode: str
    user: str

    @classmethod
    def from_policy(cls, policy: ExecutionPolicy, command: str, staging_dir: Path) -> "ContainerSpec":
        """Build a spec applying the policy's resource envelope."""
        return cls(
            image=policy.image,
            command=command,
            working_dir=policy.working_dir,
            bind_source=str(Path(staging_dir).resolve()),
            bind_target=policy.input_mount_path,
            read_only=True,
            memory_bytes=policy.memory_bytes,
            memory_swap_bytes=policy.memory_bytes,
            cpu_quota=policy.cpu_quota,
            cpu_period=policy.cpu_period,
            pids_limit=policy.pids_limit,
            network_mode=policy.network_mode,
            user=policy.user,
        )


class LanguageInfo(BaseModel):
    """Public metadata for one supported language.

    Serialized with camelCase keys for browser clients. The command builder
    is deliberately absent.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    label: str
    supports_dependencies: bool
    dependency_field_label: str | None = None
    dependency_placeholder: str | None = None
    editor_language: str | None = None


class HealthStatus(BaseModel):
    """Result of a container engine health check."""

    ok: bool
    error: str | None = None
    detail: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Return the wire form: {"ok": true} or {"ok": false, "error": ...}."""
        if self.ok:
            return {"ok": True}
        return {"ok": False, "error": self.error or "Container runtime unavailable"}


class ExecutionResult(BaseModel):
    """Terminal outcome of one execution session.

    Attributes:
        success: Whether the program exited with status 0
        exit_code: Exit status reported to the caller (None when rejected)
        timed_out: Whether the session hit its deadline
        error: Failure message when the session did not complete normally
        error_kind: Failure classification (None on normal exit)
        session_id: Random session token (None when rejected before staging)
        language: Resolved language id
        duration_ms: Wall-clock time spent in the session
        container_created: Whether a container existed and was torn down
    """

    success: bool = Field(default=False)
    exit_code: int | None = Field(default=None)
    timed_out: bool = Field(default=False)
    error: str | None = Field(default=None)
    error_kind: ErrorKind | None = Field(default=None)
    session_id: str | None = Field(default=None)
    language: str | None = Field(default=None)
    duration_ms: float = Field(default=0.0)
    container_created: bool = Field(default=False)

    @property
    def rejected(self) -> bool:
        return self.error_kind is ErrorKind.CONCURRENCY_REJECTED

    @classmethod
    def rejection(cls, message: str = "An execution is already in progress") -> "ExecutionResult":
        return cls(error=message, error_kind=ErrorKind.CONCURRENCY_REJECTED)

    def to_payload(self) -> dict[str, Any]:
        """Return the wire form: {"exitCode": n} or {"error": message}."""
        if self.exit_code is None:
            return {"error": self.error or "Execution failed"}
        return {"exitCode": self.exit_code}
