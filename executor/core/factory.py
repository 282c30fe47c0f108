"""Factory functions for creating runtimes and orchestrators.

Provides create_runtime() that maps a runtime name to a concrete
ContainerRuntime implementation, and create_orchestrator() that wires a
runtime, policy, registry and logger into an ExecutionOrchestrator.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from executor.core.logging import ExecutorLogger
from executor.core.models import ExecutionPolicy

if TYPE_CHECKING:
    from executor.core.base import ContainerRuntime
    from executor.languages import LanguageRegistry
    from executor.orchestrator import ExecutionOrchestrator


def create_runtime(name: str = "docker", logger: ExecutorLogger | None = None, **kwargs: Any) -> ContainerRuntime:
    """Create a container runtime client by name.

    Args:
        name: Runtime backend identifier. Only "docker" is available.
        logger: Optional ExecutorLogger shared with the orchestrator
        **kwargs: Backend-specific arguments.
                  For DockerRuntime: base_url, timeout, client

    Returns:
        ContainerRuntime: Concrete runtime client (not yet connected)

    Raises:
        ValueError: If name is not a known runtime backend

    Examples:
        >>> runtime = create_runtime()
        >>> runtime.name
        'docker'

        >>> runtime = create_runtime(base_url="tcp://127.0.0.1:2375")
    """
    if name == "docker":
        from executor.runtimes.docker import DockerRuntime

        return DockerRuntime(logger=logger, **kwargs)

    raise ValueError(f"Unsupported runtime: {name}. Must be 'docker'.")


def create_orchestrator(
    policy: ExecutionPolicy | None = None,
    runtime: ContainerRuntime | None = None,
    logger: ExecutorLogger | None = None,
    registry: LanguageRegistry | None = None,
    **runtime_kwargs: Any,
) -> ExecutionOrchestrator:
    """Create an ExecutionOrchestrator with sensible defaults.

    Args:
        policy: Optional ExecutionPolicy. If None, uses default policy.
        runtime: Optional ContainerRuntime. If None, creates a DockerRuntime
                 with runtime_kwargs.
        logger: Optional ExecutorLogger. If None, a default logger is created
                and shared by the runtime and the orchestrator.
        registry: Optional LanguageRegistry. If None, uses the built-in languages.
        **runtime_kwargs: Passed to create_runtime() when runtime is None

    Returns:
        ExecutionOrchestrator ready to run code
    """
    from executor.orchestrator import ExecutionOrchestrator

    if policy is None:
        policy = ExecutionPolicy()
    if logger is None:
        logger = runtime.logger if runtime is not None else ExecutorLogger()
    if runtime is None:
        runtime = create_runtime(logger=logger, **runtime_kwargs)

    return ExecutionOrchestrator(runtime, policy=policy, registry=registry, logger=logger)
