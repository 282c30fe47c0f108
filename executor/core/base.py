"""Abstract base class for container runtime client implementations.

Provides ContainerRuntime ABC that defines the capability surface the
orchestrator consumes from a container engine (ping, image inspection,
create/attach/start/wait/kill/remove). Implementations are synchronous;
the orchestrator moves blocking calls onto worker threads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from typing import TYPE_CHECKING, Any

from executor.core.errors import RuntimeUnreachableError
from executor.core.models import HealthStatus

if TYPE_CHECKING:
    from executor.core.logging import ExecutorLogger
    from executor.core.models import ContainerSpec


class AttachedStream:
    """Raw multiplexed output of an attached container.

    Iterating yields byte chunks exactly as the engine delivers them; chunk
    boundaries carry no meaning. close() is idempotent and releases the
    underlying connection.
    """

    def __init__(self, chunks: Iterable[bytes], close: Callable[[], None] | None = None) -> None:
        self._chunks = iter(chunks)
        self._close = close
        self.closed = False

    def __iter__(self) -> Iterator[bytes]:
        return self

    def __next__(self) -> bytes:
        if self.closed:
            raise StopIteration
        return next(self._chunks)

    def read_chunk(self) -> bytes | None:
        """Return the next chunk, or None once the stream has ended."""
        try:
            return next(self)
        except StopIteration:
            return None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._close is not None:
            self._close()


class ContainerRuntime(ABC):
    """Abstract base class for container engine clients.

    Defines the contract that every runtime backend must implement. kill()
    and remove() are best-effort: implementations must swallow their own
    failures because cleanup must never block reporting a result.

    Attributes:
        name: Short backend identifier used in logs and health output
        logger: ExecutorLogger for structured event logging
    """

    name: str = "runtime"

    def __init__(self, logger: ExecutorLogger | None = None) -> None:
        """Initialize ContainerRuntime with an optional logger.

        Args:
            logger: Optional ExecutorLogger for structured events.
                    If None, creates default logger named 'executor'.
        """
        if logger is None:
            # Import here to avoid circular dependency
            from executor.core.logging import ExecutorLogger
            self.logger = ExecutorLogger()
        else:
            self.logger = logger

    @abstractmethod
    def ping(self) -> None:
        """Check that the engine answers.

        Raises:
            RuntimeUnreachableError: If the engine cannot be contacted
        """
        pass

    @abstractmethod
    def inspect_image(self, name: str) -> dict[str, Any]:
        """Return image metadata.

        Raises:
            ImageNotFoundError: If no image with that name exists
            RuntimeUnreachableError: If the engine cannot be contacted
            ContainerRuntimeError: On any other engine failure
        """
        pass

    @abstractmethod
    def create_container(self, spec: ContainerSpec) -> str:
        """Create (but do not start) a container and return its id.

        Raises:
            ContainerRuntimeError: If the engine rejects the spec
        """
        pass

    @abstractmethod
    def attach(self, container_id: str) -> AttachedStream:
        """Attach to the combined stdout/stderr stream of a created container.

        Must be called before start() so the earliest output is not lost.

        Raises:
            ContainerRuntimeError: If the attach request fails
        """
        pass

    @abstractmethod
    def start(self, container_id: str) -> None:
        """Start a created container.

        Raises:
            ContainerRuntimeError: If the engine refuses to start it
        """
        pass

    @abstractmethod
    def wait(self, container_id: str) -> int:
        """Block until the container stops and return its exit status.

        Raises:
            ContainerRuntimeError: If the wait request fails
        """
        pass

    @abstractmethod
    def kill(self, container_id: str) -> None:
        """Forcibly stop a running container. Never raises."""
        pass

    @abstractmethod
    def remove(self, container_id: str, force: bool = True) -> None:
        """Remove a container, killing it first when force is set. Never raises."""
        pass

    def check_health(self) -> HealthStatus:
        """Ping the engine and report the outcome as a HealthStatus."""
        try:
            self.ping()
        except RuntimeUnreachableError as e:
            return HealthStatus(ok=False, error=str(e))
        return HealthStatus(ok=True, detail=f"{self.name} runtime reachable")
