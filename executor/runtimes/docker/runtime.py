"""DockerRuntime: ContainerRuntime backed by the Docker Engine API.

Uses the low-level docker.APIClient so the attach stream can be read as raw
multiplexed frames; the high-level client hides the stream discriminator
that the demultiplexer needs.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any, TypeVar

import docker
from docker.errors import APIError, DockerException, NotFound
from docker.utils import kwargs_from_env
from docker.utils.socket import read as read_socket

from executor.core.base import AttachedStream, ContainerRuntime
from executor.core.errors import ContainerRuntimeError, ImageNotFoundError, RuntimeUnreachableError

if TYPE_CHECKING:
    from executor.core.logging import ExecutorLogger
    from executor.core.models import ContainerSpec

WINDOWS_PIPE = "npipe:////./pipe/docker_engine"
UNIX_SOCKET = "unix:///var/run/docker.sock"
READ_SIZE = 4096

T = TypeVar("T")


def default_base_url() -> str:
    """Engine address: DOCKER_HOST if set, else the platform's local socket."""
    env_host = os.environ.get("DOCKER_HOST")
    if env_host:
        return env_host
    return WINDOWS_PIPE if sys.platform == "win32" else UNIX_SOCKET


class DockerRuntime(ContainerRuntime):
    """Container runtime client for a local or remote Docker Engine.

    The API client is created on first use so constructing a DockerRuntime
    never touches the engine.

    Attributes:
        base_url: Engine address (unix://, npipe:// or tcp://)
        timeout: Per-request timeout in seconds for non-streaming calls
    """

    name = "docker"

    def __init__(
        self,
        base_url: str | None = None,
        timeout: int = 60,
        client: docker.APIClient | None = None,
        logger: ExecutorLogger | None = None,
    ) -> None:
        super().__init__(logger)
        self.base_url = base_url or default_base_url()
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> docker.APIClient:
        if self._client is None:
            try:
                kwargs = kwargs_from_env()
                kwargs["base_url"] = self.base_url
                self._client = docker.APIClient(version="auto", timeout=self.timeout, **kwargs)
            except (DockerException, OSError) as e:
                raise RuntimeUnreachableError(f"Cannot connect to Docker at {self.base_url}: {e}") from e
        return self._client

    def _call(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Invoke an API method, translating engine errors into executor errors."""
        try:
            return operation(*args, **kwargs)
        except APIError as e:
            raise ContainerRuntimeError(str(e.explanation or e)) from e
        except (DockerException, OSError) as e:
            raise RuntimeUnreachableError(f"Cannot connect to Docker at {self.base_url}: {e}") from e

    def ping(self) -> None:
        try:
            self._call(self.client.ping)
        except ContainerRuntimeError as e:
            raise RuntimeUnreachableError(str(e)) from e

    def inspect_image(self, name: str) -> dict[str, Any]:
        try:
            return self.client.inspect_image(name)
        except NotFound as e:
            raise ImageNotFoundError(name) from e
        except APIError as e:
            raise ContainerRuntimeError(str(e.explanation or e)) from e
        except (DockerException, OSError) as e:
            raise RuntimeUnreachableError(f"Cannot connect to Docker at {self.base_url}: {e}") from e

    def create_container(self, spec: ContainerSpec) -> str:
        client = self.client
        host_config = client.create_host_config(
            binds={
                spec.bind_source: {
                    "bind": spec.bind_target,
                    "mode": "ro" if spec.read_only else "rw",
                }
            },
            mem_limit=spec.memory_bytes,
            memswap_limit=spec.memory_swap_bytes,
            cpu_period=spec.cpu_period,
            cpu_quota=spec.cpu_quota,
            pids_limit=spec.pids_limit,
            network_mode=spec.network_mode,
            auto_remove=False,
        )
        response = self._call(
            client.create_container,
            image=spec.image,
            command=["sh", "-c", spec.command],
            working_dir=spec.working_dir,
            user=spec.user,
            host_config=host_config,
            tty=False,
            stdin_open=False,
        )
        return response["Id"]

    def attach(self, container_id: str) -> AttachedStream:
        sock = self._call(
            self.client.attach_socket,
            container_id,
            params={"stdout": 1, "stderr": 1, "stream": 1},
        )
        return AttachedStream(_iter_socket(sock), close=lambda: _close_socket(sock))

    def start(self, container_id: str) -> None:
        self._call(self.client.start, container_id)

    def wait(self, container_id: str) -> int:
        response = self._call(self.client.wait, container_id)
        status = response.get("StatusCode")
        return 1 if status is None else int(status)

    def kill(self, container_id: str) -> None:
        try:
            self._call(self.client.kill, container_id)
        except (ContainerRuntimeError, RuntimeUnreachableError) as e:
            # Already exited containers reject kill
            self.logger.log_teardown_error("kill", str(e))

    def remove(self, container_id: str, force: bool = True) -> None:
        try:
            self._call(self.client.remove_container, container_id, force=force)
        except (ContainerRuntimeError, RuntimeUnreachableError) as e:
            self.logger.log_teardown_error("remove", str(e))


def _iter_socket(sock: Any) -> Iterator[bytes]:
    while True:
        data = read_socket(sock, READ_SIZE)
        if data is None:
            continue
        if not data:
            return
        yield data


def _close_socket(sock: Any) -> None:
    raw = getattr(sock, "_sock", None)
    sock.close()
    if raw is not None:
        raw.close()
