"""Test doubles shared across the test suite."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from executor.core.base import AttachedStream, ContainerRuntime
from executor.core.errors import ImageNotFoundError, RuntimeUnreachableError
from executor.core.models import Channel, ContainerSpec
from executor.demux import encode_frame


def stdout_frame(text: str) -> bytes:
    return encode_frame(1, text.encode("utf-8"))


def stderr_frame(text: str) -> bytes:
    return encode_frame(2, text.encode("utf-8"))


class FakeRuntime(ContainerRuntime):
    """In-memory ContainerRuntime that replays canned output.

    Output chunks are only released once start() has been called, like a
    real container. With hang=True the container never exits on its own:
    wait() blocks until kill(), remove() or release() is called.
    """

    name = "fake"

    def __init__(
        self,
        chunks: list[bytes] | None = None,
        exit_code: int = 0,
        hang: bool = False,
        missing_image: bool = False,
        unreachable: bool = False,
        fail_on: dict[str, Exception] | None = None,
    ) -> None:
        super().__init__()
        self.chunks = list(chunks or [])
        self.exit_code = exit_code
        self.hang = hang
        self.missing_image = missing_image
        self.unreachable = unreachable
        self.fail_on = fail_on or {}
        self.calls: list[str] = []
        self.specs: list[ContainerSpec] = []
        self.staged_files: dict[str, str] = {}
        self._started = threading.Event()
        self._released = threading.Event()

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise self.fail_on[name]

    def release(self) -> None:
        """Let a hanging container exit with exit_code."""
        self._started.set()
        self._released.set()

    def ping(self) -> None:
        self.calls.append("ping")
        if self.unreachable:
            raise RuntimeUnreachableError("connect ENOENT /var/run/docker.sock")

    def inspect_image(self, name: str) -> dict[str, Any]:
        self._record("inspect_image")
        if self.missing_image:
            raise ImageNotFoundError(name)
        return {"Id": "sha256:fake", "RepoTags": [name]}

    def create_container(self, spec: ContainerSpec) -> str:
        self._record("create")
        self.specs.append(spec)
        staging = Path(spec.bind_source)
        self.staged_files = {p.name: p.read_text(encoding="utf-8") for p in staging.iterdir()}
        return f"fake-{len(self.specs)}"

    def attach(self, container_id: str) -> AttachedStream:
        self._record("attach")
        return AttachedStream(self._output(), close=self.release)

    def _output(self) -> Iterator[bytes]:
        self._started.wait(5)
        yield from self.chunks
        if self.hang:
            self._released.wait(5)

    def start(self, container_id: str) -> None:
        self._record("start")
        self._started.set()

    def wait(self, container_id: str) -> int:
        self._record("wait")
        if self.hang:
            self._released.wait(5)
            return 137
        return self.exit_code

    def kill(self, container_id: str) -> None:
        self.calls.append("kill")
        self.release()

    def remove(self, container_id: str, force: bool = True) -> None:
        self.release()
        self._record("remove")


class LineRecorder:
    """on_line callback that keeps every (text, channel) pair."""

    def __init__(self) -> None:
        self.lines: list[tuple[str, Channel]] = []

    def __call__(self, text: str, channel: Channel) -> None:
        self.lines.append((text, channel))

    def channel(self, channel: Channel) -> list[str]:
        return [text for text, ch in self.lines if ch is channel]

    @property
    def notices(self) -> list[str]:
        return [text.removeprefix("[executor] ") for text in self.channel(Channel.SYSTEM)]
