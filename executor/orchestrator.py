"""Execution orchestrator: runs one piece of code in a fresh container.

A session walks a fixed state machine:

    Staging -> ImageCheck -> Creating -> Attaching -> Starting -> Running
        -> {Completed | TimedOut | Failed} -> TearingDown -> Done

Whatever branch ends the session, teardown removes the container (if one
was created) and deletes the staging directory. No exception escapes run();
every failure is turned into an ExecutionResult plus at least one system
notice.

Runtime calls are blocking and are moved onto worker threads with
asyncio.to_thread so output keeps flowing while the session waits.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from executor.core.base import AttachedStream, ContainerRuntime
from executor.core.errors import (
    ErrorKind,
    ExecutionTimeoutError,
    ExecutorError,
    UnknownLanguageError,
)
from executor.core.logging import ExecutorLogger
from executor.core.models import (
    Channel,
    ContainerSpec,
    ExecutionPolicy,
    ExecutionResult,
    HealthStatus,
    LanguageInfo,
    OutputEvent,
)
from executor.demux import FrameDemultiplexer
from executor.gate import ExecutionGate
from executor.languages import LanguageRegistry, LanguageSpec, default_registry, normalize_dependencies
from executor.staging import StagingDirectory, new_session_id

NOTICE_PREFIX = "[executor] "
FAILURE_EXIT_CODE = 1

LineCallback = Callable[[str, Channel], Any]


@dataclass
class ExecutionSession:
    """Per-run state; never outlives its run and owns no cross-run state."""

    session_id: str
    language: LanguageSpec
    staging: StagingDirectory
    deadline: float
    container_id: str | None = None
    timed_out: bool = False


class _LineSink:
    """Deliver lines to the caller's callback, isolating callback failures."""

    def __init__(self, on_line: LineCallback | None, logger: ExecutorLogger) -> None:
        self._on_line = on_line
        self._logger = logger
        self.session_id: str | None = None

    def emit(self, text: str, channel: Channel) -> None:
        if self._on_line is None:
            return
        try:
            self._on_line(text, channel)
        except Exception as e:
            self._logger.log_callback_error(str(e), session_id=self.session_id)

    def notice(self, message: str) -> None:
        self.emit(f"{NOTICE_PREFIX}{message}", Channel.SYSTEM)

    def events(self, events: Sequence[OutputEvent]) -> None:
        for event in events:
            self.emit(event.text, event.channel)


class ExecutionOrchestrator:
    """Run user code in one ephemeral container at a time.

    Attributes:
        runtime: Container engine client
        policy: Resource envelope applied to every container
        registry: Supported languages
        logger: ExecutorLogger for structured events
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        policy: ExecutionPolicy | None = None,
        registry: LanguageRegistry | None = None,
        logger: ExecutorLogger | None = None,
        gate: ExecutionGate | None = None,
    ) -> None:
        self.runtime = runtime
        self.policy = policy if policy is not None else ExecutionPolicy()
        self.registry = registry if registry is not None else default_registry
        self.logger = logger if logger is not None else runtime.logger
        self._gate = gate if gate is not None else ExecutionGate()

    @property
    def gate(self) -> ExecutionGate:
        return self._gate

    @property
    def is_running(self) -> bool:
        """Whether a new run would currently be rejected."""
        return self._gate.is_busy

    def list_languages(self) -> list[LanguageInfo]:
        return self.registry.list()

    async def check_runtime_health(self) -> HealthStatus:
        """Ping the container engine without touching any session state."""
        status = await asyncio.to_thread(self.runtime.check_health)
        self.logger.log_runtime_health(status)
        return status

    async def run(
        self,
        code: str,
        language_id: str,
        dependencies: str | Sequence[str] | None = None,
        on_line: LineCallback | None = None,
    ) -> ExecutionResult:
        """Execute code and report every line through on_line.

        A call made while another session is active returns a rejection
        result immediately, before anything is staged.

        Args:
            code: Source code, written verbatim
            language_id: Registry key of the language
            dependencies: Raw dependency text or already split package names
            on_line: Called as on_line(text, channel) for every output line

        Returns:
            ExecutionResult describing the terminal outcome
        """
        if not self._gate.try_acquire():
            self.logger.log_execution_rejected(language_id)
            return ExecutionResult.rejection()
        try:
            return await self._run_session(code, language_id, dependencies, _LineSink(on_line, self.logger))
        finally:
            self._gate.release()

    def stream(
        self,
        code: str,
        language_id: str,
        dependencies: str | Sequence[str] | None = None,
    ) -> LiveExecution:
        """Start a run and return its output as an async iterator.

        Must be called with a running event loop.
        """
        return LiveExecution(self, code, language_id, dependencies)

    async def _run_session(
        self,
        code: str,
        language_id: str,
        dependencies: str | Sequence[str] | None,
        sink: _LineSink,
    ) -> ExecutionResult:
        started = time.perf_counter()

        spec = self.registry.get(language_id)
        if spec is None:
            error = UnknownLanguageError(language_id)
            sink.notice(str(error))
            result = ExecutionResult(
                exit_code=FAILURE_EXIT_CODE,
                error=str(error),
                error_kind=error.kind,
                language=language_id,
                duration_ms=_elapsed_ms(started),
            )
            self.logger.log_execution_complete(result)
            return result

        packages = normalize_dependencies(dependencies)
        session_id = new_session_id()
        sink.session_id = session_id
        loop = asyncio.get_running_loop()
        session = ExecutionSession(
            session_id=session_id,
            language=spec,
            staging=StagingDirectory(session_id, root=self.policy.staging_root, logger=self.logger),
            deadline=loop.time() + self.policy.timeout_seconds,
        )
        self.logger.log_execution_start(spec.id, self.policy, session_id, dependencies=packages)

        exit_code = FAILURE_EXIT_CODE
        error_message: str | None = None
        error_kind: ErrorKind | None = None
        stream: AttachedStream | None = None
        pump: asyncio.Task[None] | None = None

        try:
            session.staging.create()
            session.staging.write_source(spec.source_file_name, code)
            sink.notice(f"Language: {spec.label}")
            if packages:
                sink.notice(f"Installing: {', '.join(packages)}")

            await asyncio.to_thread(self.runtime.inspect_image, self.policy.image)

            command = spec.build_command(packages, self.policy.input_mount_path)
            container_spec = ContainerSpec.from_policy(self.policy, command, session.staging.path)
            session.container_id = await asyncio.to_thread(self.runtime.create_container, container_spec)
            self.logger.log_container_event("created", session.container_id, session_id, command=command)
            sink.notice("Container created")

            # Attach before start so the earliest output is not lost.
            stream = await asyncio.to_thread(self.runtime.attach, session.container_id)
            pump = asyncio.create_task(self._pump(stream, sink, session_id))

            await asyncio.to_thread(self.runtime.start, session.container_id)
            self.logger.log_container_event("started", session.container_id, session_id)
            sink.notice("Execution started")

            exit_code = await self._await_exit(session)
            await self._drain(pump)

            if exit_code == 0:
                sink.notice("Completed successfully")
            else:
                sink.notice(f"Exited with code {exit_code}")

        except ExecutionTimeoutError as e:
            exit_code = FAILURE_EXIT_CODE
            error_message, error_kind = str(e), e.kind
            sink.notice(f"TIMEOUT: {e}")
        except ExecutorError as e:
            exit_code = FAILURE_EXIT_CODE
            error_message, error_kind = str(e), e.kind
            sink.notice(f"ERROR: {e}")
        except Exception as e:
            exit_code = FAILURE_EXIT_CODE
            error_message, error_kind = str(e) or type(e).__name__, ErrorKind.RUNTIME_ERROR
            sink.notice(f"ERROR: {error_message}")
        finally:
            await self._teardown(session, stream, pump, sink)

        result = ExecutionResult(
            success=exit_code == 0 and error_kind is None,
            exit_code=exit_code,
            timed_out=session.timed_out,
            error=error_message,
            error_kind=error_kind,
            session_id=session_id,
            language=spec.id,
            duration_ms=_elapsed_ms(started),
            container_created=session.container_id is not None,
        )
        self.logger.log_execution_complete(result)
        return result

    async def _pump(self, stream: AttachedStream, sink: _LineSink, session_id: str) -> None:
        """Forward demultiplexed lines until the attach stream ends."""
        demux = FrameDemultiplexer()
        try:
            while True:
                chunk = await asyncio.to_thread(stream.read_chunk)
                if chunk is None:
                    break
                sink.events(demux.feed(chunk))
        except (OSError, ExecutorError) as e:
            if not stream.closed:
                self.logger.log_stream_error(str(e), session_id=session_id)
        sink.events(demux.flush())

    async def _await_exit(self, session: ExecutionSession) -> int:
        """Race container exit against the session deadline.

        The loser is cancelled; the timer is always released. On timeout the
        container is killed and ExecutionTimeoutError is raised.
        """
        assert session.container_id is not None
        loop = asyncio.get_running_loop()
        waiter = asyncio.create_task(asyncio.to_thread(self.runtime.wait, session.container_id))
        timer = asyncio.create_task(asyncio.sleep(max(session.deadline - loop.time(), 0)))
        try:
            done, _ = await asyncio.wait({waiter, timer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            timer.cancel()

        if waiter in done:
            return waiter.result()

        session.timed_out = True
        waiter.cancel()
        self.logger.log_execution_timeout(session.session_id, session.container_id, self.policy.timeout_seconds)
        try:
            await asyncio.to_thread(self.runtime.kill, session.container_id)
        except Exception as e:
            self.logger.log_teardown_error("kill", str(e), session_id=session.session_id)
        else:
            self.logger.log_container_event("killed", session.container_id, session.session_id)
        raise ExecutionTimeoutError(self.policy.timeout_seconds)

    async def _drain(self, pump: asyncio.Task[None]) -> None:
        """Give the pump a bounded window to deliver output already produced."""
        await asyncio.wait({pump}, timeout=self.policy.drain_timeout_seconds)

    async def _teardown(
        self,
        session: ExecutionSession,
        stream: AttachedStream | None,
        pump: asyncio.Task[None] | None,
        sink: _LineSink,
    ) -> None:
        if pump is not None and not pump.done():
            pump.cancel()
        if stream is not None:
            try:
                stream.close()
            except OSError as e:
                self.logger.log_teardown_error("stream", str(e), session_id=session.session_id)
        if pump is not None:
            await asyncio.gather(pump, return_exceptions=True)

        if session.container_id is not None:
            try:
                await asyncio.to_thread(self.runtime.remove, session.container_id, True)
            except Exception as e:
                self.logger.log_teardown_error("remove", str(e), session_id=session.session_id)
            else:
                self.logger.log_container_event("removed", session.container_id, session.session_id)
            sink.notice("Container destroyed")

        session.staging.cleanup()


class LiveExecution:
    """Lazy stream of OutputEvents for one run.

    Iterate with ``async for`` to receive lines as soon as they are complete;
    await result() for the terminal ExecutionResult. Iteration ends when the
    run ends.
    """

    def __init__(
        self,
        orchestrator: ExecutionOrchestrator,
        code: str,
        language_id: str,
        dependencies: str | Sequence[str] | None = None,
    ) -> None:
        self._queue: asyncio.Queue[OutputEvent | None] = asyncio.Queue()
        self._task = asyncio.ensure_future(
            orchestrator.run(code, language_id, dependencies, on_line=self._push)
        )
        self._task.add_done_callback(lambda _: self._queue.put_nowait(None))
        self._finished = False

    def _push(self, text: str, channel: Channel) -> None:
        self._queue.put_nowait(OutputEvent(text=text, channel=channel))

    def __aiter__(self) -> AsyncIterator[OutputEvent]:
        return self

    async def __anext__(self) -> OutputEvent:
        if self._finished:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            self._finished = True
            raise StopAsyncIteration
        return event

    async def result(self) -> ExecutionResult:
        """Wait for the run to finish and return its result."""
        return await self._task

    def done(self) -> bool:
        return self._task.done()


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)
