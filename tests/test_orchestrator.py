"""Tests for executor.orchestrator module.

Drives ExecutionOrchestrator against an in-memory FakeRuntime to cover every
terminal outcome: success, non-zero exit, timeout, pre-start failures,
unknown languages and concurrency rejection.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from helpers import FakeRuntime, LineRecorder, stderr_frame, stdout_frame

from executor.core.errors import ContainerRuntimeError, ErrorKind
from executor.core.models import MEBIBYTE, Channel, ExecutionPolicy
from executor.demux import encode_frame
from executor.orchestrator import ExecutionOrchestrator, LiveExecution


def _staging_dirs(root: Path) -> list[Path]:
    return list(root.iterdir()) if root.exists() else []


async def _wait_for(predicate, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


class TestSuccessfulRun:
    """Test a program that exits normally."""

    @pytest.mark.asyncio
    async def test_python_hello(self, orchestrator, fake_runtime, recorder):
        result = await orchestrator.run('print("hi")', "python", "", on_line=recorder)

        assert result.success
        assert result.exit_code == 0
        assert not result.timed_out
        assert result.error is None
        assert result.container_created
        assert result.language == "python"
        assert recorder.channel(Channel.STDOUT) == ["hi"]
        assert recorder.notices == [
            "Language: Python",
            "Container created",
            "Execution started",
            "Completed successfully",
            "Container destroyed",
        ]

    @pytest.mark.asyncio
    async def test_program_output_precedes_final_notice(self, orchestrator, recorder):
        await orchestrator.run('print("hi")', "python", on_line=recorder)

        texts = [text for text, _ in recorder.lines]
        assert texts.index("hi") < texts.index("[executor] Completed successfully")

    @pytest.mark.asyncio
    async def test_runtime_call_order(self, orchestrator, fake_runtime):
        """The stream is attached before the container starts."""
        await orchestrator.run("x", "python")

        assert fake_runtime.calls[:5] == ["inspect_image", "create", "attach", "start", "wait"]
        assert fake_runtime.calls[-1] == "remove"

    @pytest.mark.asyncio
    async def test_source_is_staged_under_fixed_name(self, orchestrator, fake_runtime):
        code = "public class Main { public static void main(String[] a) {} }"
        await orchestrator.run(code, "java")

        assert fake_runtime.staged_files == {"Main.java": code}

    @pytest.mark.asyncio
    async def test_container_spec_envelope(self, orchestrator, fake_runtime, staging_root):
        await orchestrator.run("x", "c")

        spec = fake_runtime.specs[0]
        assert spec.command == "cp /input/script.c . && gcc script.c -o prog -lm && ./prog"
        assert spec.bind_target == "/input"
        assert spec.read_only
        assert Path(spec.bind_source).parent == staging_root.resolve()
        assert spec.working_dir == "/workspace"
        assert spec.memory_bytes == spec.memory_swap_bytes == 512 * MEBIBYTE
        assert spec.cpu_quota == spec.cpu_period == 100_000
        assert spec.pids_limit == 128
        assert spec.network_mode == "bridge"
        assert spec.user == "runner"

    @pytest.mark.asyncio
    async def test_dependencies_announced_and_installed(self, orchestrator, fake_runtime, recorder):
        await orchestrator.run("import numpy", "python", " numpy, requests ", on_line=recorder)

        assert "Installing: numpy, requests" in recorder.notices
        assert recorder.notices.index("Language: Python") < recorder.notices.index("Installing: numpy, requests")
        assert 'pip install --quiet "numpy" "requests"' in fake_runtime.specs[0].command

    @pytest.mark.asyncio
    async def test_dependency_sequence_accepted(self, orchestrator, fake_runtime):
        await orchestrator.run("x", "javascript", ["lodash", "dayjs"])

        assert "npm install --silent lodash dayjs" in fake_runtime.specs[0].command

    @pytest.mark.asyncio
    async def test_stderr_and_fragmented_frames(self, policy, recorder):
        stream = stdout_frame("one\ntw") + stderr_frame("warn\n") + stdout_frame("o\n")
        chunks = [stream[i:i + 3] for i in range(0, len(stream), 3)]
        runtime = FakeRuntime(chunks=chunks)

        await ExecutionOrchestrator(runtime, policy=policy).run("x", "ruby", on_line=recorder)

        assert recorder.channel(Channel.STDOUT) == ["one", "two"]
        assert recorder.channel(Channel.STDERR) == ["warn"]

    @pytest.mark.asyncio
    async def test_unterminated_last_line_delivered(self, policy, recorder):
        runtime = FakeRuntime(chunks=[encode_frame(1, b"no newline")])

        await ExecutionOrchestrator(runtime, policy=policy).run("x", "go", on_line=recorder)

        assert recorder.channel(Channel.STDOUT) == ["no newline"]


class TestNonZeroExit:
    """Test a program that exits with a failure status."""

    @pytest.mark.asyncio
    async def test_exit_code_reported(self, policy, recorder):
        runtime = FakeRuntime(chunks=[stderr_frame("Main.java:1: error: class Foo is public\n")], exit_code=1)

        result = await ExecutionOrchestrator(runtime, policy=policy).run(
            "public class Foo {}", "java", on_line=recorder
        )

        assert not result.success
        assert result.exit_code == 1
        assert result.error is None
        assert result.error_kind is None
        assert recorder.channel(Channel.STDOUT) == []
        assert "Exited with code 1" in recorder.notices
        assert "Completed successfully" not in recorder.notices

    @pytest.mark.asyncio
    async def test_arbitrary_exit_code_passed_through(self, policy, recorder):
        runtime = FakeRuntime(exit_code=42)

        result = await ExecutionOrchestrator(runtime, policy=policy).run("x", "cpp", on_line=recorder)

        assert result.exit_code == 42
        assert "Exited with code 42" in recorder.notices


class TestTimeout:
    """Test the exit-versus-deadline race."""

    @pytest.mark.asyncio
    async def test_timeout_kills_container(self, staging_root, recorder):
        policy = ExecutionPolicy(staging_root=str(staging_root), timeout_seconds=0.2)
        runtime = FakeRuntime(chunks=[stdout_frame("working\n")], hang=True)

        result = await ExecutionOrchestrator(runtime, policy=policy).run(
            "while True: pass", "python", on_line=recorder
        )

        assert result.timed_out
        assert result.exit_code == 1
        assert result.error_kind is ErrorKind.TIMEOUT
        assert "kill" in runtime.calls
        assert runtime.calls[-1] == "remove"
        assert "TIMEOUT: Execution exceeded 0.2s timeout" in recorder.notices
        assert not any(n.startswith("Exited with code") for n in recorder.notices)
        assert "Completed successfully" not in recorder.notices
        assert recorder.notices[-1] == "Container destroyed"
        assert _staging_dirs(staging_root) == []

    @pytest.mark.asyncio
    async def test_fast_exit_beats_deadline(self, staging_root):
        policy = ExecutionPolicy(staging_root=str(staging_root), timeout_seconds=5)
        runtime = FakeRuntime()

        result = await ExecutionOrchestrator(runtime, policy=policy).run("x", "python")

        assert not result.timed_out
        assert "kill" not in runtime.calls


class TestFailures:
    """Test failures before or during container start."""

    @pytest.mark.asyncio
    async def test_unknown_language(self, orchestrator, fake_runtime, staging_root, recorder):
        result = await orchestrator.run("x", "cobol", on_line=recorder)

        assert result.exit_code == 1
        assert result.error_kind is ErrorKind.UNKNOWN_LANGUAGE
        assert recorder.lines == [("[executor] Unknown language: cobol", Channel.SYSTEM)]
        assert fake_runtime.calls == []
        assert _staging_dirs(staging_root) == []

    @pytest.mark.asyncio
    async def test_image_missing(self, policy, staging_root, recorder):
        runtime = FakeRuntime(missing_image=True)

        result = await ExecutionOrchestrator(runtime, policy=policy).run("x", "python", on_line=recorder)

        assert result.exit_code == 1
        assert result.error_kind is ErrorKind.IMAGE_NOT_FOUND
        assert not result.container_created
        assert recorder.notices[-1] == (
            "ERROR: Base image 'executor-base:latest' not found. Build the base image first."
        )
        assert "Container destroyed" not in recorder.notices
        assert "create" not in runtime.calls
        assert _staging_dirs(staging_root) == []

    @pytest.mark.asyncio
    async def test_create_failure_message_passed_through(self, policy, staging_root, recorder):
        runtime = FakeRuntime(fail_on={"create": ContainerRuntimeError("no space left on device")})

        result = await ExecutionOrchestrator(runtime, policy=policy).run("x", "python", on_line=recorder)

        assert result.error_kind is ErrorKind.RUNTIME_ERROR
        assert "ERROR: no space left on device" in recorder.notices
        assert "Container destroyed" not in recorder.notices
        assert "remove" not in runtime.calls
        assert _staging_dirs(staging_root) == []

    @pytest.mark.asyncio
    async def test_start_failure_still_removes_container(self, policy, staging_root, recorder):
        runtime = FakeRuntime(fail_on={"start": ContainerRuntimeError("OCI runtime create failed")})

        result = await ExecutionOrchestrator(runtime, policy=policy).run("x", "go", on_line=recorder)

        assert result.exit_code == 1
        assert result.container_created
        assert "remove" in runtime.calls
        assert recorder.notices[-2:] == ["ERROR: OCI runtime create failed", "Container destroyed"]
        assert _staging_dirs(staging_root) == []

    @pytest.mark.asyncio
    async def test_remove_failure_is_swallowed(self, policy, recorder):
        runtime = FakeRuntime(fail_on={"remove": ContainerRuntimeError("removal in progress")})

        result = await ExecutionOrchestrator(runtime, policy=policy).run("x", "python", on_line=recorder)

        assert result.success
        assert recorder.notices[-1] == "Container destroyed"

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_result(self, policy, recorder):
        runtime = FakeRuntime(fail_on={"wait": RuntimeError("socket hang up")})

        result = await ExecutionOrchestrator(runtime, policy=policy).run("x", "python", on_line=recorder)

        assert result.exit_code == 1
        assert result.error == "socket hang up"
        assert result.error_kind is ErrorKind.RUNTIME_ERROR
        assert "ERROR: socket hang up" in recorder.notices

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "runtime_kwargs",
        [
            {},
            {"exit_code": 3},
            {"missing_image": True},
            {"fail_on": {"attach": ContainerRuntimeError("attach failed")}},
        ],
        ids=["success", "non-zero", "image-missing", "attach-error"],
    )
    async def test_staging_always_removed(self, policy, staging_root, runtime_kwargs):
        """Every terminal outcome leaves no staging directory behind."""
        runtime = FakeRuntime(**runtime_kwargs)

        result = await ExecutionOrchestrator(runtime, policy=policy).run("x", "python")

        assert _staging_dirs(staging_root) == []
        assert ("remove" in runtime.calls) == result.container_created


class TestCallbacks:
    """Test on_line isolation."""

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_abort(self, orchestrator):
        seen: list[str] = []

        def explode(text: str, channel: Channel) -> None:
            seen.append(text)
            raise RuntimeError("consumer went away")

        result = await orchestrator.run("x", "python", on_line=explode)

        assert result.success
        assert "hi" in seen
        assert seen[-1] == "[executor] Container destroyed"

    @pytest.mark.asyncio
    async def test_no_callback(self, orchestrator):
        result = await orchestrator.run("x", "python")
        assert result.success


class TestConcurrency:
    """Test the one-execution-at-a-time gate."""

    @pytest.mark.asyncio
    async def test_second_run_rejected_without_staging(self, policy, staging_root):
        runtime = FakeRuntime(hang=True)
        orchestrator = ExecutionOrchestrator(runtime, policy=policy)

        first = asyncio.create_task(orchestrator.run("x", "python"))
        await _wait_for(lambda: "wait" in runtime.calls)
        assert orchestrator.is_running
        assert len(_staging_dirs(staging_root)) == 1

        second_lines = LineRecorder()
        second = await orchestrator.run("y", "python", on_line=second_lines)

        assert second.rejected
        assert second.exit_code is None
        assert second.error == "An execution is already in progress"
        assert second_lines.lines == []
        assert len(_staging_dirs(staging_root)) == 1

        runtime.release()
        first_result = await first
        assert first_result.exit_code == 137
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_gate_released_after_failure(self, policy):
        runtime = FakeRuntime(missing_image=True)
        orchestrator = ExecutionOrchestrator(runtime, policy=policy)

        first = await orchestrator.run("x", "python")
        second = await orchestrator.run("x", "python")

        assert not first.rejected
        assert not second.rejected
        assert orchestrator.gate.active == 0


class TestLiveExecution:
    """Test the async-iterator form of run()."""

    @pytest.mark.asyncio
    async def test_stream_yields_events_then_result(self, orchestrator):
        live = orchestrator.stream('print("hi")', "python")
        assert isinstance(live, LiveExecution)

        events = [event async for event in live]
        result = await live.result()

        assert result.success
        assert live.done()
        assert [e.text for e in events if e.channel is Channel.STDOUT] == ["hi"]
        assert events[-1].text == "[executor] Container destroyed"

    @pytest.mark.asyncio
    async def test_stream_rejected_while_busy(self, policy):
        runtime = FakeRuntime(hang=True)
        orchestrator = ExecutionOrchestrator(runtime, policy=policy)
        first = asyncio.create_task(orchestrator.run("x", "python"))
        await _wait_for(lambda: "wait" in runtime.calls)

        live = orchestrator.stream("y", "python")
        events = [event async for event in live]
        result = await live.result()

        assert events == []
        assert result.rejected

        runtime.release()
        await first


class TestHealth:
    """Test check_runtime_health()."""

    @pytest.mark.asyncio
    async def test_reachable(self, orchestrator):
        status = await orchestrator.check_runtime_health()
        assert status.ok
        assert status.to_payload() == {"ok": True}

    @pytest.mark.asyncio
    async def test_unreachable(self, policy):
        runtime = FakeRuntime(unreachable=True)
        status = await ExecutionOrchestrator(runtime, policy=policy).check_runtime_health()

        assert not status.ok
        assert status.to_payload() == {"ok": False, "error": "connect ENOENT /var/run/docker.sock"}

    def test_list_languages(self, orchestrator):
        assert [info.id for info in orchestrator.list_languages()][:2] == ["python", "javascript"]
