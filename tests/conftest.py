"""Shared pytest fixtures for all tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from helpers import FakeRuntime, LineRecorder, stdout_frame

from executor.core.models import ExecutionPolicy
from executor.orchestrator import ExecutionOrchestrator


@pytest.fixture
def staging_root(tmp_path: Path) -> Path:
    return tmp_path / "staging"


@pytest.fixture
def policy(staging_root: Path) -> ExecutionPolicy:
    """Default policy with staging directories kept under tmp_path."""
    return ExecutionPolicy(staging_root=str(staging_root), drain_timeout_seconds=2.0)


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime(chunks=[stdout_frame("hi\n")])


@pytest.fixture
def orchestrator(fake_runtime: FakeRuntime, policy: ExecutionPolicy) -> ExecutionOrchestrator:
    return ExecutionOrchestrator(fake_runtime, policy=policy)


@pytest.fixture
def recorder() -> LineRecorder:
    return LineRecorder()
