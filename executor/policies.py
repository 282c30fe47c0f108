"""Policy management for container execution.

Provides the default resource envelope and TOML-based configuration loading
for controlling container memory, CPU, process count, networking, user and
the session deadline.
"""

from __future__ import annotations

import os
import tomllib
from typing import Any

from pydantic import ValidationError

from executor.core.errors import PolicyValidationError
from executor.core.models import MEBIBYTE, ExecutionPolicy

DEFAULT_POLICY: dict[str, Any] = {
    # Shared image with every toolchain; built separately, never by the executor
    "image": "executor-base:latest",

    # Wall-clock deadline; the container is killed when it elapses
    "timeout_seconds": 60.0,

    # Applied to memory and memory+swap alike, so there is no swap headroom
    "memory_bytes": 512 * MEBIBYTE,

    # One full core
    "cpu_quota": 100_000,
    "cpu_period": 100_000,

    # Java, npm and gem installs spawn many processes
    "pids_limit": 128,

    # Package managers need the network
    "network_mode": "bridge",

    "user": "runner",

    # Source is mounted read-only and copied into the writable working dir
    "input_mount_path": "/input",
    "working_dir": "/workspace",
}


def load_policy(path: str = "config/executor.toml") -> ExecutionPolicy:
    """Load and merge user policy configuration with the default envelope.

    Performs a shallow merge of the TOML settings over DEFAULT_POLICY. Keys
    may sit at the top level or under a [policy] table.

    Args:
        path: Path to the policy TOML file. If the file doesn't exist, returns
              ExecutionPolicy with defaults.

    Returns:
        ExecutionPolicy: Validated policy model with merged configuration.

    Raises:
        PolicyValidationError: If the policy contains invalid values (non-positive
                               limits, root user, overlapping paths, etc.)
        tomllib.TOMLDecodeError: If the TOML file is malformed
        OSError: If the file exists but cannot be read
    """
    if not os.path.exists(path):
        return ExecutionPolicy(**DEFAULT_POLICY)

    with open(path, "rb") as f:
        data = tomllib.load(f)

    overrides = data.get("policy", data)
    if not isinstance(overrides, dict):
        raise PolicyValidationError("Policy validation failed: [policy] must be a table")

    policy = DEFAULT_POLICY | overrides

    try:
        return ExecutionPolicy(**policy)
    except PolicyValidationError:
        raise
    except ValidationError as e:
        raise PolicyValidationError(f"Policy validation failed: {e}") from e
