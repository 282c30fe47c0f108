"""
Bridge Configuration.

Configuration models for the HTTP bridge and the MCP server.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_BRIDGE_PORT = 3876
DEFAULT_MAX_REQUEST_BYTES = 5 * 1024 * 1024


def _get_package_version() -> str:
    """Get package version from metadata."""
    try:
        import importlib.metadata

        return importlib.metadata.version("container-executor")
    except importlib.metadata.PackageNotFoundError:
        return "0.1.0"


def default_bridge_port() -> int:
    """Port from the BRIDGE_PORT environment variable, else 3876."""
    raw = os.environ.get("BRIDGE_PORT", "")
    try:
        port = int(raw)
    except ValueError:
        return DEFAULT_BRIDGE_PORT
    return port if 0 < port < 65536 else DEFAULT_BRIDGE_PORT


class ServerConfig(BaseModel):
    """Server identification and metadata."""

    name: str = "container-executor"
    version: str = Field(default_factory=_get_package_version)
    instructions: str = (
        "This server runs short programs inside ephemeral Docker containers. "
        "Use list_languages to see the supported languages, check_runtime to "
        "confirm the container engine is reachable, and execute_code to run a "
        "single source file.\n\n"
        "Languages: python, javascript, go, ruby, java, c, cpp.\n"
        "Dependencies: pip packages for python, npm packages for javascript, "
        "gems for ruby; they are installed fresh on every run.\n"
        "Java code must declare its public class as Main.\n"
        "Each run gets 60 seconds, 512 MiB of memory and one CPU core; "
        "only one run executes at a time."
    )


class HTTPConfig(BaseModel):
    """Configuration for the HTTP bridge."""

    host: str = "127.0.0.1"
    port: int = Field(default_factory=default_bridge_port, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    max_request_bytes: int = Field(default=DEFAULT_MAX_REQUEST_BYTES, ge=1)
    request_timeout_seconds: int = Field(default=120, ge=1)
    probe_timeout_seconds: float = Field(
        default=1.2,
        gt=0,
        description="Timeout when checking whether a bridge already owns the port",
    )


class LoggingConfig(BaseModel):
    """Configuration for bridge logging."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    structured: bool = False


class BridgeConfig(BaseModel):
    """Main bridge configuration."""

    server: ServerConfig = ServerConfig()
    http: HTTPConfig = Field(default_factory=HTTPConfig)
    logging: LoggingConfig = LoggingConfig()
    policy_file: str | None = Field(
        default=None,
        description="Optional executor policy TOML (see executor.policies.load_policy)",
    )

    @classmethod
    def from_file(cls, path: Path | str) -> BridgeConfig:
        """Load configuration from TOML file."""
        import tomllib

        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        return cls.model_validate(data)
