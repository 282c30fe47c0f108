#!/usr/bin/env python3
"""
Bridge CLI for the container executor.

Command-line interface to run the HTTP bridge (default) or the MCP stdio
server in front of one shared execution orchestrator.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from pathlib import Path
from typing import Any

from executor.core.errors import PolicyValidationError
from executor.core.logging import configure_structlog

from .config import BridgeConfig, default_bridge_port
from .server import create_bridge_server
from .transports import HTTPTransportConfig, TransportType, port_available, probe_existing_bridge

try:
    import importlib.metadata

    __version__ = importlib.metadata.version("container-executor")
except importlib.metadata.PackageNotFoundError:
    __version__ = "unknown"


class ProtocolFilterIO:
    """
    A smart wrapper for stdout that directs JSON-RPC messages to real stdout
    and everything else (banners, logs) to stderr.

    This prevents FastMCP's banner and console logs from breaking the MCP protocol.
    """

    def __init__(self, original_stdout: Any, stderr: Any) -> None:
        self.original_stdout = original_stdout
        self.stderr = stderr
        self.buffer = original_stdout.buffer if hasattr(original_stdout, "buffer") else None

    def write(self, message: str) -> int:
        # MCP JSON-RPC messages are JSON objects starting with '{'
        try:
            if message.strip().startswith("{"):
                self.original_stdout.write(message)
                self.original_stdout.flush()
            else:
                self.stderr.write(message)
                self.stderr.flush()
        except ValueError:
            # Closed file during shutdown
            pass
        return len(message)

    def flush(self) -> None:
        with contextlib.suppress(ValueError):
            self.original_stdout.flush()
        with contextlib.suppress(ValueError):
            self.stderr.flush()

    def isatty(self) -> bool:
        return bool(self.original_stdout.isatty())

    def __getattr__(self, name: str) -> Any:
        return getattr(self.original_stdout, name)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="container-executor",
        description="Container executor bridge - run code in ephemeral Docker containers",
    )
    parser.add_argument(
        "--transport",
        choices=[t.value for t in TransportType],
        default=TransportType.HTTP.value,
        help="Serve the HTTP bridge or the MCP server over stdio (default: http)",
    )
    parser.add_argument("--host", default=None, help="HTTP bind address (default: 127.0.0.1)")
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help=f"HTTP port (default: $BRIDGE_PORT or {default_bridge_port()})",
    )
    parser.add_argument("--config", type=Path, default=None, metavar="FILE", help="Bridge configuration TOML")
    parser.add_argument("--policy", type=Path, default=None, metavar="FILE", help="Executor policy TOML")
    parser.add_argument("--json-logs", action="store_true", help="Emit structured logs as JSON")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)


def load_config(args: argparse.Namespace) -> BridgeConfig:
    """Build the bridge configuration from the config file and CLI overrides."""
    config = BridgeConfig.from_file(args.config) if args.config else BridgeConfig()
    updates: dict[str, Any] = {}
    if args.host is not None:
        updates["host"] = args.host
    if args.port is not None:
        updates["port"] = args.port
    if updates:
        config = config.model_copy(update={"http": config.http.model_copy(update=updates)})
    if args.policy is not None:
        config = config.model_copy(update={"policy_file": str(args.policy)})
    if args.json_logs:
        config = config.model_copy(update={"logging": config.logging.model_copy(update={"structured": True})})
    return config


def check_http_port(transport: HTTPTransportConfig) -> int | None:
    """Return an exit code when the port is taken, or None to start serving."""
    if port_available(transport.host, transport.port):
        return None
    if probe_existing_bridge(transport.host, transport.port, timeout=transport.probe_timeout_seconds):
        print(f"Bridge already running on {transport.base_url}", file=sys.stderr)
        return 0
    print(f"Port {transport.port} is already in use.", file=sys.stderr)
    print("Stop the other process or use a different BRIDGE_PORT.", file=sys.stderr)
    return 1


async def async_main(config: BridgeConfig, transport: TransportType) -> None:
    """Async main entry point."""
    server = create_bridge_server(config)

    if transport is TransportType.STDIO:
        print("Available tools: list_languages, check_runtime, execute_code", file=sys.stderr)
        await server.start_stdio()
    else:
        await server.start_http()


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    configure_structlog(
        level=logging.getLevelName(config.logging.level),
        use_json=config.logging.structured,
        stream=sys.stderr,
    )
    transport = TransportType(args.transport)

    print(f"Container Executor Bridge v{__version__}", file=sys.stderr)

    if transport is TransportType.HTTP:
        exit_code = check_http_port(HTTPTransportConfig.from_config(config.http))
        if exit_code is not None:
            sys.exit(exit_code)
    else:
        # Keep banners off the JSON-RPC channel
        sys.stdout = ProtocolFilterIO(sys.stdout, sys.stderr)

    try:
        asyncio.run(async_main(config, transport))
    except PolicyValidationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nGraceful shutdown complete.", file=sys.stderr)


if __name__ == "__main__":
    main()
