"""
MCP Server for the container executor.

This module implements a Model Context Protocol (MCP) server that exposes
the executor to MCP clients: listing languages, checking the container
engine and running code.
"""

from __future__ import annotations

import logging
from typing import Any

from fastmcp import FastMCP
from pydantic import BaseModel

from executor.core.factory import create_orchestrator
from executor.core.models import Channel
from executor.languages import normalize_dependencies
from executor.orchestrator import ExecutionOrchestrator

from .config import BridgeConfig
from .http import create_http_app, serve_http
from .transports import HTTPTransportConfig


class BridgeToolResult(BaseModel):
    """Result from an MCP tool execution."""

    content: str
    structured_content: dict[str, Any] | None = None
    execution_time_ms: float | None = None
    success: bool = True


class BridgeServer:
    """
    MCP server for container code execution.

    Tools are plain bound methods registered with FastMCP, so they can be
    called directly as well as over the protocol.
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        orchestrator: ExecutionOrchestrator | None = None,
    ):
        self.config = config or BridgeConfig()
        self.orchestrator = orchestrator or create_orchestrator()
        self.logger = self.orchestrator.logger

        self.app = FastMCP(
            name=self.config.server.name,
            version=self.config.server.version,
            instructions=self.config.server.instructions,
        )

        self._register_tools()

        self.logger._emit(logging.INFO, "MCP server initialized", config=self.config.model_dump())

    def _register_tools(self) -> None:
        """Register all MCP tools."""
        self.app.tool(
            self.list_languages,
            name="list_languages",
            description="List the supported languages with their dependency hints",
        )
        self.app.tool(
            self.check_runtime,
            name="check_runtime",
            description="Check whether the Docker engine is reachable",
        )
        self.app.tool(
            self.execute_code,
            name="execute_code",
            description=(
                "Run one source file in a fresh container and return every output line. "
                "language is one of the ids from list_languages. dependencies is a "
                "space or comma separated list of packages (pip, npm or gem). "
                "Java code must name its public class Main."
            ),
        )

    async def list_languages(self) -> BridgeToolResult:
        """List supported languages."""
        infos = [info.model_dump(by_alias=True) for info in self.orchestrator.list_languages()]
        content = "\n".join(f"{info['id']}: {info['label']}" for info in infos)
        return BridgeToolResult(content=content, structured_content={"languages": infos})

    async def check_runtime(self) -> BridgeToolResult:
        """Report container engine health."""
        status = await self.orchestrator.check_runtime_health()
        content = "Docker is reachable" if status.ok else f"Docker is not reachable: {status.error}"
        return BridgeToolResult(content=content, structured_content=status.to_payload(), success=status.ok)

    async def execute_code(self, code: str, language: str, dependencies: str = "") -> BridgeToolResult:
        """Run code and collect its output."""
        if not code.strip():
            return BridgeToolResult(content="Code is required", success=False)

        lines: list[dict[str, str]] = []

        def collect(line: str, channel: Channel) -> None:
            lines.append({"line": line, "type": channel.value})

        try:
            result = await self.orchestrator.run(
                code, language, normalize_dependencies(dependencies), on_line=collect
            )
        except Exception as e:
            self.logger._emit(logging.ERROR, "Tool execution failed", tool="execute_code", error=str(e))
            return BridgeToolResult(content=f"Execution failed: {e!s}", success=False)

        if result.rejected:
            return BridgeToolResult(
                content=result.error or "An execution is already in progress",
                structured_content={"error": result.error},
                success=False,
            )

        structured_content: dict[str, Any] = {
            "exitCode": result.exit_code,
            "timedOut": result.timed_out,
            "lines": lines,
        }
        if result.error is not None:
            structured_content["error"] = result.error

        return BridgeToolResult(
            content="\n".join(entry["line"] for entry in lines),
            structured_content=structured_content,
            execution_time_ms=result.duration_ms,
            success=result.success,
        )

    async def start_stdio(self) -> None:
        """Start the MCP server with stdio transport."""
        self.logger._emit(logging.INFO, "Starting MCP server with stdio transport")
        await self.app.run_stdio_async()

    async def start_http(self, config: HTTPTransportConfig | None = None) -> None:
        """Start the HTTP bridge sharing this server's orchestrator."""
        http_config = config or HTTPTransportConfig.from_config(self.config.http)
        app = create_http_app(self.orchestrator, http_config, logger=self.logger)
        await serve_http(app, http_config, logger=self.logger)


def create_bridge_server(
    config: BridgeConfig | None = None,
    orchestrator: ExecutionOrchestrator | None = None,
) -> BridgeServer:
    """Create and configure a bridge server instance.

    Args:
        config: Bridge configuration. If None, uses defaults.
        orchestrator: Shared orchestrator. If None, one is created with the
            policy from config.policy_file (or the default policy).

    Returns:
        Configured BridgeServer instance.
    """
    config = config or BridgeConfig()
    if orchestrator is None:
        from executor.policies import load_policy

        policy = load_policy(config.policy_file) if config.policy_file else None
        orchestrator = create_orchestrator(policy=policy)
    return BridgeServer(config, orchestrator=orchestrator)
