# Bridge Package
"""
Transport adapters for the container executor.

This package exposes the execution orchestrator over a small HTTP API for
browser clients and over the Model Context Protocol for MCP clients.
"""

__version__ = "0.1.0"

from .config import BridgeConfig
from .http import create_http_app
from .server import BridgeServer, BridgeToolResult, create_bridge_server
from .transports import HTTPTransportConfig, StdioTransportConfig, TransportConfig, TransportType

__all__ = [
    "BridgeConfig",
    "BridgeServer",
    "BridgeToolResult",
    "HTTPTransportConfig",
    "StdioTransportConfig",
    "TransportConfig",
    "TransportType",
    "create_bridge_server",
    "create_http_app",
]
