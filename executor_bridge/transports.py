"""
Bridge Transport Implementations.

Transport configuration for the HTTP bridge and the MCP stdio server, plus
the start-up checks used when the HTTP port is already taken.
"""

from __future__ import annotations

import socket
from enum import Enum
from typing import TYPE_CHECKING, Any

import requests

if TYPE_CHECKING:
    from .config import HTTPConfig


class TransportType(Enum):
    """Supported bridge transport types."""

    STDIO = "stdio"
    HTTP = "http"


class TransportConfig:
    """Base configuration for bridge transports."""

    def __init__(self, transport_type: TransportType):
        self.transport_type = transport_type


class StdioTransportConfig(TransportConfig):
    """Configuration for stdio transport."""

    def __init__(self) -> None:
        super().__init__(TransportType.STDIO)


class HTTPTransportConfig(TransportConfig):
    """Configuration for HTTP transport."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 3876,
        cors_origins: list[str] | None = None,
        max_request_bytes: int = 5 * 1024 * 1024,
        request_timeout_seconds: int = 120,
        probe_timeout_seconds: float = 1.2,
    ):
        super().__init__(TransportType.HTTP)
        self.host = host
        self.port = port
        self.cors_origins = cors_origins or ["*"]
        self.max_request_bytes = max_request_bytes
        self.request_timeout_seconds = request_timeout_seconds
        self.probe_timeout_seconds = probe_timeout_seconds

    @classmethod
    def from_config(cls, config: HTTPConfig) -> HTTPTransportConfig:
        return cls(
            host=config.host,
            port=config.port,
            cors_origins=list(config.cors_origins),
            max_request_bytes=config.max_request_bytes,
            request_timeout_seconds=config.request_timeout_seconds,
            probe_timeout_seconds=config.probe_timeout_seconds,
        )

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def get_uvicorn_config(self) -> dict[str, Any]:
        """Get uvicorn configuration for this transport."""
        return {
            "host": self.host,
            "port": self.port,
            "access_log": True,
            "log_level": "info",
            "timeout_keep_alive": self.request_timeout_seconds,
        }

    def get_cors_middleware_class(self) -> type:
        """Get CORS middleware class for adding to Starlette app."""
        from starlette.middleware.cors import CORSMiddleware

        return CORSMiddleware


def port_available(host: str, port: int) -> bool:
    """Return True if nothing is bound to host:port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def probe_existing_bridge(host: str, port: int, timeout: float = 1.2) -> bool:
    """Check whether a bridge is already serving on host:port.

    A bridge answers GET /languages with a JSON list of language entries;
    anything else means the port belongs to some other process.
    """
    try:
        response = requests.get(f"http://{host}:{port}/languages", timeout=timeout)
        if response.status_code != 200:
            return False
        payload = response.json()
    except (requests.RequestException, ValueError):
        return False
    return is_language_list(payload)


def is_language_list(value: Any) -> bool:
    return isinstance(value, list) and all(
        isinstance(item, dict) and isinstance(item.get("id"), str) for item in value
    )
