"""
HTTP bridge for the container executor.

Exposes the orchestrator to browser clients over a small JSON API:

    GET  /languages     supported languages (camelCase metadata)
    GET  /check-docker  container engine health ({ok} or {ok, error})
    GET  /health        alias of /check-docker
    POST /run           run code, returning every output line at once

Only one run executes at a time; a request made while another is in flight
gets 409 immediately.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import uvicorn
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from executor.core.logging import ExecutorLogger
from executor.core.models import Channel
from executor.languages import parse_dependencies
from executor.orchestrator import ExecutionOrchestrator

from .transports import HTTPTransportConfig

BUSY_MESSAGE = "An execution is already in progress"


class PayloadTooLargeError(ValueError):
    """Request body exceeded the configured limit."""


async def read_body(request: Request, limit: int) -> bytes:
    """Read the request body, refusing anything larger than limit bytes."""
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise PayloadTooLargeError("Payload too large")
    return bytes(body)


def normalize_run_payload(payload: Any) -> tuple[str, str, str]:
    """Extract (code, languageId, dependencies); non-string fields become ''."""
    data = payload if isinstance(payload, dict) else {}

    def text(key: str) -> str:
        value = data.get(key)
        return value if isinstance(value, str) else ""

    return text("code"), text("languageId"), text("dependencies")


def create_http_app(
    orchestrator: ExecutionOrchestrator,
    config: HTTPTransportConfig | None = None,
    logger: ExecutorLogger | None = None,
) -> Starlette:
    """Build the Starlette application serving the bridge API.

    Args:
        orchestrator: Shared orchestrator; its gate enforces one run at a time
        config: HTTP transport settings (CORS origins, body limit)
        logger: Optional ExecutorLogger, defaults to the orchestrator's

    Returns:
        Starlette app ready to be served by uvicorn
    """
    http_config = config or HTTPTransportConfig()
    log = logger or orchestrator.logger

    async def languages(request: Request) -> Response:
        return JSONResponse([info.model_dump(by_alias=True) for info in orchestrator.list_languages()])

    async def check_runtime(request: Request) -> Response:
        status = await orchestrator.check_runtime_health()
        return JSONResponse(status.to_payload())

    async def run(request: Request) -> Response:
        if orchestrator.is_running:
            return JSONResponse({"error": BUSY_MESSAGE}, status_code=409)

        try:
            raw = await read_body(request, http_config.max_request_bytes)
            payload = json.loads(raw or b"{}")
        except ValueError as e:
            log._emit(logging.WARNING, "bridge.request.invalid", error=str(e))
            return JSONResponse({"error": f"Invalid request: {e}"}, status_code=400)

        code, language_id, dependencies = normalize_run_payload(payload)
        if not code.strip():
            return JSONResponse({"error": "Code is required"}, status_code=400)

        lines: list[dict[str, str]] = []

        def collect(line: str, channel: Channel) -> None:
            lines.append({"line": line, "type": channel.value})

        try:
            result = await orchestrator.run(code, language_id, parse_dependencies(dependencies), on_line=collect)
        except Exception as e:
            log._emit(logging.ERROR, "bridge.run.failed", error=str(e))
            return JSONResponse({"error": str(e), "lines": lines}, status_code=500)

        if result.rejected:
            return JSONResponse({"error": result.error or BUSY_MESSAGE}, status_code=409)
        return JSONResponse({"exitCode": result.exit_code, "lines": lines})

    async def not_found(request: Request, exc: HTTPException) -> Response:
        return JSONResponse({"error": "Not found"}, status_code=404)

    routes = [
        Route("/languages", languages, methods=["GET"]),
        Route("/check-docker", check_runtime, methods=["GET"]),
        Route("/health", check_runtime, methods=["GET"]),
        Route("/run", run, methods=["POST"]),
    ]
    middleware = [
        Middleware(
            http_config.get_cors_middleware_class(),
            allow_origins=http_config.cors_origins,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type"],
        )
    ]
    return Starlette(
        routes=routes,
        middleware=middleware,
        exception_handlers={404: not_found, 405: not_found},
    )


async def serve_http(app: Starlette, config: HTTPTransportConfig, logger: ExecutorLogger | None = None) -> None:
    """Serve app with uvicorn until shutdown."""
    log = logger or ExecutorLogger()
    log._emit(
        logging.INFO,
        "Starting HTTP bridge",
        host=config.host,
        port=config.port,
    )
    server = uvicorn.Server(uvicorn.Config(app, **config.get_uvicorn_config()))
    await server.serve()
