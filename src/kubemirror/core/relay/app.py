"""
FastAPI application for the subscription relay.

Exposes a health check, the kind registry under ``/kinds`` and the ``/ws``
WebSocket endpoint. Each accepted
WebSocket gets its own Session; the change-stream client is shared across
sessions and owned by the application lifespan.

Run with:
    uvicorn --factory kubemirror.core.relay.app:create_app
"""

import logging
import traceback
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum

from fastapi import FastAPI, Request, WebSocket, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException

from kubemirror import __version__
from kubemirror.core.config.models import KubeMirrorConfig
from kubemirror.core.kinds import KindRegistry
from kubemirror.core.relay.routes import kinds
from kubemirror.core.relay.session import Session, StreamSource
from kubemirror.core.stream.client import ChangeStreamClient

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standard error codes for HTTP responses."""

    # Client errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error_code: ErrorCode
    message: str
    detail: str | None = None
    request_id: str | None = None


def _error_response(
    request: Request, http_status: int, code: ErrorCode, message: str, detail: str | None
) -> JSONResponse:
    body = ErrorResponse(
        error_code=code, message=message, detail=detail, request_id=str(id(request))
    )
    return JSONResponse(status_code=http_status, content=body.model_dump(mode="json"))


def create_app(
    config: KubeMirrorConfig | None = None,
    source: StreamSource | None = None,
    registry: KindRegistry | None = None,
) -> FastAPI:
    """
    Create the relay application.

    Args:
        config: Full configuration; defaults are used when omitted
        source: Change-stream source shared by all sessions. When omitted a
            ChangeStreamClient is created at startup and closed at shutdown.
        registry: Kind registry served under /kinds (defaults to the built-ins)
    """
    config = config or KubeMirrorConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned: ChangeStreamClient | None = None
        if app.state.stream_source is None:
            owned = ChangeStreamClient(config.control_plane)
            app.state.stream_source = owned
            logger.info("Relaying change streams from %s", config.control_plane.host)
        try:
            yield
        finally:
            for session in list(app.state.sessions):
                await session.close()
            if owned is not None:
                await owned.aclose()
                app.state.stream_source = None

    app = FastAPI(
        title="kubemirror relay",
        description="Multiplexes Kubernetes change streams over a WebSocket",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.stream_source = source
    app.state.sessions = set()
    app.state.registry = registry or KindRegistry.default()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.relay.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(kinds.router, tags=["kinds"])

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint - relay health check."""
        return {"status": "ok", "message": "kubemirror relay"}

    @app.get("/health")
    async def health() -> dict[str, str | int]:
        """Health check endpoint."""
        return {"status": "healthy", "sessions": len(app.state.sessions)}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        if app.state.stream_source is None:
            # Lifespan did not run (e.g. a bare TestClient)
            app.state.stream_source = ChangeStreamClient(config.control_plane)

        await websocket.accept()
        session = Session(websocket.send_text, app.state.stream_source, config.relay)
        app.state.sessions.add(session)
        logger.info("Session opened from %s", websocket.client)
        try:
            await session.start()
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await session.handle_frame(raw)
        finally:
            app.state.sessions.discard(session)
            await session.close()
            logger.info("Session closed from %s", websocket.client)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Convert HTTPException to the standard error response format."""
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            error_code = ErrorCode.NOT_FOUND
        elif exc.status_code < 500:
            error_code = ErrorCode.INVALID_REQUEST
        else:
            error_code = ErrorCode.INTERNAL_ERROR

        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "HTTP %d on %s %s: %s",
            exc.status_code,
            request.method,
            request.url.path,
            exc.detail,
            extra={"request_id": id(request)},
        )

        detail_msg = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return _error_response(request, exc.status_code, error_code, detail_msg, detail_msg)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Return the first validation error without internal details."""
        logger.warning(
            "Validation error on %s %s: %s",
            request.method,
            request.url.path,
            exc.errors(),
            extra={"request_id": id(request)},
        )
        first_error = exc.errors()[0] if exc.errors() else {}
        field = " -> ".join(str(loc) for loc in first_error.get("loc", []))
        error_msg = first_error.get("msg", "Invalid input")
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            ErrorCode.VALIDATION_ERROR,
            "Request validation failed",
            f"{field}: {error_msg}" if field else error_msg,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log uncaught exceptions with traceback; return a clean 500."""
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method,
            request.url.path,
            str(exc),
            traceback.format_exc(),
            extra={"request_id": id(request)},
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorCode.INTERNAL_ERROR,
            "An internal server error occurred",
            str(exc),
        )

    return app


__all__ = ["ErrorCode", "ErrorResponse", "create_app"]
