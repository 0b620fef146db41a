"""FastAPI server exposing agent sessions and their event stream."""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from .event_sink import EventBroadcaster
from .models import PermissionMode, StatusEvent

logger = logging.getLogger(__name__)

SSE_KEEPALIVE_SECONDS = 15.0


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Log slow requests for debugging."""

    def __init__(self, app, config: Optional[dict] = None):
        super().__init__(app)
        self.config = config or {}

        server_config = self.config.get("server", {})
        self.slow_threshold = server_config.get("slow_request_threshold_seconds", 1.0)

    async def dispatch(self, request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        elapsed = time.monotonic() - start

        if elapsed > self.slow_threshold and request.url.path != "/events":
            logger.warning(
                f"SLOW REQUEST: {request.method} {request.url.path} "
                f"took {elapsed:.2f}s"
            )

        return response


class StartAgentRequest(BaseModel):
    """Request to start an agent session."""
    work_dir: str
    instruction: str
    permission_mode: str = "accept-edits"


class SessionResponse(BaseModel):
    """Response containing live session info."""
    id: str
    work_dir: str
    instruction: str
    permission_mode: str
    status: str
    pid: Optional[int] = None
    created_at: str
    last_activity: str


def format_sse(event) -> str:
    """Render a session event as a Server-Sent-Events frame."""
    kind = "status" if isinstance(event, StatusEvent) else "line"
    return f"event: {kind}\ndata: {json.dumps(event.to_dict(), ensure_ascii=False)}\n\n"


def create_app(
    registry=None,
    broadcaster: Optional[EventBroadcaster] = None,
    config: Optional[dict] = None,
    lifespan=None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        registry: SessionRegistry instance
        broadcaster: EventBroadcaster the registry publishes into
        config: Configuration dictionary
        lifespan: Optional ASGI lifespan context manager

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="Agent Sessions",
        description="Launch coding-agent sessions and stream their status",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.config = config or {}
    app.add_middleware(RequestTimingMiddleware, config=config)

    app.state.registry = registry
    app.state.broadcaster = broadcaster

    def _require_registry():
        if not app.state.registry:
            raise HTTPException(status_code=503, detail="Session registry not configured")
        return app.state.registry

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "ok", "service": "agent-sessions"}

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        registry = app.state.registry
        return {
            "status": "healthy",
            "driver": getattr(getattr(registry, "driver", None), "mode", None),
            "active_sessions": len(registry.sessions) if registry else 0,
        }

    @app.post("/agents/{session_id}/start")
    async def start_agent(session_id: str, request: StartAgentRequest):
        """Start an agent session. Progress arrives on /events."""
        registry = _require_registry()

        work_dir = Path(request.work_dir).expanduser()
        if not work_dir.is_dir():
            raise HTTPException(status_code=400, detail=f"Working directory not found: {request.work_dir}")
        if not request.instruction.strip():
            raise HTTPException(status_code=400, detail="Instruction must not be empty")
        try:
            permission_mode = PermissionMode.parse(request.permission_mode)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        registry.start(session_id, str(work_dir), request.instruction, permission_mode)
        return {"success": True}

    @app.post("/agents/{session_id}/stop")
    async def stop_agent(session_id: str):
        """Stop an agent session (idempotent)."""
        registry = _require_registry()
        registry.stop(session_id)
        return {"success": True}

    @app.get("/agents/{session_id}/active")
    async def is_agent_active(session_id: str):
        """Check whether a session can still produce events."""
        registry = _require_registry()
        return {"session_id": session_id, "active": registry.is_active(session_id)}

    @app.get("/agents")
    async def list_agents():
        """List live sessions."""
        registry = _require_registry()
        return {
            "sessions": [
                SessionResponse(**session.to_dict())
                for session in registry.list_sessions()
            ]
        }

    @app.get("/events")
    async def stream_events(session_id: Optional[str] = None):
        """Server-Sent-Events stream of status and activity line events."""
        if not app.state.broadcaster:
            raise HTTPException(status_code=503, detail="Event stream not configured")

        subscription = app.state.broadcaster.subscribe(session_id)

        async def event_stream():
            try:
                while True:
                    try:
                        event = await subscription.get(timeout=SSE_KEEPALIVE_SECONDS)
                    except asyncio.TimeoutError:
                        yield ": keepalive\n\n"
                        continue
                    if event is None:
                        break
                    yield format_sse(event)
            finally:
                subscription.close()

        return StreamingResponse(event_stream(), media_type="text/event-stream")

    return app
