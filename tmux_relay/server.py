"""FastAPI server for agent hooks and local relay clients."""

import asyncio
import logging
import time
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from .command_relay import CommandRelay
from .models import Notification
from .notifier import Notifier
from .session_manager import SessionManager

logger = logging.getLogger(__name__)


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Log slow requests for debugging."""

    def __init__(self, app, config: Optional[dict] = None):
        super().__init__(app)
        self.config = config or {}

        # Load timing thresholds from config
        timeouts = self.config.get("timeouts", {})
        server_timeouts = timeouts.get("server", {})
        self.slow_threshold = server_timeouts.get("slow_request_threshold_seconds", 1.0)

    async def dispatch(self, request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        elapsed = time.monotonic() - start

        if elapsed > self.slow_threshold:
            logger.warning(
                f"SLOW REQUEST: {request.method} {request.url.path} "
                f"took {elapsed:.2f}s"
            )

        return response


class NotifyRequest(BaseModel):
    """Notification from an agent hook."""
    type: str = "completed"
    project: Optional[str] = None
    message: str = ""
    metadata: Optional[dict] = None
    tmux_session: Optional[str] = None  # Resolved by the hook when it runs inside tmux


class NotifyResponse(BaseModel):
    session_id: str
    token: str
    tmux_session: str
    delivered: bool


class RelayRequest(BaseModel):
    """Command to type into the session bound to token."""
    token: str
    command: str


def create_app(
    session_manager: SessionManager,
    command_relay: CommandRelay,
    notifier: Optional[Notifier] = None,
    config: Optional[dict] = None,
) -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(title="tmux relay")
    app.add_middleware(RequestTimingMiddleware, config=config)

    app.state.session_manager = session_manager
    app.state.command_relay = command_relay
    app.state.notifier = notifier

    @app.get("/health")
    async def health():
        sessions = await asyncio.to_thread(session_manager.list_sessions)
        return {"status": "ok", "sessions": len(sessions)}

    @app.post("/notify", response_model=NotifyResponse)
    async def notify(request: NotifyRequest):
        """Create a relay session and announce its token in chat."""
        if not notifier or not notifier.is_configured:
            raise HTTPException(status_code=503, detail="Notification channel not configured")

        notification = Notification(
            type=request.type,
            project=request.project,
            message=request.message,
            metadata=request.metadata,
        )
        try:
            record = await notifier.notify(notification, tmux_session=request.tmux_session)
        except RuntimeError as e:
            logger.error(f"Failed to create session for notification: {e}")
            raise HTTPException(status_code=500, detail="Failed to create session")

        if record is None:
            raise HTTPException(status_code=502, detail="Failed to send notification")

        return NotifyResponse(
            session_id=record.id,
            token=record.token,
            tmux_session=record.tmux_session,
            delivered=True,
        )

    @app.post("/relay")
    async def relay(request: RelayRequest):
        """Type a command into the session for a token."""
        try:
            result = await asyncio.to_thread(
                command_relay.relay_command, request.token, request.command
            )
        except (OSError, RuntimeError) as e:
            logger.error(f"Relay failed for token {request.token}: {e}")
            raise HTTPException(status_code=500, detail="Relay failed")
        return result.to_dict()

    @app.get("/sessions")
    async def list_sessions():
        sessions = await asyncio.to_thread(session_manager.list_sessions)
        return {"sessions": [s.to_dict() for s in sessions]}

    @app.delete("/sessions/{session_id}")
    async def delete_session(session_id: str):
        removed = await asyncio.to_thread(session_manager.remove_session, session_id)
        return {"removed": removed}

    return app
