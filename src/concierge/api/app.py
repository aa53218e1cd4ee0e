"""
Core API backend for Concierge.

This module exposes the orchestrator through a RESTful API that's used by frontends.
It exposes the following endpoints:
- **GET /health**  - liveness probe for health checks.
- **POST /sessions** - create a new session, returns a session ID.
- **GET /sessions** - list all active sessions.
- **POST /agent**   - multi-turn interaction: {"message": "...", "session_id": "..."}

Every session owns its own orchestrator, and with it its own agent histories and active intent.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
)

from fastapi import (
    FastAPI,
    HTTPException,
    Request,
)

from concierge.agent.factory import build_orchestrator
from concierge.agent.observer import AgentObserver
from concierge.agent.orchestrator import Orchestrator
from concierge.agent.provider_interface import load_provider
from concierge.agent.task_agent import ScopeError
from concierge.api.models import (
    MessageRequest,
    MessageResponse,
    SessionResponse,
)
from concierge.common import (
    AnsiColors,
    colored_print,
)
from concierge.config import settings
from concierge.core.resources import ConfigError
from concierge.core.schema import ResponseValidationError
from concierge.protocol.mcp_client import MCPProtocolClient

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[AgentObserver], Awaitable[Orchestrator]]


class ActivityLog:
    """Observer that records the task agent's events for the current turn."""

    def __init__(self) -> None:
        self.entries: List[str] = []

    def on_fetching_document(self, uri: str) -> None:
        self.entries.append(f"[Fetching document {uri}]")

    def on_calling_tool(self, name: str, args_json: str) -> None:
        self.entries.append(f"[Calling tool {name} with args {args_json}]")


class ChatSession:
    """An orchestrator plus the activity log subscribed to it."""

    def __init__(self, orchestrator: Orchestrator, activity: ActivityLog) -> None:
        self.orchestrator = orchestrator
        self.activity = activity


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------
def create_app(orchestrator_factory: Optional[OrchestratorFactory] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Without *orchestrator_factory* the lifespan connects to ``settings.MCP_SERVER_URL`` and loads
    the provider named by ``settings.PROVIDER``; both are shared by every session.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if orchestrator_factory is not None:
            app.state.orchestrator_factory = orchestrator_factory
            yield
            return

        async with MCPProtocolClient(settings.MCP_SERVER_URL) as client:
            provider = load_provider()

            async def factory(observer: AgentObserver) -> Orchestrator:
                return await build_orchestrator(client, provider, observer)

            app.state.orchestrator_factory = factory
            yield

    app = FastAPI(
        title="Concierge API",
        version="0.1.0",
        description="Intent-routed assistant API",
        lifespan=lifespan,
    )
    sessions: Dict[str, ChatSession] = {}

    async def create_session(request: Request) -> str:
        activity = ActivityLog()
        try:
            orchestrator = await request.app.state.orchestrator_factory(activity)
        except ConfigError as exc:
            logger.error("Failed to set up a session: %s", exc)
            raise HTTPException(status_code=502, detail="Assistant configuration is invalid") from exc

        session_id = str(uuid.uuid4())
        sessions[session_id] = ChatSession(orchestrator, activity)
        logger.info("Created session %s", session_id)
        return session_id

    # ---------------------------------------------------------------------------
    # Routes
    # ---------------------------------------------------------------------------
    @app.get("/health", summary="Health check")
    async def health() -> dict[str, str]:
        """Return a simple liveness payload."""
        return {"status": "ok"}

    @app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
    async def new_session(request: Request) -> SessionResponse:
        """Create a new conversation session."""
        return SessionResponse(session_id=await create_session(request))

    @app.get("/sessions", response_model=List[str], summary="List active sessions")
    async def list_sessions() -> List[str]:
        """List all active session IDs."""
        return list(sessions.keys())

    @app.post("/agent", response_model=MessageResponse, summary="Process a message")
    async def agent_endpoint(req: MessageRequest, request: Request) -> MessageResponse:
        """Process a user message within a session, creating one if needed."""
        session_id = req.session_id
        if session_id is None or session_id not in sessions:
            session_id = await create_session(request)
        session = sessions[session_id]

        session.activity.entries.clear()
        try:
            reply = await session.orchestrator.handle_query(req.message)
        except (ResponseValidationError, ScopeError) as exc:
            logger.error("Query failed in session %s: %s", session_id, exc)
            raise HTTPException(
                status_code=502, detail="The assistant returned an unexpected response"
            ) from exc

        return MessageResponse(
            reply=reply, activity=list(session.activity.entries), session_id=session_id
        )

    return app


app = create_app()


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting Concierge API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug("API settings: %s", settings.model_dump())

    colored_print(f"Concierge API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "concierge.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m concierge.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
