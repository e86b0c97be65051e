"""
Core API backend for Workmate.

This module wires the orchestration components together and exposes them over HTTP:
- **GET /health**       - liveness probe for health checks.
- **POST /chat**        - one chat turn: {"message": "...", "conversationHistory": [...]}
- **GET /chat/status**  - which domains the caller is signed in to, and their tools.

Provider tokens travel with every request (headers or cookies) and are never stored.
"""

import logging
from contextlib import asynccontextmanager
from typing import (
    AsyncIterator,
    Dict,
)

import httpx
from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
    Request,
)
from fastapi.middleware.cors import CORSMiddleware

from workmate.agent.agent_loop import Orchestrator
from workmate.agent.classifier import QueryClassifier
from workmate.agent.credentials import (
    CredentialProvider,
    HeaderCredentialProvider,
)
from workmate.agent.formatter import ResponseFormatter
from workmate.agent.gateway import ToolGateway
from workmate.agent.llm import (
    BaseLLM,
    load_llm,
)
from workmate.agent.planner import ToolCallPlanner
from workmate.api.models import (
    ChatRequest,
    StatusResponse,
)
from workmate.common import (
    AnsiColors,
    colored_print,
)
from workmate.config import settings
from workmate.core.schema import ChatOutcome
from workmate.providers.gmail import GmailExecutor
from workmate.providers.teams import TeamsExecutor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------
def build_orchestrator(client: httpx.AsyncClient, llm: BaseLLM | None) -> Orchestrator:
    """Assemble executors, gateway and agent stages around one shared HTTP client."""
    executors = {
        GmailExecutor.PROVIDER: GmailExecutor(client),
        TeamsExecutor.PROVIDER: TeamsExecutor(client),
    }
    return Orchestrator(
        gateway=ToolGateway(executors),
        classifier=QueryClassifier(llm),
        planner=ToolCallPlanner(llm),
        formatter=ResponseFormatter(llm),
        llm=llm,
    )


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Create the shared HTTP client and orchestrator; close the client on shutdown."""
    try:
        llm: BaseLLM | None = load_llm()
        logger.info("Using LLM backend '%s'", settings.LLM_BACKEND)
    except ValueError as exc:
        logger.error("LLM backend unavailable, continuing without one: %s", exc)
        llm = None

    async with httpx.AsyncClient(timeout=settings.PROVIDER_TIMEOUT) as client:
        application.state.orchestrator = build_orchestrator(client, llm)
        application.state.credentials = HeaderCredentialProvider()
        yield
    logger.info("HTTP client closed")


app = FastAPI(
    title="Workmate API",
    version="0.1.0",
    description="Gmail and Microsoft Teams assistant API",
    lifespan=lifespan,
)

# Allow the chat frontend to send its token headers and cookies
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_orchestrator(request: Request) -> Orchestrator:
    """The orchestrator built at startup."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return orchestrator


def get_credential_provider(request: Request) -> CredentialProvider:
    return getattr(request.app.state, "credentials", None) or HeaderCredentialProvider()


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> Dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/chat", response_model=ChatOutcome, summary="Process a chat message")
async def chat_endpoint(
    req: ChatRequest,
    request: Request,
    orchestrator: Orchestrator = Depends(get_orchestrator),
    credential_provider: CredentialProvider = Depends(get_credential_provider),
) -> ChatOutcome:
    """Run one request through the orchestration loop."""
    if not req.message or not req.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")

    credentials = credential_provider.get_credentials(request)
    logger.info(
        "Chat request (%d history turns, connected: %s)",
        len(req.conversation_history),
        ", ".join(credentials.connected_providers()) or "none",
    )
    return await orchestrator.run(
        req.message.strip(),
        req.conversation_history,
        credentials,
        is_cancelled=request.is_disconnected,
    )


@app.get("/chat/status", response_model=StatusResponse, summary="Connection status")
async def chat_status(
    request: Request,
    orchestrator: Orchestrator = Depends(get_orchestrator),
    credential_provider: CredentialProvider = Depends(get_credential_provider),
) -> StatusResponse:
    """Report connected domains and usable tools for the caller."""
    credentials = credential_provider.get_credentials(request)
    return StatusResponse.model_validate(orchestrator.status(credentials))


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
        If *True*, enable auto-reload (useful during development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path for tests and the CLI client
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting Workmate API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug("API settings: %s", settings.public_dump())

    colored_print(f"Workmate API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "workmate.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m workmate.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
