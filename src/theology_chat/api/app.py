"""
FastAPI Application Module

Serves the theology guide chat as a single page backed by one chat session:
one identity, one persisted transcript and at most one turn in flight.

Key Features:
- Startup resolves identity once and subscribes to the stored transcript
- Turn submission gated on readiness and on the pending reply
- Escaped rendering of model output and grounding sources
- Structured logging, Prometheus metrics and OpenTelemetry tracing
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CollectorRegistry, Counter, generate_latest
from pydantic import BaseModel
from structlog import get_logger

from ..config import load_app_config, load_startup_config
from ..errors import SessionNotReady, TurnInProgress
from ..rendering.formatter import format_message
from ..services.session import ChatSession
from .page import render_page

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("requests_total", "Total HTTP requests", registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Total failed HTTP requests", registry=CUSTOM_REGISTRY)
TURNS = Counter("turns_total", "Total conversation turns completed", registry=CUSTOM_REGISTRY)

logger = get_logger()


class MessageCreate(BaseModel):
    """Defines the structure for message submission requests"""
    content: str


class RenderedMessage(BaseModel):
    role: str
    text: str
    timestamp: datetime
    html: str


class SessionState(BaseModel):
    """Everything the page needs to draw itself"""
    user_id: Optional[str]
    auth_ready: bool
    loading: bool
    pending: bool
    input_enabled: bool
    messages: List[RenderedMessage]


def session_state(session: ChatSession) -> SessionState:
    return SessionState(
        user_id=session.user_id,
        auth_ready=session.auth_ready,
        loading=session.loading,
        pending=session.pending,
        input_enabled=session.input_enabled,
        messages=[
            RenderedMessage(
                role=message.role,
                text=message.text,
                timestamp=message.timestamp,
                html=format_message(message.text),
            )
            for message in session.transcript
        ],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Builds the session from the environment unless one was injected"""
    if app.state.session is None:
        app.state.session = ChatSession.from_config(load_app_config(), load_startup_config())
    session: ChatSession = app.state.session
    await session.start()
    logger.info("application_startup_complete", user_id=session.user_id)

    yield

    await session.close()
    logger.info("application_shutdown_complete")


def get_session(request: Request) -> ChatSession:
    """Returns the page's chat session"""
    session = request.app.state.session
    if session is None:
        raise HTTPException(status_code=503, detail="Session not configured")
    return session


def create_app(session: Optional[ChatSession] = None) -> FastAPI:
    """Builds the application around a chat session."""
    app = FastAPI(
        title="Theology Guide Chat",
        description="Single-page chat with an AI theology guide",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.session = session

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Set up request tracing
    FastAPIInstrumentor.instrument_app(app)

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Tracks requests"""
        REQUESTS.inc()
        logger.info("request_started", path=request.url.path)
        try:
            response = await call_next(request)
        except Exception as e:
            ERRORS.inc()
            logger.error("request_failed", path=request.url.path, error=str(e))
            raise
        if response.status_code >= 400:
            ERRORS.inc()
        return response

    @app.get("/", response_class=HTMLResponse)
    async def page(session: ChatSession = Depends(get_session)) -> HTMLResponse:
        """Renders the chat page"""
        return HTMLResponse(render_page(session))

    @app.get("/state", response_model=SessionState)
    async def get_state(session: ChatSession = Depends(get_session)) -> SessionState:
        """Current identity, flags and rendered transcript"""
        return session_state(session)

    @app.post("/messages", response_model=SessionState)
    async def create_message(
        message: MessageCreate,
        session: ChatSession = Depends(get_session),
    ) -> SessionState:
        """
        Submits one question and waits for the reply.
        The transcript always ends with the answer or the apology message.
        """
        try:
            await session.submit(message.content)
        except ValueError:
            raise HTTPException(status_code=422, detail="Message must not be empty")
        except SessionNotReady:
            raise HTTPException(status_code=503, detail="Session is still initializing")
        except TurnInProgress:
            raise HTTPException(status_code=409, detail="A reply is already being generated")

        TURNS.inc()
        return session_state(session)

    @app.get("/health")
    async def health(session: ChatSession = Depends(get_session)) -> dict:
        return {"status": "ok", "ready": session.ready}

    @app.get("/metrics")
    async def metrics():
        """Provides Prometheus metrics for system monitoring"""
        return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")

    return app


app = create_app()
