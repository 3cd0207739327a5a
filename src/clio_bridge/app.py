"""FastAPI server — the HTTP entry point for agent clients.

Endpoints:

- GET    /health                — Liveness check
- GET    /tools                 — Tool catalogue with input schemas
- POST   /tools/{name}          — Run a tool
- GET    /auth/session          — Cookie-bound session (created if needed)
- POST   /auth/session          — Force a new session
- DELETE /auth/session/{id}     — Revoke a session

Every tool call is rate limited per caller before anything else happens,
then the caller's Clio credential is resolved from, in order: the
sessionId query parameter, an "Authorization: Bearer session:<id>"
header, a raw "Authorization: Bearer <token>" header, the X-MCP-Session-ID
header, and finally the browser's mcp_session_id cookie.

Run locally with:
    uvicorn clio_bridge.app:app --reload
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from clio_bridge.clio_client import close_clients, evict_client, get_client
from clio_bridge.config import APP_URL, LOG_LEVEL, SESSION_TTL_DAYS
from clio_bridge.errors import AuthenticationError, NoCredential, RateLimitExceeded
from clio_bridge.rate_limiter import (
    SESSION_BEARER_PREFIX,
    SESSION_HEADER,
    SESSION_QUERY_PARAM,
    InboundRateLimiter,
    identify_caller,
)
from clio_bridge.redaction import safe_log
from clio_bridge.sessions import Session, TokenBroker
from clio_bridge.tools import list_tools, run_tool

logger = logging.getLogger(__name__)

SESSION_COOKIE = "mcp_session_id"

broker = TokenBroker()
limiter = InboundRateLimiter()


@contextlib.asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    logging.basicConfig(level=LOG_LEVEL.upper())
    sweepers = [
        asyncio.create_task(broker.run_sweeper()),
        asyncio.create_task(limiter.run_sweeper()),
    ]
    try:
        yield
    finally:
        for task in sweepers:
            task.cancel()
        await asyncio.gather(*sweepers, return_exceptions=True)
        await close_clients()


app = FastAPI(
    title="Clio Agent Bridge",
    description="Synthesized Clio practice-management reports for AI agents",
    version="0.1.0",
    lifespan=lifespan,
)


class ToolCallRequest(BaseModel):
    """What the client sends to POST /tools/{name}."""

    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolCallResponse(BaseModel):
    """The tool's report, or a JSON error payload when is_error is set."""

    content: str
    is_error: bool = False


class SessionResponse(BaseModel):
    session_id: str
    created_at: str
    expires_at: str
    mcp_url: str
    mcp_config: dict[str, Any]
    message: str | None = None


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _session_response(session: Session, message: str | None = None) -> SessionResponse:
    mcp_url = f"{APP_URL.rstrip('/')}/tools?{SESSION_QUERY_PARAM}={session.id}"
    return SessionResponse(
        session_id=session.id,
        created_at=_iso(session.created_at),
        expires_at=_iso(session.expires_at),
        mcp_url=mcp_url,
        mcp_config={"mcpServers": {"clio-agent-bridge": {"url": mcp_url}}},
        message=message,
    )


def _not_authenticated(exc: NoCredential) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={**exc.to_dict(), "hint": f"Please authenticate via {APP_URL} first"},
    )


def resolve_credential(request: Request) -> str:
    """Find the caller's Clio credential.

    Raises:
        AuthenticationError: If no source yields a live credential.
    """
    session_id = request.query_params.get(SESSION_QUERY_PARAM)
    if session_id:
        credential = broker.resolve(session_id)
        if credential:
            return credential

    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith(SESSION_BEARER_PREFIX):
        credential = broker.resolve(auth_header[len(SESSION_BEARER_PREFIX):])
        if credential:
            return credential
    elif auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):]

    session_id = request.headers.get(SESSION_HEADER)
    if session_id:
        credential = broker.resolve(session_id)
        if credential:
            return credential

    session_id = request.cookies.get(SESSION_COOKIE)
    if session_id:
        credential = broker.resolve(session_id)
        if credential:
            return credential

    raise AuthenticationError(
        "No valid session. Please authenticate via the web interface "
        "and get a session ID from /auth/session."
    )


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint. Returns 200 if the server is running."""
    return {"status": "ok"}


@app.get("/tools")
async def tools() -> dict[str, Any]:
    """List the available tools and their input schemas."""
    return {"tools": list_tools()}


@app.post("/tools/{name}", response_model=ToolCallResponse)
async def call_tool(
    name: str,
    body: ToolCallRequest,
    request: Request,
    response: Response,
) -> Any:
    """Run one tool for the calling agent.

    Rate-limit headers are set on every response. A rejected call gets a
    429 with Retry-After; a call without a usable credential gets a 401.
    Failures inside the tool come back as a 200 with is_error set, so the
    agent can read and act on the error payload.
    """
    identity = identify_caller(
        request.query_params,
        request.headers,
        request.client.host if request.client else None,
    )
    decision = limiter.check(identity)
    if not decision.allowed:
        error = RateLimitExceeded(
            retry_after=decision.retry_after,
            message="Too many requests. Please try again later.",
        )
        return JSONResponse(
            status_code=429,
            content=error.to_dict(),
            headers=decision.headers(),
        )
    response.headers.update(decision.headers())

    try:
        credential = resolve_credential(request)
    except AuthenticationError as exc:
        safe_log("warning", "Tool call without a valid credential", {"tool": name}, logger=logger)
        return JSONResponse(status_code=401, content=exc.to_dict(), headers=decision.headers())

    result = await run_tool(get_client(credential), name, body.arguments)
    return ToolCallResponse(content=result.text, is_error=result.is_error)


@app.get("/auth/session", response_model=SessionResponse)
async def get_session(request: Request, response: Response) -> Any:
    """Return the browser's session, creating one if needed."""
    try:
        session = broker.get_or_create(request.cookies.get(SESSION_COOKIE))
    except NoCredential as exc:
        return _not_authenticated(exc)

    response.set_cookie(
        SESSION_COOKIE,
        session.id,
        max_age=SESSION_TTL_DAYS * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=APP_URL.startswith("https://"),
    )
    return _session_response(session)


@app.post("/auth/session", response_model=SessionResponse)
async def create_session() -> Any:
    """Force a new session bound to the authenticated credential."""
    try:
        session = broker.create()
    except NoCredential as exc:
        return _not_authenticated(exc)
    return _session_response(session, message="New session created.")


@app.delete("/auth/session/{session_id}")
async def revoke_session(session_id: str) -> dict[str, str]:
    """Revoke a session and drop its cached Clio client. Unknown ids succeed too."""
    session = broker.revoke(session_id)
    if session is not None:
        evict_client(session.credential)
    return {"status": "revoked"}
