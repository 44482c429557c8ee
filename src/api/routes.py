"""FastAPI route definitions for the Agentic Services API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Header, HTTPException, Request

from src.api.schemas import AgentInfo, ChatRequest, ChatResponse, ErrorResponse, HealthResponse
from src.config import TURN_TIMEOUT_SECONDS
from src.context import parse_bearer_token
from src.runner import ConversationError, ConversationRunner
from src.specialists import SPECIALISTS

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_runner(request: Request) -> ConversationRunner:
    """Retrieve the conversation runner from app state.

    The runner (graphs, store, clients) is built once during the FastAPI
    lifespan (see ``server.py``).
    """
    runner = getattr(request.app.state, "runner", None)
    if runner is None:
        raise HTTPException(
            status_code=503,
            detail="The agents are still starting up. Please try again in a moment.",
        )
    return runner


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.get("/agents", response_model=list[AgentInfo])
async def list_agents():
    """The specialists a client can address with ``agentType``."""
    return [AgentInfo(**s.metadata()) for s in SPECIALISTS]


@router.post(
    "/agent/chat",
    response_model=ChatResponse,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
async def chat(
    request: ChatRequest,
    http_request: Request,
    authorization: str | None = Header(None),
):
    """Run one chat turn with the selected specialist.

    The bearer token (optional) identifies the user; without it the agent
    still answers but user-scoped tools refuse to act and nothing is
    persisted.

    **Implementation note**: the turn is synchronous and blocking (LLM,
    database and SMTP calls).  We offload it to a thread via
    ``asyncio.to_thread`` so the event loop keeps serving other requests,
    and bound it with ``TURN_TIMEOUT_SECONDS``.
    """
    runner = _get_runner(http_request)
    request_id = getattr(http_request.state, "request_id", "?")
    messages = [m.model_dump() for m in request.messages]

    try:
        result = await asyncio.wait_for(
            asyncio.to_thread(
                runner.run_turn,
                messages,
                request.agent_type,
                request.session_id,
                parse_bearer_token(authorization),
            ),
            timeout=TURN_TIMEOUT_SECONDS,
        )
    except TimeoutError as e:
        logger.error("[%s] Chat turn exceeded %.0fs", request_id, TURN_TIMEOUT_SECONDS)
        raise HTTPException(
            status_code=504,
            detail="The agent took too long to respond. Please try again.",
        ) from e
    except ConversationError as e:
        logger.error("[%s] Chat turn failed: %s", request_id, e)
        raise HTTPException(status_code=500, detail=str(e)) from e
    except Exception as e:
        # Log the full traceback server-side, but do NOT leak it to the client
        logger.exception("[%s] Error processing chat request", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    logger.info(
        "[%s] Turn answered (agentType=%s, session=%s)",
        request_id, request.agent_type, result.session_id,
    )
    return ChatResponse(response=result.response, session_id=result.session_id)
