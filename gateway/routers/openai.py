"""
OpenAI-compatible router - model listing and chat completions.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from gateway.services import upstream
from gateway.services.auth import authorize
from gateway.state import AppState, get_state

ERROR_RESPONSES = {
    400: {"description": "Malformed JSON request body"},
    401: {"description": "Missing or invalid bearer token"},
    500: {"description": "Upstream unreachable or internal failure"},
}

router = APIRouter(prefix="/v1", tags=["openai"], dependencies=[Depends(authorize)])


@router.get("/models", response_class=Response, responses=ERROR_RESPONSES)
async def models(state: AppState = Depends(get_state)) -> Response:
    """List the models offered by the upstream provider."""
    return await upstream.list_models(state)


@router.post("/chat/completions", response_class=Response, responses=ERROR_RESPONSES)
async def chat_completions(request: Request, state: AppState = Depends(get_state)) -> Response:
    """
    Create a chat completion.

    **Headers:**
    - `Authorization: Bearer <key>` (required when an API key is configured)

    **Request Body:** OpenAI chat completion JSON, forwarded unchanged
    """
    return await upstream.chat_completions(state, request)
