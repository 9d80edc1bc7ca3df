"""
Upstream service - forwards OpenAI-compatible calls to the model provider.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
from fastapi import Request, Response

from gateway.errors import RequestBodyInvalid, UpstreamError
from gateway.logging import get_logger
from gateway.state import AppState

logger = get_logger(__name__)

# Hop-by-hop headers that should not be relayed back to the caller
HOP_BY_HOP_HEADERS = frozenset({
    "connection", "keep-alive", "transfer-encoding",
    "content-encoding", "content-length", "te", "trailers", "upgrade"
})


async def read_json_body(request: Request) -> Dict[str, Any]:
    """
    Read the request body as a JSON object.

    Raises:
        RequestBodyInvalid: If the content type is not JSON, the body is not
                            valid JSON, or the JSON is not an object
    """
    mime = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if mime != "application/json" and not (mime.startswith("application/") and mime.endswith("+json")):
        raise RequestBodyInvalid(
            "Expected request with `Content-Type: application/json`"
        )

    body = await request.body()
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise RequestBodyInvalid(
            f"Failed to parse the request body as JSON: {e}"
        ) from e

    if not isinstance(payload, dict):
        raise RequestBodyInvalid(
            "Failed to deserialize the JSON body into the target type: "
            f"expected a JSON object, got {type(payload).__name__}"
        )
    return payload


def _map_upstream_error(error: httpx.HTTPError, path: str) -> UpstreamError:
    """Map transport errors to an UpstreamError with a caller-safe message."""
    if isinstance(error, httpx.TimeoutException):
        logger.error(f"Timeout calling upstream {path}")
        return UpstreamError("Upstream service timeout")

    if isinstance(error, httpx.RequestError):
        logger.error(f"Connection error calling upstream {path}: {error}")
        return UpstreamError("Failed to connect to upstream service")

    logger.error(f"Unexpected error calling upstream {path}: {error}")
    return UpstreamError("Failed to forward request to upstream")


def _filter_response_headers(headers: httpx.Headers) -> List[Tuple[str, str]]:
    """Filter hop-by-hop headers from the upstream response, keeping repeats."""
    return [(k, v) for k, v in headers.multi_items() if k.lower() not in HOP_BY_HOP_HEADERS]


async def _forward(
    state: AppState,
    method: str,
    path: str,
    payload: Optional[Dict[str, Any]] = None,
) -> Response:
    try:
        upstream = await state.client.request(method, path, json=payload)
    except httpx.HTTPError as e:
        raise _map_upstream_error(e, path) from e

    logger.debug(f"{method} {path} -> upstream {upstream.status_code}")
    response = Response(content=upstream.content, status_code=upstream.status_code)
    for key, value in _filter_response_headers(upstream.headers):
        response.headers.append(key, value)
    return response


async def list_models(state: AppState) -> Response:
    """Relay the upstream model list."""
    return await _forward(state, "GET", "/v1/models")


async def chat_completions(state: AppState, request: Request) -> Response:
    """
    Relay a chat completion request.

    The body is validated as a JSON object and forwarded unchanged. Upstream
    responses are returned as-is whatever their status; only transport
    failures become errors.
    """
    payload = await read_json_body(request)
    logger.info(f"Chat completion request for model {payload.get('model', '<unset>')}")
    return await _forward(state, "POST", "/v1/chat/completions", payload)
