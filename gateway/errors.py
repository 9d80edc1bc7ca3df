"""
Error taxonomy and the mapping from errors to OpenAI-style JSON envelopes.
"""
from __future__ import annotations

from typing import Literal, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from gateway.logging import get_logger

logger = get_logger(__name__)


class ConfigError(Exception):
    """Configuration could not be loaded. Fatal at startup."""


class StartupError(Exception):
    """The listener could not be started (bad TLS material, bind failure)."""


class GatewayError(Exception):
    """Base class for request-scoped failures."""


class RequestBodyInvalid(GatewayError):
    """The request body could not be parsed as the expected JSON."""


class InvalidApiKey(GatewayError):
    """The bearer token is missing or does not match the configured key."""

    def __init__(self, message: str = "Invalid API key"):
        super().__init__(message)


class UpstreamError(GatewayError):
    """The upstream provider could not be reached or did not answer in time."""


class ErrorEnvelope(BaseModel):
    """Error body returned to callers."""
    message: str
    type: Literal["invalid_request_error", "server_error"]
    param: Optional[str] = None


def error_envelope(error: Exception) -> Tuple[int, ErrorEnvelope]:
    """
    Map an error to its HTTP status and wire envelope.

    Only the error's display text is exposed. Anything that is not a
    request-body or API-key failure is reported as a 500 server_error.
    """
    if isinstance(error, RequestBodyInvalid):
        return 400, ErrorEnvelope(message=str(error), type="invalid_request_error")
    if isinstance(error, InvalidApiKey):
        return 401, ErrorEnvelope(message=str(error), type="invalid_request_error")
    message = str(error) or "Internal server error"
    return 500, ErrorEnvelope(message=message, type="server_error")


def error_response(error: Exception) -> JSONResponse:
    status_code, envelope = error_envelope(error)
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


def register_error_handlers(app: FastAPI) -> None:
    """
    Install handlers that render every failure as an error envelope.

    Call before adding MirrorCORSMiddleware so CORS headers also reach the
    500 responses produced for unhandled errors.
    """
    app.add_middleware(UnhandledErrorMiddleware)

    @app.exception_handler(GatewayError)
    async def _gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
        response = error_response(exc)
        if response.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
        return response


class UnhandledErrorMiddleware:
    """
    Render exceptions no handler claimed as a 500 envelope.

    Sits inside the CORS layer. An error raised after the response has
    started cannot be rendered and is re-raised.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_tracking(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_tracking)
        except Exception as exc:
            if response_started:
                raise
            logger.exception(f"Unhandled error on {scope['method']} {scope['path']}")
            await error_response(exc)(scope, receive, send)
