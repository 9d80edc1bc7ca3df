"""
CORS middleware that mirrors the caller's requested origin, method and headers.
"""
from __future__ import annotations

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

VARY_HEADERS = "Origin, Access-Control-Request-Method, Access-Control-Request-Headers"


class MirrorCORSMiddleware:
    """
    Permissive CORS layer.

    Instead of checking an allow-list, every response reflects the request:
    Access-Control-Allow-Origin echoes Origin, and on preflight (any OPTIONS
    request) Allow-Methods and Allow-Headers echo the Access-Control-Request-*
    values. Credentials are always allowed.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_headers = Headers(scope=scope)
        if scope["method"] == "OPTIONS":
            response = self.preflight_response(request_headers)
            await response(scope, receive, send)
            return

        await self.simple_response(scope, receive, send, request_headers)

    def preflight_response(self, request_headers: Headers) -> Response:
        headers = self._base_headers(request_headers)
        requested_method = request_headers.get("access-control-request-method")
        if requested_method is not None:
            headers["Access-Control-Allow-Methods"] = requested_method
        requested_headers = request_headers.get("access-control-request-headers")
        if requested_headers is not None:
            headers["Access-Control-Allow-Headers"] = requested_headers
        return Response(status_code=200, headers=headers)

    async def simple_response(
        self, scope: Scope, receive: Receive, send: Send, request_headers: Headers
    ) -> None:
        cors_headers = self._base_headers(request_headers)

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for key, value in cors_headers.items():
                    if key == "Vary":
                        headers.add_vary_header(value)
                    else:
                        headers[key] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)

    @staticmethod
    def _base_headers(request_headers: Headers) -> dict:
        headers = {
            "Access-Control-Allow-Credentials": "true",
            "Vary": VARY_HEADERS,
        }
        origin = request_headers.get("origin")
        if origin is not None:
            headers["Access-Control-Allow-Origin"] = origin
        return headers
