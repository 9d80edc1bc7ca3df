"""
Chat Gateway - OpenAI-compatible HTTP gateway.

Application factory for the FastAPI app.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from gateway.config import GatewayConfig
from gateway.errors import register_error_handlers
from gateway.logging import get_logger
from gateway.middleware import MirrorCORSMiddleware
from gateway.routers import internal, openai
from gateway.services.client import ClientOptions, build_client
from gateway.state import AppState

logger = get_logger(__name__)


def _init_state(config: GatewayConfig) -> AppState:
    """Build the shared state: one outbound client and the API key."""
    state = AppState(
        client=build_client(ClientOptions.from_config(config)),
        api_key=config.api_key,
    )
    logger.info(f"HTTP client initialized for upstream {config.upstream_url}")
    if state.api_key is None:
        logger.warning("No api_key configured, requests are not authenticated")
    return state


async def _shutdown_http_client(state: AppState) -> None:
    """Close the shared HTTP client."""
    await state.client.aclose()
    logger.info("HTTP client closed")


def create_app(config: GatewayConfig) -> FastAPI:
    """Build the gateway application around a single AppState."""
    state = _init_state(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager - closes the client on shutdown."""
        yield
        await _shutdown_http_client(state)

    app = FastAPI(
        title="Chat Gateway",
        description="OpenAI-compatible chat completion gateway",
        lifespan=lifespan,
    )
    app.state.gateway = state

    register_error_handlers(app)
    app.add_middleware(MirrorCORSMiddleware)

    app.include_router(openai.router)
    app.include_router(internal.router)
    return app
