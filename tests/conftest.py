"""
Shared test fixtures and helpers.
"""
from __future__ import annotations

import os
from typing import Dict, Generator

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from gateway.config import GatewayConfig
from gateway.main import create_app
from gateway.state import AppState


UPSTREAM_URL = "https://upstream.test"
TEST_API_KEY = "sk-gateway-test-key"

SAMPLE_MODELS = {
    "object": "list",
    "data": [
        {"id": "gpt-4o", "object": "model", "owned_by": "openai"},
        {"id": "gpt-4o-mini", "object": "model", "owned_by": "openai"},
    ],
}

SAMPLE_COMPLETION = {
    "id": "chatcmpl-123",
    "object": "chat.completion",
    "model": "gpt-4o",
    "choices": [
        {
            "index": 0,
            "message": {"role": "assistant", "content": "Hello!"},
            "finish_reason": "stop",
        }
    ],
}


def bearer(token: str) -> Dict[str, str]:
    """Authorization header carrying a bearer token."""
    return {"Authorization": f"Bearer {token}"}


def chat_request(content: str = "Hi") -> dict:
    """A minimal chat completion request body."""
    return {"model": "gpt-4o", "messages": [{"role": "user", "content": content}]}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep GATEWAY_* variables from the outer environment out of tests."""
    for name in list(os.environ):
        if name.startswith("GATEWAY_"):
            monkeypatch.delenv(name)


@pytest.fixture
def gateway_config() -> GatewayConfig:
    """Config with an API key and a fake upstream."""
    return GatewayConfig(
        bind="127.0.0.1:0",
        api_key=TEST_API_KEY,
        upstream_url=UPSTREAM_URL,
        upstream_api_key="sk-upstream",
    )


@pytest.fixture
def open_config() -> GatewayConfig:
    """Config without an API key: every request is admitted."""
    return GatewayConfig(bind="127.0.0.1:0", upstream_url=UPSTREAM_URL)


@pytest.fixture
def app(gateway_config) -> FastAPI:
    return create_app(gateway_config)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Test client with the lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def open_client(open_config) -> Generator[TestClient, None, None]:
    with TestClient(create_app(open_config)) as test_client:
        yield test_client


@pytest.fixture
def app_state(httpx_mock) -> AppState:
    """AppState whose client talks to the mocked upstream."""
    return AppState(client=httpx.AsyncClient(base_url=UPSTREAM_URL), api_key=TEST_API_KEY)
