"""
Application state - built once at startup, shared read-only by every request.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request

from gateway.errors import InvalidApiKey


@dataclass(frozen=True)
class AppState:
    """
    Shared state container.

    Holds the single outbound client and the optional API key callers must
    present. Never mutated after construction, so handlers read it without
    locking.
    """
    client: httpx.AsyncClient
    api_key: Optional[str] = None

    def valid_key(self, token: Optional[str]) -> None:
        """
        Check a bearer token against the configured API key.

        Every token (or none) is accepted when no key is configured.
        Otherwise the token must equal the key exactly.

        Raises:
            InvalidApiKey: If a key is configured and the token does not match
        """
        if self.api_key is None:
            return
        if token != self.api_key:
            raise InvalidApiKey()


def get_state(request: Request) -> AppState:
    """FastAPI dependency returning the application's AppState."""
    return request.app.state.gateway
