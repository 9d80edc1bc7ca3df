"""
Auth service - bearer token admission for the OpenAI-compatible endpoints.
"""
from __future__ import annotations

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gateway.state import AppState, get_state

# auto_error=False: a missing header or a non-Bearer scheme yields None
bearer_scheme = HTTPBearer(auto_error=False)


async def authorize(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    state: AppState = Depends(get_state),
) -> None:
    """
    Reject the request unless its bearer token matches the configured key.

    Raises:
        InvalidApiKey: Rendered as 401 by the error handlers
    """
    token = credentials.credentials if credentials is not None else None
    state.valid_key(token)
