"""
Outbound client - the single httpx client shared by every request.
"""
from __future__ import annotations

import socket
from dataclasses import dataclass
from typing import List, Optional, Tuple

import httpx

from gateway.config import GatewayConfig

# Connections kept in the pool per client
MAX_CONNECTIONS = 100
MAX_KEEPALIVE_CONNECTIONS = 20
# httpx default, used when no TCP keepalive is configured
DEFAULT_KEEPALIVE_EXPIRY = 5.0


@dataclass(frozen=True)
class ClientOptions:
    """Settings for the shared outbound client."""
    timeout: float
    connect_timeout: float
    tcp_keepalive: Optional[int] = None
    base_url: str = ""
    upstream_api_key: Optional[str] = None

    @classmethod
    def from_config(cls, config: GatewayConfig) -> "ClientOptions":
        return cls(
            timeout=config.timeout,
            connect_timeout=config.connect_timeout,
            tcp_keepalive=config.tcp_keepalive,
            base_url=config.upstream_url,
            upstream_api_key=config.upstream_api_key,
        )


def keepalive_socket_options(seconds: Optional[int]) -> List[Tuple[int, int, int]]:
    """
    Socket options enabling TCP keepalive probes after `seconds` of idle time.
    Platforms without TCP_KEEPIDLE/TCP_KEEPINTVL only get SO_KEEPALIVE.
    """
    if not seconds:
        return []

    options = [(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)]
    if hasattr(socket, "TCP_KEEPIDLE"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, seconds))
    if hasattr(socket, "TCP_KEEPINTVL"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, seconds))
    return options


def build_client(options: ClientOptions) -> httpx.AsyncClient:
    """
    Build the shared outbound client.

    The overall timeout applies to each read/write/pool wait; the connect
    phase has its own limit. Idle pooled connections live as long as the
    TCP keepalive interval.
    """
    timeout = httpx.Timeout(options.timeout, connect=options.connect_timeout)
    limits = httpx.Limits(
        max_connections=MAX_CONNECTIONS,
        max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
        keepalive_expiry=options.tcp_keepalive or DEFAULT_KEEPALIVE_EXPIRY,
    )
    transport = httpx.AsyncHTTPTransport(
        limits=limits,
        socket_options=keepalive_socket_options(options.tcp_keepalive),
    )

    headers = {}
    if options.upstream_api_key:
        headers["Authorization"] = f"Bearer {options.upstream_api_key}"

    return httpx.AsyncClient(
        base_url=options.base_url,
        headers=headers,
        timeout=timeout,
        transport=transport,
    )
