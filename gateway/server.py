"""
Server lifecycle - binds the plaintext or TLS listener and serves until drained.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from typing import Optional

from fastapi import FastAPI
from hypercorn.asyncio import serve as hypercorn_serve
from hypercorn.config import Config as HypercornConfig

from gateway.config import GatewayConfig
from gateway.errors import StartupError
from gateway.logging import get_logger
from gateway.shutdown import ShutdownCoordinator

logger = get_logger(__name__)

# Offered on TLS listeners; plaintext listeners accept h2 with prior knowledge
ALPN_PROTOCOLS = ["h2", "http/1.1"]


def build_server_config(config: GatewayConfig) -> HypercornConfig:
    """
    Translate gateway settings into hypercorn settings.

    TLS is enabled only when both a certificate and a key are configured;
    anything less serves plaintext. HTTP/1.1 and HTTP/2 are served on both
    branches. There is no deadline on the graceful drain.
    """
    server_config = HypercornConfig()
    server_config.bind = [config.bind]
    server_config.alpn_protocols = list(ALPN_PROTOCOLS)
    # None lets the drain wait for every in-flight request
    server_config.graceful_timeout = None
    server_config.accesslog = logging.getLogger("hypercorn.access")
    server_config.errorlog = logging.getLogger("hypercorn.error")
    if config.tcp_keepalive:
        server_config.keep_alive_timeout = config.tcp_keepalive

    tls = config.tls_files()
    if tls is not None:
        cert, key = tls
        server_config.certfile = str(cert)
        server_config.keyfile = str(key)

    return server_config


def bind_listener(config: GatewayConfig) -> socket.socket:
    """
    Bind the listening socket up front so bind failures surface as StartupError.

    Raises:
        StartupError: If the address is in use, not permitted or invalid
    """
    family = socket.AF_INET6 if ":" in config.host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((config.host, config.port))
    except OSError as e:
        sock.close()
        raise StartupError(f"Cannot bind {config.bind}: {e}") from e
    sock.set_inheritable(True)
    return sock


class ServerLifecycle:
    """
    Owns the hypercorn settings and the shutdown coordinator for one run.

    Usage:
        lifecycle = ServerLifecycle(config, create_app(config))
        await lifecycle.start()
    """

    def __init__(self, config: GatewayConfig, app: FastAPI):
        self.config = config
        self.app = app
        self.server_config = build_server_config(config)
        self.coordinator = ShutdownCoordinator()
        self._port: Optional[int] = None

    @property
    def tls_enabled(self) -> bool:
        return self.server_config.ssl_enabled

    @property
    def port(self) -> int:
        """Port actually bound, useful when configured with port 0."""
        if self._port is None:
            return self.config.port
        return self._port

    def _load_tls(self) -> None:
        if not self.tls_enabled:
            return
        try:
            self.server_config.create_ssl_context()
        except OSError as e:
            raise StartupError(f"Cannot load TLS certificate/key: {e}") from e

    def _hand_over(self, sock: socket.socket) -> None:
        """Give the bound socket to hypercorn, which closes it on shutdown."""
        self._port = sock.getsockname()[1]
        self.server_config.bind = [f"fd://{sock.detach()}"]

    async def start(self) -> None:
        """
        Serve until the coordinator drains the listener.

        Raises:
            StartupError: If TLS material cannot be loaded or the bind fails
        """
        self._load_tls()
        self._hand_over(bind_listener(self.config))

        scheme = "https" if self.tls_enabled else "http"
        logger.info(f"Bind address: {self.config.bind} ({scheme}, h2 + http/1.1)")

        watcher = asyncio.create_task(self.coordinator.watch())
        try:
            await hypercorn_serve(
                self.app,
                self.server_config,
                shutdown_trigger=self.coordinator.wait_for_drain,
            )
        finally:
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher
            self.coordinator.mark_stopped()


async def serve(config: GatewayConfig, app: FastAPI) -> None:
    """Run the gateway until a termination signal has been handled."""
    await ServerLifecycle(config, app).start()
