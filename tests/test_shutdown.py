"""
Tests for graceful shutdown - signal handling and draining in-flight requests.
"""
import asyncio
import os
import signal

import httpx
import pytest
from fastapi import FastAPI

from gateway.config import GatewayConfig
from gateway.server import ServerLifecycle
from gateway.shutdown import ShutdownCoordinator, ShutdownState


async def wait_until(predicate, timeout: float = 5.0) -> None:
    """Poll predicate until it holds or fail after timeout."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.02)


async def can_connect(port: int) -> bool:
    try:
        _, writer = await asyncio.open_connection("127.0.0.1", port)
    except OSError:
        return False
    writer.close()
    await writer.wait_closed()
    return True


async def wait_for_listener(port: int, timeout: float = 5.0) -> None:
    """Wait until the server accepts connections on port."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not await can_connect(port):
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("listener never came up")
        await asyncio.sleep(0.05)


class TestShutdownCoordinator:
    """Tests for the RUNNING -> DRAINING -> STOPPED state machine."""

    def test_starts_running(self):
        assert ShutdownCoordinator().state is ShutdownState.RUNNING

    async def test_begin_drain_releases_trigger(self):
        """Draining releases whoever waits for the shutdown trigger."""
        coordinator = ShutdownCoordinator()
        trigger = asyncio.create_task(coordinator.wait_for_drain())
        await asyncio.sleep(0)
        assert not trigger.done()

        coordinator.begin_drain()

        await asyncio.wait_for(trigger, timeout=1)
        assert coordinator.state is ShutdownState.DRAINING

    def test_begin_drain_is_idempotent(self):
        coordinator = ShutdownCoordinator()
        coordinator.begin_drain()

        coordinator.begin_drain()

        assert coordinator.state is ShutdownState.DRAINING

    def test_no_return_to_running(self):
        """Once stopped, draining again changes nothing."""
        coordinator = ShutdownCoordinator()
        coordinator.begin_drain()
        coordinator.mark_stopped()

        coordinator.begin_drain()

        assert coordinator.state is ShutdownState.STOPPED

    @pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGINT])
    async def test_signal_triggers_drain(self, sig):
        """SIGTERM and SIGINT both start the drain."""
        coordinator = ShutdownCoordinator()
        watcher = asyncio.create_task(coordinator.watch())
        await asyncio.sleep(0)

        os.kill(os.getpid(), sig)
        await asyncio.wait_for(watcher, timeout=5)

        assert coordinator.received_signal == sig
        assert coordinator.state is ShutdownState.DRAINING
        await asyncio.wait_for(coordinator.wait_for_drain(), timeout=1)

    async def test_cancelled_watch_leaves_state_alone(self):
        """Cancelling the watcher is not a shutdown request."""
        coordinator = ShutdownCoordinator()
        watcher = asyncio.create_task(coordinator.watch())
        await asyncio.sleep(0)

        watcher.cancel()
        with pytest.raises(asyncio.CancelledError):
            await watcher

        assert coordinator.state is ShutdownState.RUNNING


@pytest.fixture
def slow_app():
    """App whose /slow request blocks until released."""
    app = FastAPI()
    app.state.release = asyncio.Event()
    app.state.entered = asyncio.Event()

    @app.get("/ping")
    async def ping():
        return {"pong": True}

    @app.get("/slow")
    async def slow():
        app.state.entered.set()
        await app.state.release.wait()
        return {"done": True}

    return app


class TestServing:
    """End-to-end tests against a real listener."""

    async def test_http2_negotiated_on_plaintext(self, slow_app):
        """An h2 client with prior knowledge is served over HTTP/2."""
        lifecycle = ServerLifecycle(GatewayConfig(bind="127.0.0.1:0"), slow_app)
        serving = asyncio.create_task(lifecycle.start())
        await wait_until(lambda: lifecycle._port is not None)
        await wait_for_listener(lifecycle.port)

        async with httpx.AsyncClient(http1=False, http2=True) as client:
            response = await client.get(f"http://127.0.0.1:{lifecycle.port}/ping")

        assert response.status_code == 200
        assert response.http_version == "HTTP/2"
        assert response.json() == {"pong": True}

        lifecycle.coordinator.begin_drain()
        await asyncio.wait_for(serving, timeout=5)

    async def test_http1_still_served(self, slow_app):
        lifecycle = ServerLifecycle(GatewayConfig(bind="127.0.0.1:0"), slow_app)
        serving = asyncio.create_task(lifecycle.start())
        await wait_until(lambda: lifecycle._port is not None)
        await wait_for_listener(lifecycle.port)

        async with httpx.AsyncClient() as client:
            response = await client.get(f"http://127.0.0.1:{lifecycle.port}/ping")

        assert response.http_version == "HTTP/1.1"
        assert response.status_code == 200

        lifecycle.coordinator.begin_drain()
        await asyncio.wait_for(serving, timeout=5)

    async def test_in_flight_request_completes_after_signal(self, slow_app):
        """After SIGTERM no new connections are accepted but the pending request finishes."""
        lifecycle = ServerLifecycle(GatewayConfig(bind="127.0.0.1:0", tcp_keepalive=None), slow_app)
        serving = asyncio.create_task(lifecycle.start())
        await wait_until(lambda: lifecycle._port is not None)
        port = lifecycle.port
        await wait_for_listener(port)

        async with httpx.AsyncClient() as client:
            in_flight = asyncio.create_task(client.get(f"http://127.0.0.1:{port}/slow"))
            await asyncio.wait_for(slow_app.state.entered.wait(), timeout=5)

            os.kill(os.getpid(), signal.SIGTERM)
            await wait_until(lambda: lifecycle.coordinator.state is ShutdownState.DRAINING)

            for _ in range(100):
                if not await can_connect(port):
                    break
                await asyncio.sleep(0.05)
            else:
                pytest.fail("listener still accepting connections while draining")

            assert not in_flight.done()
            slow_app.state.release.set()
            response = await asyncio.wait_for(in_flight, timeout=5)

        assert response.status_code == 200
        assert response.json() == {"done": True}

        await asyncio.wait_for(serving, timeout=5)
        assert lifecycle.coordinator.state is ShutdownState.STOPPED
