"""Tests for the process entry point wiring."""

import asyncio
import logging
import signal
import socket
from unittest.mock import AsyncMock, Mock

import pytest
import uvicorn
from fastapi.testclient import TestClient

import server_template.main as main_module
import server_template.server as server_module
from server_template.main import create_app
from server_template.server import ManagedServer, ServerListener, serve
from server_template.services.signal_dispatcher import SignalDispatcher, TriggerSource
from server_template.utils.config import Settings


def free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def wait_until(predicate, timeout=10.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        assert loop.time() < deadline, "condition not reached in time"
        await asyncio.sleep(0.05)


@pytest.fixture
def fake_database(monkeypatch):
    database = Mock(ping=AsyncMock(return_value=True), disconnect=AsyncMock())
    monkeypatch.setattr(server_module, "DatabaseClient", Mock(return_value=database))
    return database


@pytest.mark.asyncio
async def test_listener_closes_every_socket():
    sockets = [Mock(wait_closed=AsyncMock()), Mock(wait_closed=AsyncMock())]
    server = Mock(servers=sockets)
    listener = ServerListener(server)

    listener.close()
    await listener.wait_closed()

    for sock in sockets:
        sock.close.assert_called_once()
        sock.wait_closed.assert_awaited_once()


def test_managed_server_leaves_signals_alone(app):
    server = ManagedServer(uvicorn.Config(app))
    before = signal.getsignal(signal.SIGTERM)

    with server.capture_signals():
        assert signal.getsignal(signal.SIGTERM) is before
    server.install_signal_handlers()

    assert signal.getsignal(signal.SIGTERM) is before


def test_lifespan_pings_database(settings):
    database = Mock(ping=AsyncMock(return_value=True), disconnect=AsyncMock())
    app = create_app(settings, database=database)

    with TestClient(app) as client:
        assert client.get("/health/liveness").status_code == 200

    database.ping.assert_awaited_once()
    database.disconnect.assert_not_awaited()


@pytest.mark.asyncio
async def test_serve_returns_one_when_port_is_taken(fake_database, exit_codes, caplog):
    with socket.socket() as blocker:
        blocker.bind(("127.0.0.1", 0))
        blocker.listen()
        port = blocker.getsockname()[1]
        settings = Settings(host="127.0.0.1", port=port, environment="test", log_level="WARNING")

        with caplog.at_level(logging.ERROR):
            code = await asyncio.wait_for(serve(settings, exit_process=exit_codes.append), timeout=10)

    assert code == 1
    assert exit_codes == []
    assert "Server failed to start" in caplog.text


@pytest.mark.asyncio
async def test_serve_shuts_down_cleanly_on_sigterm(monkeypatch, fake_database, exit_codes, caplog):
    """Test a running server drains an open connection and exits with 0."""
    dispatchers = []

    class RecordingDispatcher(SignalDispatcher):
        def install(self):
            super().install()
            dispatchers.append(self)

    monkeypatch.setattr(server_module, "SignalDispatcher", RecordingDispatcher)
    port = free_port()
    settings = Settings(
        host="127.0.0.1", port=port, environment="test", log_level="WARNING", shutdown_timeout=5.0
    )

    with caplog.at_level(logging.INFO):
        serving = asyncio.create_task(serve(settings, exit_process=exit_codes.append))
        await wait_until(lambda: dispatchers or serving.done())
        assert not serving.done()

        _, writer = await asyncio.open_connection("127.0.0.1", port)
        await asyncio.sleep(0.2)
        dispatchers[0].fire(TriggerSource.SIGTERM)
        dispatchers[0].fire(TriggerSource.SIGINT)

        code = await asyncio.wait_for(serving, timeout=10)
        writer.close()

    assert code == 0
    assert exit_codes == [0]
    assert "Closed 1 open connection(s)" in caplog.text
    fake_database.ping.assert_awaited_once()
    fake_database.disconnect.assert_awaited_once()


def test_main_exits_with_serve_status(monkeypatch):
    monkeypatch.setattr("server_template.utils.config.load_dotenv", Mock())
    monkeypatch.setattr(server_module, "configure_logging", Mock())
    monkeypatch.setattr(server_module, "serve", AsyncMock(return_value=1))
    monkeypatch.delenv("PORT", raising=False)

    with pytest.raises(SystemExit) as exit_info:
        server_module.main()

    assert exit_info.value.code == 1
    server_module.serve.assert_awaited_once()


def test_importing_app_module_builds_nothing():
    assert not hasattr(main_module, "app")
