"""Shared fixtures for the server template tests."""

import asyncio
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from server_template.main import create_app
from server_template.services.connection_tracker import ConnectionTracker
from server_template.utils.config import Settings


class FakeListener:
    """Stands in for the uvicorn listening sockets."""

    def __init__(self, calls, close_error=None, wait_error=None):
        self.calls = calls
        self.close_error = close_error
        self.wait_error = wait_error
        self.closed = False

    def close(self):
        self.calls.append("listener.close")
        if self.close_error:
            raise self.close_error
        self.closed = True

    async def wait_closed(self):
        if self.wait_error:
            raise self.wait_error


class FakeResource:
    """Database handle with a controllable disconnect."""

    def __init__(self, calls, error=None, hang=False):
        self.calls = calls
        self.error = error
        self.hang = hang
        self.disconnect_count = 0

    async def disconnect(self):
        self.calls.append("resource.disconnect")
        self.disconnect_count += 1
        await asyncio.sleep(0)
        if self.hang:
            await asyncio.Event().wait()
        if self.error:
            raise self.error


@pytest.fixture
def calls():
    return []


@pytest.fixture
def exit_codes():
    return []


@pytest.fixture
def exit_process(exit_codes):
    return Mock(side_effect=exit_codes.append)


@pytest.fixture
def make_connection():
    def _make():
        return Mock(name="connection", abort=Mock())

    return _make


@pytest.fixture
def tracker():
    return ConnectionTracker()


@pytest.fixture
def settings():
    return Settings(environment="test", log_level="WARNING")


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    return TestClient(app)
