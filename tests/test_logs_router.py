"""Tests for the live build-log WebSocket endpoint."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from tinyci.api.routers.logs import MAX_MESSAGE_SIZE
from tinyci.main import create_app

BUILD_ID = "5a1b2c3d-0000-4000-8000-000000000001"


@pytest.fixture
def registry():
    mock = MagicMock()
    mock.register = AsyncMock()
    mock.discard = AsyncMock()
    return mock


@pytest.fixture
def client(registry):
    app = create_app()
    app.state.log_registry = registry
    return TestClient(app)


def test_connect_registers_and_disconnect_discards(client, registry):
    """WebSocket lifecycle: register on connect, discard on disconnect."""
    with client.websocket_connect(f"/api/logs/{BUILD_ID}"):
        pass

    registry.register.assert_awaited_once()
    assert registry.register.await_args.args[0] == BUILD_ID
    registry.discard.assert_awaited_once()
    socket = registry.register.await_args.args[1]
    assert registry.discard.await_args.args == (BUILD_ID, socket)


def test_oversized_message_closes_socket(client, registry):
    with client.websocket_connect(f"/api/logs/{BUILD_ID}") as ws:
        ws.send_text("x" * (MAX_MESSAGE_SIZE + 1))
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_text()

    assert exc_info.value.code == 1009
    registry.discard.assert_awaited_once()
