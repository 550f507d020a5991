"""
WebSocket Server Tests
======================
Tests for the command surface and push path (no sockets opened).
"""

import json
import asyncio
import pytest
from unittest.mock import MagicMock

from datatracker.api.websocket import WebSocketServer


@pytest.fixture
def tracker():
    mock = MagicMock()
    mock.get_daily_data.return_value = {"2024-01-01": {"rx_tx_bytes": 10}}
    mock.get_network_info.return_value = {"interface": "wlan0", "networkName": "Home"}
    mock.reset_data.return_value = True
    mock.get_store_path.return_value = {"dataFile": "/tmp/daily.json"}
    return mock


@pytest.fixture
def server(tracker):
    return WebSocketServer(tracker, "127.0.0.1", 8765)


class TestCommands:
    """Request/response handling."""

    @pytest.mark.parametrize("command", WebSocketServer.COMMANDS)
    def test_known_commands(self, server, tracker, command):
        response = asyncio.run(server._process_message({"command": command, "id": 7}))

        assert response["type"] == "response"
        assert response["command"] == command
        assert response["id"] == 7
        assert response["data"] == getattr(tracker, command).return_value
        getattr(tracker, command).assert_called_once_with()

    def test_unknown_command(self, server, tracker):
        response = asyncio.run(server._process_message({"command": "shutdown", "id": 1}))

        assert response["type"] == "error"
        assert "shutdown" in response["error"]
        tracker.shutdown.assert_not_called()

    def test_private_attribute_not_callable(self, server):
        response = asyncio.run(server._process_message({"command": "_prev_sample"}))
        assert response["type"] == "error"

    def test_non_object_message(self, server):
        response = asyncio.run(server._process_message(["get_daily_data"]))
        assert response["type"] == "error"

    def test_failing_command_answers_with_error(self, server, tracker):
        """A command that raises gets an error reply; the connection stays up."""
        tracker.get_network_info.side_effect = RuntimeError("nmcli crashed")

        response = asyncio.run(server._process_message({"command": "get_network_info", "id": 3}))

        assert response["type"] == "error"
        assert response["command"] == "get_network_info"
        assert response["id"] == 3
        assert "nmcli crashed" in response["error"]

    def test_response_is_json_serializable(self, server):
        response = asyncio.run(server._process_message({"command": "get_daily_data", "id": "a"}))
        assert json.loads(json.dumps(response)) == response


class TestPublish:
    """Push path when the server is not running."""

    def test_publish_without_loop_keeps_last_message(self, server):
        server.publish({"speedBytesPerSec": 5.0})

        message = json.loads(server._last_message)
        assert message == {"type": "network-update", "data": {"speedBytesPerSec": 5.0}}

    def test_publish_without_clients_schedules_nothing(self, server):
        server.running = True
        server.loop = MagicMock()

        server.publish({"speedBytesPerSec": 1.0})
        server.loop.call_soon_threadsafe.assert_not_called()

    def test_publish_with_clients_hands_off_to_loop(self, server):
        server.running = True
        server.loop = MagicMock()
        server.clients.add(MagicMock())

        server.publish({"speedBytesPerSec": 1.0})
        server.loop.call_soon_threadsafe.assert_called_once()
