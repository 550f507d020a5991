"""
WebSocket Server for DataTracker clients
========================================
Live push channel and request/response command surface for GUIs.

Communication Protocol (JSON messages):
  - server -> client: {"type": "network-update", "data": payload} every tick
  - client -> server: {"command": "...", "id": ...}
  - server -> client: {"type": "response", "command": ..., "id": ..., "data": ...}
                      {"type": "error", "command": ..., "id": ..., "error": ...}

Commands: get_daily_data, get_network_info, reset_data, get_store_path
"""

import asyncio
import json
import logging
import threading
from typing import Optional, TYPE_CHECKING

import websockets

if TYPE_CHECKING:
    from ..tracker import Tracker

logger = logging.getLogger(__name__)


class WebSocketServer:
    """
    Async WebSocket server running in a separate thread.

    Registered on the BroadcastPort as a consumer via publish().
    """

    COMMANDS = ("get_daily_data", "get_network_info", "reset_data", "get_store_path")

    def __init__(self, tracker: "Tracker", host: str = "127.0.0.1", port: int = 8765):
        self.tracker = tracker
        self.host = host
        self.port = port
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.thread: Optional[threading.Thread] = None
        self.running = False
        self.clients = set()

        # Last pushed update, replayed to clients on connect
        self._last_message: Optional[str] = None

    def start(self):
        """Start the WebSocket server thread."""
        self.running = True
        self.thread = threading.Thread(
            target=self._run_server,
            name="DataTracker-WebSocket",
            daemon=True
        )
        self.thread.start()

    def stop(self):
        """Stop server and close connections."""
        self.running = False
        if self.thread:
            self.thread.join(timeout=2.0)

    def _run_server(self):
        """Main server loop in separate thread."""
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        async def runner():
            async with websockets.serve(self._handler, self.host, self.port):
                logger.info(f"WebSocket server listening on ws://{self.host}:{self.port}")
                while self.running:
                    await asyncio.sleep(0.1)

        try:
            self.loop.run_until_complete(runner())
        except OSError as e:
            logger.error(f"WebSocket server error: {e}")
        finally:
            pending = asyncio.all_tasks(self.loop)
            for task in pending:
                task.cancel()

            if pending:
                self.loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))

            self.loop.close()
            self.loop = None

    # ========================================================================
    # PUSH
    # ========================================================================

    def publish(self, payload: dict):
        """BroadcastPort consumer; safe to call from any thread."""
        message = json.dumps({"type": "network-update", "data": payload})
        self._last_message = message

        loop = self.loop
        if not self.running or loop is None or not self.clients:
            return
        loop.call_soon_threadsafe(self._schedule_broadcast, message)

    def _schedule_broadcast(self, message: str):
        self.loop.create_task(self._broadcast(message))

    async def _broadcast(self, message: str):
        await asyncio.gather(
            *[client.send(message) for client in list(self.clients)],
            return_exceptions=True
        )

    # ========================================================================
    # COMMANDS
    # ========================================================================

    async def _handler(self, websocket):
        """Handle individual client connection."""
        self.clients.add(websocket)

        try:
            if self._last_message:
                await websocket.send(self._last_message)

            async for message in websocket:
                try:
                    msg = json.loads(message)
                except ValueError:
                    await websocket.send(json.dumps({"type": "error", "error": "invalid JSON"}))
                    continue
                response = await self._process_message(msg)
                await websocket.send(json.dumps(response))
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            self.clients.discard(websocket)

    async def _process_message(self, msg: dict) -> dict:
        """Run a client command against the tracker."""
        if not isinstance(msg, dict):
            return {"type": "error", "error": "message must be an object"}

        cmd = msg.get("command")
        request_id = msg.get("id")

        if cmd not in self.COMMANDS:
            return {
                "type": "error",
                "command": cmd,
                "id": request_id,
                "error": f"unknown command: {cmd}",
            }

        # Commands touch the disk and the OS; keep them off the event loop
        handler = getattr(self.tracker, cmd)
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, handler)
        except Exception as e:
            logger.exception(f"Command {cmd} failed: {e}")
            return {
                "type": "error",
                "command": cmd,
                "id": request_id,
                "error": f"{cmd} failed: {e}",
            }

        return {"type": "response", "command": cmd, "id": request_id, "data": data}
