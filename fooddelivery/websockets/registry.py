"""
Websocket Connection Registry

In-memory maps from a recipient key to an open socket.

ConnectionRegistry (one socket per key, latest-connection-wins):
- register(key, socket): the new socket replaces the entry, then the prior
  socket for that key is closed with "Another session was opened"
- unregister(key, socket): removes the entry only if ``socket`` is still the
  registered one, so a replaced session's disconnect cannot evict its successor
- send(key, frame): fire-and-forget; False when nobody is connected, and a
  socket that is closed or fails to send is dropped from the registry

BroadcastRoom (any number of sockets, keyed by connection id):
- broadcast(frame): send to every socket, drop the dead ones afterwards

Both are used only from the event loop that serves the sockets; consumer
threads reach them through LoopBridge. Nothing is queued for disconnected
recipients.
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Optional

from starlette.websockets import WebSocketState

from fooddelivery.shared.events import BaseEvent

REPLACED_CLOSE_CODE = 1000
REPLACED_REASON = "Another session was opened"


def build_frame(event_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "event_type": event_type,
        "payload": payload,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def event_frame(event: BaseEvent) -> Dict[str, Any]:
    """Frame carrying an event's JSON body."""
    return build_frame(event.event_type, event.model_dump(mode="json"))


def is_open(socket) -> bool:
    return (
        socket.client_state == WebSocketState.CONNECTED
        and socket.application_state == WebSocketState.CONNECTED
    )


async def _send(socket, frame: Dict[str, Any]) -> None:
    await socket.send_text(json.dumps(frame, default=str, ensure_ascii=False))


class ConnectionRegistry:
    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(__name__)
        self._connections: Dict[str, Any] = {}

    async def register(self, key, socket) -> None:
        key = str(key)
        previous = self._connections.get(key)
        self._connections[key] = socket

        self.logger.info(
            "Connection registered",
            extra={"registry": self.name, "key": key, "replaced": previous is not None},
        )

        if previous is not None and previous is not socket:
            try:
                await previous.close(code=REPLACED_CLOSE_CODE, reason=REPLACED_REASON)
            except Exception as e:
                # Prior socket already gone
                self.logger.debug(
                    "Closing replaced connection failed",
                    extra={"registry": self.name, "key": key, "error": str(e)},
                )

    def unregister(self, key, socket=None) -> bool:
        key = str(key)
        current = self._connections.get(key)
        if current is None or (socket is not None and current is not socket):
            return False
        del self._connections[key]
        self.logger.info("Connection removed", extra={"registry": self.name, "key": key})
        return True

    def get(self, key):
        return self._connections.get(str(key))

    async def send(self, key, frame: Dict[str, Any]) -> bool:
        key = str(key)
        socket = self._connections.get(key)
        if socket is None:
            self.logger.debug("No connection for key", extra={"registry": self.name, "key": key})
            return False

        if not is_open(socket):
            self.unregister(key, socket)
            return False

        try:
            await _send(socket, frame)
        except Exception as e:
            self.logger.warning(
                "Send failed, dropping connection",
                extra={"registry": self.name, "key": key, "error": str(e)},
            )
            self.unregister(key, socket)
            return False
        return True

    def count(self) -> int:
        return len(self._connections)

    def keys(self) -> List[str]:
        return sorted(self._connections)


class BroadcastRoom:
    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(__name__)
        self._connections: Dict[str, Any] = {}

    def add(self, socket) -> str:
        connection_id = str(uuid.uuid4())
        self._connections[connection_id] = socket
        self.logger.info(
            "Broadcast connection added",
            extra={"room": self.name, "connection_id": connection_id, "total": len(self._connections)},
        )
        return connection_id

    def remove(self, connection_id: str) -> bool:
        return self._connections.pop(connection_id, None) is not None

    async def broadcast(self, frame: Dict[str, Any]) -> int:
        """Send to every open socket; returns how many succeeded."""
        dead: List[str] = []
        delivered = 0
        for connection_id, socket in list(self._connections.items()):
            if not is_open(socket):
                dead.append(connection_id)
                continue
            try:
                await _send(socket, frame)
                delivered += 1
            except Exception as e:
                self.logger.warning(
                    "Broadcast send failed",
                    extra={"room": self.name, "connection_id": connection_id, "error": str(e)},
                )
                dead.append(connection_id)

        for connection_id in dead:
            self.remove(connection_id)

        self.logger.debug(
            "Broadcast complete",
            extra={"room": self.name, "delivered": delivered, "removed": len(dead)},
        )
        return delivered

    def count(self) -> int:
        return len(self._connections)


class LoopBridge:
    """Runs coroutines on the gateway's event loop from consumer threads."""

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self.loop = loop or asyncio.get_running_loop()

    def run(self, coro: Awaitable):
        if self.loop is None or self.loop.is_closed():
            coro.close()
            raise RuntimeError("Gateway event loop is not running")
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout=self.timeout)
