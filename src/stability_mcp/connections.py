"""SSE connection bookkeeping: connection cap, heartbeat sweep and per-connection writes."""

import asyncio
import json
import logging
import time
import uuid
from collections.abc import AsyncIterator, Callable
from typing import Any

from .errors import ConnectionLimitError
from .metrics import ServerMetrics

logger = logging.getLogger(__name__)

KEEP_ALIVE = ": keep-alive\n\n"


def format_sse(data: Any, event: str | None = None) -> str:
    """Frame one Server-Sent Event; dicts and lists are JSON-encoded."""
    payload = data if isinstance(data, str) else json.dumps(data, separators=(",", ":"))
    lines = [f"event: {event}"] if event else []
    lines.extend(f"data: {line}" for line in payload.splitlines() or [""])
    return "\n".join(lines) + "\n\n"


class Connection:
    """One open SSE session.

    Frames are queued and drained by a single writer (the SSE response), so
    tool responses and keep-alives never interleave on the wire.
    """

    def __init__(self, connection_id: str, now: float):
        self.id = connection_id
        self.created_at = now
        self.last_activity = now
        self.close_count = 0
        self._closed = False
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()

    @property
    def closed(self) -> bool:
        return self._closed

    def touch(self, now: float) -> None:
        self.last_activity = now

    def send(self, frame: str) -> bool:
        """Queue a raw SSE frame; False once the connection is closed."""
        if self._closed:
            return False
        self._queue.put_nowait(frame)
        return True

    def send_message(self, message: dict[str, Any]) -> bool:
        return self.send(format_sse(message))

    async def frames(self) -> AsyncIterator[str]:
        """Yield queued frames until the connection is closed."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame

    def close(self) -> bool:
        """Close the stream; only the first call has an effect."""
        if self._closed:
            return False
        self._closed = True
        self.close_count += 1
        self._queue.put_nowait(None)
        return True


class ConnectionManager:
    """Tracks active SSE connections and expires idle ones."""

    def __init__(
        self,
        max_connections: int = 100,
        inactivity_timeout: float = 30.0,
        heartbeat_interval: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
        metrics: ServerMetrics | None = None,
    ):
        self.max_connections = max_connections
        self.inactivity_timeout = inactivity_timeout
        self.heartbeat_interval = heartbeat_interval
        self.clock = clock
        self.metrics = metrics or ServerMetrics()
        self._connections: dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def open(self) -> Connection:
        """Register a new connection.

        Raises:
            ConnectionLimitError: If max_connections are already open
        """
        if len(self._connections) >= self.max_connections:
            self.metrics.connections_rejected += 1
            logger.warning("Rejecting connection: limit of %d reached", self.max_connections)
            raise ConnectionLimitError(self.max_connections)

        connection = Connection(uuid.uuid4().hex, self.clock())
        self._connections[connection.id] = connection
        self.metrics.connections_opened += 1
        self.metrics.active_connections = len(self._connections)
        logger.info("Connection %s opened (%d active)", connection.id, len(self._connections))
        return connection

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def touch(self, connection_id: str) -> Connection | None:
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.touch(self.clock())
        return connection

    def remove(self, connection_id: str, reason: str = "disconnected") -> bool:
        """Close and forget a connection. Returns False if it was already gone."""
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return False
        connection.close()
        self.metrics.connections_closed += 1
        self.metrics.active_connections = len(self._connections)
        logger.info("Connection %s closed: %s", connection_id, reason)
        return True

    def sweep(self) -> list[str]:
        """Expire idle connections and send keep-alives to the rest.

        Returns:
            IDs of the connections that were removed
        """
        now = self.clock()
        expired = []
        for connection in list(self._connections.values()):
            if now - connection.last_activity > self.inactivity_timeout:
                self.remove(connection.id, reason="inactive")
                expired.append(connection.id)
            else:
                connection.send(KEEP_ALIVE)
        return expired

    async def run_heartbeat(self) -> None:
        """Sweep every heartbeat_interval seconds until cancelled."""
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Heartbeat sweep failed")

    def close_all(self) -> None:
        for connection_id in list(self._connections):
            self.remove(connection_id, reason="server shutdown")
