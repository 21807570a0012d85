"""Connection registry: the set of open WebSocket clients plus fan-out.

A connection is anything with a `closed` property and an awaitable
`send_str(str)`; in the server that is an aiohttp WebSocketResponse.

Broadcast is best-effort: no acknowledgment, no retry, no ordering across
members. Closed members are skipped, not evicted; eviction only happens
through evict().
"""

import json
import logging
from typing import Any, Optional

from gateway import protocol

log = logging.getLogger("registry")


class ConnectionRegistry:
    """Tracks live connections and notifies members on join/leave."""

    def __init__(self):
        self._members: set = set()

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, conn: Any) -> bool:
        return conn in self._members

    async def admit(self, conn: Any) -> None:
        """Add a connection, then tell everyone else about it."""
        self._members.add(conn)
        log.info("Client connected (total: %d)", len(self._members))
        await self.broadcast(
            protocol.notification(f"Client connected. Total: {len(self._members)}"),
            exclude=conn,
        )

    async def evict(self, conn: Any) -> None:
        """Remove a connection (no-op if absent), then tell the remaining members."""
        self._members.discard(conn)
        log.info("Client disconnected (total: %d)", len(self._members))
        await self.broadcast(
            protocol.notification(f"Client disconnected. Total: {len(self._members)}")
        )

    async def broadcast(self, message: dict, exclude: Optional[Any] = None) -> int:
        """Send a message to every open member except `exclude`.

        Returns the number of members the message was handed to.
        """
        payload = json.dumps(message)
        sent = 0
        # Snapshot: admit/evict may run while we await sends
        for conn in list(self._members):
            if conn is exclude or conn.closed:
                continue
            try:
                await conn.send_str(payload)
                sent += 1
            except ConnectionError as e:
                log.warning("Broadcast send failed, skipping member: %s", e)
        return sent
