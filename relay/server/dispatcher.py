"""Unicast and broadcast delivery over a connection registry."""

import asyncio
from typing import Any, Dict, Union

from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from .protocol import RelayMessage, encode
from .registry import ConnectionRegistry
from config import RELAY_SEND_TIMEOUT
from utils.logger import logger

Payload = Union[str, Dict[str, Any], RelayMessage]


def is_sendable(transport: Any) -> bool:
    """True if the transport is open for writing."""
    return getattr(transport, "state", None) is State.OPEN


class FanoutDispatcher:
    """Delivers payloads to one connection or to every connection of a registry.

    Send failures are never raised to the caller. A connection whose send
    fails, or does not complete within ``send_timeout`` because the peer
    stopped reading, is treated as already dead and reaped through
    ``mark_dead``.
    """

    def __init__(self, send_timeout: float = RELAY_SEND_TIMEOUT):
        self.send_timeout = send_timeout

    async def unicast(self, registry: ConnectionRegistry, conn_id: int, payload: Payload) -> bool:
        """Send ``payload`` to one connection. Returns False if it was not delivered."""
        record = registry.get(conn_id)
        if record is None:
            logger.debug(f"{registry.role.value} {conn_id} not found")
            return False

        if record.closed or not is_sendable(record.transport):
            # Stale entry: the peer went away before we noticed
            await self.mark_dead(registry, conn_id)
            return False

        try:
            await asyncio.wait_for(record.transport.send(encode(payload)), self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Send to {registry.role.value} {conn_id} timed out "
                           f"after {self.send_timeout}s")
        except (ConnectionClosed, OSError) as e:
            logger.warning(f"Send to {registry.role.value} {conn_id} failed: {e}")
        await self.mark_dead(registry, conn_id)
        return False

    async def broadcast(self, registry: ConnectionRegistry, payload: Payload) -> int:
        """Send ``payload`` to every connection in ``registry``; returns the delivered count.

        Sends run concurrently, so one slow peer delays a broadcast by at
        most ``send_timeout``.
        """
        frame = encode(payload)
        records = registry.records()
        results = await asyncio.gather(*(
            self.unicast(registry, record.id, frame) for record in records
        ))
        delivered = sum(1 for ok in results if ok)

        failed = len(results) - delivered
        if failed:
            logger.info(f"Broadcast to {registry.role.value}s: {delivered} delivered, {failed} failed")
        return delivered

    async def mark_dead(self, registry: ConnectionRegistry, conn_id: int) -> None:
        """Drop a connection that can no longer be reached."""
        if await registry.unregister(conn_id) is not None:
            logger.info(f"Reaped dead {registry.role.value} {conn_id}")
