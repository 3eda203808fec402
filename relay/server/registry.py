"""Connection registry: the set of live connections for one role."""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from utils.logger import logger


class Role(Enum):
    """Which side of the hub a connection belongs to."""
    AGENT = "agent"
    OPERATOR = "operator"


@dataclass
class ConnectionRecord:
    """Represents one live connection held by a registry."""
    id: int
    role: Role
    transport: Any  # websockets ServerConnection or a test double
    remote_address: str = "unknown"
    remote_port: Optional[int] = None
    connected_at: float = field(default_factory=time.time)
    last_activity_at: float = field(default_factory=time.time)
    message_count: int = 0
    live: bool = True
    device_label: str = "unknown"
    _closed: bool = field(default=False, repr=False)

    def touch(self) -> None:
        """Record inbound traffic."""
        self.last_activity_at = time.time()
        self.message_count += 1
        self.live = True

    def mark_alive(self) -> None:
        self.live = True

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Close the transport. Only the first call reaches the transport."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.transport.close()
        except Exception as e:
            logger.debug(f"{self.role.value} {self.id}: error while closing transport: {e}")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "address": self.remote_address,
            "port": self.remote_port,
            "connected_at": self.connected_at,
            "last_activity_at": self.last_activity_at,
            "message_count": self.message_count,
            "live": self.live,
        }
        if self.role is Role.AGENT:
            data["device_label"] = self.device_label
        return data


RegistryListener = Callable[[ConnectionRecord], Awaitable[None]]


class ConnectionRegistry:
    """Owns the live connections of one role and hands out small integer ids.

    Ids are the smallest unused positive integer, so an id becomes
    available again only once its holder has been unregistered. Listeners
    run after the record has been inserted or removed. Transports are
    closed in background tasks so a slow closing handshake never holds up
    the caller; ``wait_closed`` waits for them.
    """

    def __init__(
        self,
        role: Role,
        on_register: Optional[RegistryListener] = None,
        on_unregister: Optional[RegistryListener] = None,
    ):
        self.role = role
        self._records: Dict[int, ConnectionRecord] = {}
        self._on_register = on_register
        self._on_unregister = on_unregister
        self._closing: Set[asyncio.Task] = set()

    def set_listeners(
        self,
        on_register: Optional[RegistryListener] = None,
        on_unregister: Optional[RegistryListener] = None,
    ) -> None:
        """Set register/unregister callbacks."""
        self._on_register = on_register
        self._on_unregister = on_unregister

    def _next_id(self) -> int:
        candidate = 1
        while candidate in self._records:
            candidate += 1
        return candidate

    async def register(self, transport: Any, **info) -> int:
        """Store a record for ``transport`` and return its id."""
        address = getattr(transport, "remote_address", None) or ("unknown", None)
        record = ConnectionRecord(
            id=self._next_id(),
            role=self.role,
            transport=transport,
            remote_address=str(address[0]),
            remote_port=address[1] if len(address) > 1 else None,
            **info,
        )
        self._records[record.id] = record
        logger.info(f"{self.role.value} {record.id} registered from "
                    f"{record.remote_address}:{record.remote_port}")

        if self._on_register:
            await self._on_register(record)
        return record.id

    async def unregister(self, conn_id: int) -> Optional[ConnectionRecord]:
        """Remove a record and close its transport. Unknown ids are a no-op."""
        record = self._records.pop(conn_id, None)
        if record is None:
            return None

        task = asyncio.create_task(record.close())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)
        logger.info(f"{self.role.value} {conn_id} unregistered")

        if self._on_unregister:
            await self._on_unregister(record)
        return record

    async def wait_closed(self) -> None:
        """Wait until every unregistered transport has finished closing."""
        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)

    def get(self, conn_id: int) -> Optional[ConnectionRecord]:
        return self._records.get(conn_id)

    def ids(self) -> List[int]:
        return sorted(self._records)

    def records(self) -> List[ConnectionRecord]:
        """Snapshot of the current records, ordered by id."""
        return [self._records[i] for i in sorted(self._records)]

    def __contains__(self, conn_id: object) -> bool:
        return conn_id in self._records

    def __len__(self) -> int:
        return len(self._records)
