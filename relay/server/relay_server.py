"""WebSocket relay hub between operators and agents."""

import asyncio
import contextlib
import time
from typing import Any, Dict, Optional, Set

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from .dispatcher import FanoutDispatcher
from .events import AgentEventRelay
from .liveness import LivenessMonitor
from .negotiator import RoleNegotiator
from .protocol import Identification, MessageType, RelayMessage, parse_agent_event
from .registry import ConnectionRecord, ConnectionRegistry, Role
from .router import CommandRouter
from .state import SessionStateStore
from config import (
    RELAY_SERVER_HOST,
    RELAY_SERVER_PORT,
    RELAY_OPERATOR_SECRET,
    RELAY_IDENTIFICATION_TIMEOUT,
    RELAY_HEARTBEAT_INTERVAL,
    RELAY_CLOSE_TIMEOUT,
    RELAY_SEND_TIMEOUT,
    RELAY_BIND_RETRY_DELAY,
    RELAY_MAX_MESSAGE_SIZE,
)
from relay.errors import HubStartupError, ImageDecodeError
from storage.images import ImageStore
from utils.logger import logger
from utils.system import memory_usage


def _text(message: Any) -> str:
    if isinstance(message, bytes):
        return message.decode("utf-8", errors="replace")
    return message


class RelayServer:
    """Relay hub: accepts connections, negotiates roles and routes traffic.

    Features:
    - First-frame role negotiation with an identification timeout
    - Operator command routing and agent event relay
    - Heartbeat monitoring with lazy reaping of dead peers
    - Shutdown notice to every peer before closing

    Every registry mutation, for any connection, runs under one lock, so
    each inbound frame is handled to completion before the next one.
    """

    def __init__(
        self,
        host: str = RELAY_SERVER_HOST,
        port: int = RELAY_SERVER_PORT,
        secret: str = RELAY_OPERATOR_SECRET,
        identification_timeout: float = RELAY_IDENTIFICATION_TIMEOUT,
        heartbeat_interval: float = RELAY_HEARTBEAT_INTERVAL,
        send_timeout: float = RELAY_SEND_TIMEOUT,
        image_store: Optional[ImageStore] = None,
    ):
        self.host = host
        self.port = port
        self.started_at = time.time()

        self.agents = ConnectionRegistry(Role.AGENT)
        self.operators = ConnectionRegistry(Role.OPERATOR)
        self.states = SessionStateStore()
        self.dispatcher = FanoutDispatcher(send_timeout=send_timeout)
        self.image_store = image_store or ImageStore()

        self._lock = asyncio.Lock()
        self.negotiator = RoleNegotiator(secret, timeout=identification_timeout)
        self.router = CommandRouter(
            self.agents, self.operators, self.states, self.dispatcher,
            port=port, started_at=self.started_at,
        )
        self.events = AgentEventRelay(
            self.agents, self.operators, self.states, self.dispatcher,
            on_image=self._schedule_image_save,
        )
        self.liveness = LivenessMonitor(
            [self.agents, self.operators], self.dispatcher,
            interval=heartbeat_interval, lock=self._lock,
        )
        self.agents.set_listeners(
            on_register=self._agent_registered,
            on_unregister=self._agent_unregistered,
        )

        # Server state
        self._server: Optional[Server] = None
        self._running = False
        self._stopped = asyncio.Event()
        self._background: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Registry listeners
    # ------------------------------------------------------------------

    async def _agent_registered(self, record: ConnectionRecord) -> None:
        self.states.upsert(record.id, device_label=record.device_label)
        await self.dispatcher.broadcast(self.operators, RelayMessage.of(
            MessageType.AGENT_CONNECTED,
            agent_id=record.id,
            address=record.remote_address,
            port=record.remote_port,
            device_label=record.device_label,
        ))

    async def _agent_unregistered(self, record: ConnectionRecord) -> None:
        # State goes first so no operator can read it after the notice
        self.states.remove(record.id)
        await self.dispatcher.broadcast(self.operators, RelayMessage.of(
            MessageType.AGENT_DISCONNECTED, agent_id=record.id,
        ))

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    async def handle_connection(self, websocket: ServerConnection) -> None:
        """Handle a single accepted connection for its whole lifetime."""
        negotiation = await self.negotiator.negotiate(websocket)
        if negotiation is None:
            return

        if negotiation.role is Role.OPERATOR:
            await self._serve_operator(websocket)
        else:
            await self._serve_agent(websocket, negotiation.first_frame)

    async def _serve_agent(self, websocket: Any, first_frame: Optional[str]) -> None:
        device_label = "unknown"
        if first_frame is not None:
            event = parse_agent_event(first_frame)
            if isinstance(event, Identification):
                device_label = event.device_label

        async with self._lock:
            agent_id = await self.agents.register(websocket, device_label=device_label)
            await self.dispatcher.unicast(self.agents, agent_id, RelayMessage.of(
                MessageType.WELCOME,
                message="Connected to relay hub",
                agent_id=agent_id,
            ))
            if first_frame is not None:
                await self._agent_frame(agent_id, websocket, first_frame)

        await self._read_loop(self.agents, agent_id, websocket, self._agent_frame)

    async def _serve_operator(self, websocket: Any) -> None:
        async with self._lock:
            operator_id = await self.operators.register(websocket)
            await self.dispatcher.unicast(self.operators, operator_id, RelayMessage.of(
                MessageType.OPERATOR_WELCOME,
                message="Connected as operator",
                operator_id=operator_id,
                stats={"agents": len(self.agents), "operators": len(self.operators)},
            ))

        await self._read_loop(self.operators, operator_id, websocket, self._operator_frame)

    async def _agent_frame(self, agent_id: int, websocket: Any, raw: str) -> None:
        record = self.agents.get(agent_id)
        if record is None or record.transport is not websocket:
            return
        record.touch()
        await self.events.handle(agent_id, raw)

    async def _operator_frame(self, operator_id: int, websocket: Any, raw: str) -> None:
        record = self.operators.get(operator_id)
        if record is None or record.transport is not websocket:
            return
        record.touch()
        await self.router.route(operator_id, raw)

    async def _read_loop(self, registry: ConnectionRegistry, conn_id: int, websocket: Any, handler) -> None:
        try:
            async for message in websocket:
                async with self._lock:
                    await handler(conn_id, websocket, _text(message))
                if conn_id not in registry:
                    break
        except ConnectionClosed:
            pass
        finally:
            async with self._lock:
                record = registry.get(conn_id)
                # The id may already belong to a newer connection
                if record is not None and record.transport is websocket:
                    await registry.unregister(conn_id)

    # ------------------------------------------------------------------
    # Background image persistence
    # ------------------------------------------------------------------

    def _schedule_image_save(self, agent_id: int, data: str) -> None:
        record = self.agents.get(agent_id)
        if record is None:
            return
        task = asyncio.create_task(self._save_image(agent_id, record, data))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _save_image(self, agent_id: int, record: ConnectionRecord, data: str) -> None:
        try:
            path = await asyncio.to_thread(self.image_store.save, data)
        except (ImageDecodeError, OSError) as e:
            logger.warning(f"agent {agent_id}: could not store image: {e}")
            return

        async with self._lock:
            if self.agents.get(agent_id) is not record:
                logger.info(f"agent {agent_id} left before its image was stored; not announcing {path}")
                return
            self.states.upsert(agent_id, wallpaper_path=str(path))
            await self.dispatcher.broadcast(self.operators, RelayMessage.of(
                MessageType.AGENT_IMAGE_SAVED, agent_id=agent_id, path=str(path),
            ))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _listen(self, port: int) -> Server:
        return await serve(
            self.handle_connection,
            self.host,
            port,
            ping_interval=None,  # LivenessMonitor owns heartbeats
            close_timeout=RELAY_CLOSE_TIMEOUT,
            max_size=RELAY_MAX_MESSAGE_SIZE,
        )

    async def start(self) -> None:
        """Bind the listening socket and start the liveness monitor.

        Raises:
            HubStartupError: binding failed twice.
        """
        try:
            self._server = await self._listen(self.port)
        except OSError as e:
            retry_port = self.port + 1 if self.port else 0
            logger.error(f"Cannot listen on {self.host}:{self.port} ({e}); "
                         f"retrying on port {retry_port} in {RELAY_BIND_RETRY_DELAY}s")
            await asyncio.sleep(RELAY_BIND_RETRY_DELAY)
            try:
                self._server = await self._listen(retry_port)
            except OSError as e2:
                raise HubStartupError(self.host, retry_port, e2) from e2
            self.port = retry_port

        if not self.port:
            self.port = next(iter(self._server.sockets)).getsockname()[1]
        self.router.port = self.port

        self._running = True
        self._stopped.clear()
        self.liveness.start()
        logger.info(f"Relay hub listening on ws://{self.host}:{self.port}")

    async def serve_forever(self) -> None:
        """Start and block until ``shutdown`` completes."""
        await self.start()
        await self.wait_closed()

    async def wait_closed(self) -> None:
        """Block until ``shutdown`` completes."""
        await self._stopped.wait()

    async def shutdown(self) -> None:
        """Notify every peer, close every connection, then release the socket."""
        if not self._running:
            return
        self._running = False
        logger.info("Relay hub shutting down")

        await self.liveness.stop()

        async with self._lock:
            notice = RelayMessage.server_shutdown()
            for registry in (self.agents, self.operators):
                await self.dispatcher.broadcast(registry, notice)
            for registry in (self.operators, self.agents):
                for record in registry.records():
                    await registry.unregister(record.id)
        await self.agents.wait_closed()
        await self.operators.wait_closed()

        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        for task in list(self._background):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._stopped.set()
        logger.info("Relay hub stopped")

    # ------------------------------------------------------------------
    # Read-only views (status endpoint)
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Aggregate counts for the status endpoint."""
        return {
            "agents": len(self.agents),
            "operators": len(self.operators),
            "agent_states": len(self.states),
            "uptime": time.time() - self.started_at,
            "memory": memory_usage(),
            "started_at": self.started_at,
            "port": self.port,
        }
