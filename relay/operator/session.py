"""Operator-side session: authentication, fixed-delay reconnect and cached hub view."""

import asyncio
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from relay.server.protocol import MessageType
from config import (
    OPERATOR_SERVER_URL,
    OPERATOR_RECONNECT_DELAY,
    OPERATOR_MAX_RECONNECT_ATTEMPTS,
    OPERATOR_AUTH_TIMEOUT,
    OPERATOR_DEFAULT_AGENT_PATH,
    RELAY_OPERATOR_SECRET,
)
from utils.logger import logger, log_exception


class SessionState(Enum):
    """Connection states of an operator session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_AUTH = "awaiting_auth"
    ACTIVE = "active"


@dataclass
class OperatorSelection:
    """Which agent commands are aimed at, plus the last path seen per agent."""
    agent_id: Optional[int] = None
    paths: Dict[int, str] = field(default_factory=dict)
    default_path: str = OPERATOR_DEFAULT_AGENT_PATH

    @property
    def broadcast_mode(self) -> bool:
        return self.agent_id is None

    def select(self, agent_id: int) -> None:
        self.agent_id = agent_id

    def clear(self) -> Optional[int]:
        previous, self.agent_id = self.agent_id, None
        return previous

    def path_for(self, agent_id: Optional[int]) -> str:
        if agent_id is None:
            return self.default_path
        return self.paths.get(agent_id, self.default_path)


# Keys an agent frame may carry its current directory under
_PATH_KEYS = ("current_path", "c_path", "path")

MessageListener = Callable[[Dict[str, Any]], None]
StateListener = Callable[[SessionState], None]


class OperatorSession:
    """Client-side state machine for one operator.

    DISCONNECTED -> CONNECTING -> AWAITING_AUTH -> ACTIVE, and back to
    DISCONNECTED when the transport closes. Reconnects wait a fixed delay
    and stop after ``max_attempts`` until ``request_reconnect`` is called.
    The selection and agent cache survive reconnects; fresh hub data
    replaces them.
    """

    def __init__(
        self,
        server_url: str = OPERATOR_SERVER_URL,
        secret: str = RELAY_OPERATOR_SECRET,
        reconnect_delay: float = OPERATOR_RECONNECT_DELAY,
        max_attempts: int = OPERATOR_MAX_RECONNECT_ATTEMPTS,
        auth_timeout: float = OPERATOR_AUTH_TIMEOUT,
        on_message: Optional[MessageListener] = None,
        on_state_change: Optional[StateListener] = None,
        connector: Callable[[str], Awaitable[Any]] = ws_connect,
    ):
        self.server_url = server_url
        self.secret = secret
        self.reconnect_delay = reconnect_delay
        self.max_attempts = max_attempts
        self.auth_timeout = auth_timeout
        self.on_message = on_message
        self.on_state_change = on_state_change
        self._connector = connector

        self.state = SessionState.DISCONNECTED
        self.attempts = 0
        self.operator_id: Optional[int] = None
        self.selection = OperatorSelection()
        self.agents: Dict[int, Dict[str, Any]] = {}
        self.cache_stale = False
        self.last_error: Optional[str] = None

        self._ws = None
        self._closing = False
        self._wakeup = asyncio.Event()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @property
    def active(self) -> bool:
        return self.state is SessionState.ACTIVE

    @property
    def waiting_for_manual_reconnect(self) -> bool:
        return self.state is SessionState.DISCONNECTED and self.attempts >= self.max_attempts

    def _transition(self, state: SessionState) -> None:
        if state is self.state:
            return
        logger.debug(f"operator session: {self.state.value} -> {state.value}")
        self.state = state
        if self.on_state_change:
            self.on_state_change(state)

    async def run(self) -> None:
        """Connect, and keep reconnecting until ``close`` is called."""
        while not self._closing:
            await self._connect_once()
            if self._closing:
                break

            if self.attempts < self.max_attempts:
                self.attempts += 1
                logger.info(f"Reconnecting in {self.reconnect_delay}s "
                            f"({self.attempts}/{self.max_attempts})")
                await self._pause(self.reconnect_delay)
            else:
                logger.warning("Maximum reconnect attempts reached; waiting for manual reconnect")
                await self._pause(None)

    async def _pause(self, timeout: Optional[float]) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout)
        except asyncio.TimeoutError:
            pass
        finally:
            self._wakeup.clear()

    async def _connect_once(self) -> None:
        self._transition(SessionState.CONNECTING)
        try:
            ws = await self._connector(self.server_url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            self.last_error = str(e)
            logger.warning(f"Connection to {self.server_url} failed: {e}")
            self._transition(SessionState.DISCONNECTED)
            return

        self._ws = ws
        try:
            self._transition(SessionState.AWAITING_AUTH)
            await ws.send(json.dumps({
                "type": MessageType.OPERATOR_AUTH.value,
                "secret": self.secret,
            }))
            first = await asyncio.wait_for(ws.recv(), timeout=self.auth_timeout)
            self.handle_frame(first)
            if not self.active:
                self.last_error = "Authentication failed"
                logger.warning("Operator authentication rejected by hub")
                return

            async for raw in ws:
                self.handle_frame(raw)
        except (ConnectionClosed, OSError, asyncio.TimeoutError) as e:
            self.last_error = str(e) or type(e).__name__
            logger.info(f"Operator connection lost: {self.last_error}")
        finally:
            self._ws = None
            await ws.close()
            self._on_disconnected()

    def _on_disconnected(self) -> None:
        self.operator_id = None
        # Cached agents are kept for display but no longer trusted
        self.cache_stale = True
        self._transition(SessionState.DISCONNECTED)

    def request_reconnect(self) -> None:
        """Manual reconnect: reset the attempt counter and retry now if idle."""
        self.attempts = 0
        if self.state is SessionState.DISCONNECTED:
            self._wakeup.set()

    async def close(self) -> None:
        """Stop the session for good."""
        self._closing = True
        self._wakeup.set()
        if self._ws is not None:
            await self._ws.close()

    async def send(self, data: Dict[str, Any]) -> bool:
        """Send an envelope to the hub. Returns False when not authenticated."""
        if not self.active or self._ws is None:
            return False
        try:
            await self._ws.send(json.dumps(data))
            return True
        except (ConnectionClosed, OSError) as e:
            logger.warning(f"Send failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    def handle_frame(self, raw: Any) -> Optional[Dict[str, Any]]:
        """Update local state from one hub frame, then notify the listener."""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug(f"Ignoring non-JSON frame from hub: {raw[:80]!r}")
            return None
        if not isinstance(message, dict):
            return None

        msg_type = message.get("type")

        if msg_type == MessageType.OPERATOR_WELCOME.value:
            self.operator_id = message.get("operator_id")
            self.attempts = 0
            self._transition(SessionState.ACTIVE)

        elif msg_type == MessageType.WELCOME.value and not self.active:
            # The hub onboarded us as an agent: the secret was wrong
            message = {**message, "type": MessageType.ERROR.value,
                       "message": "Authentication failed: hub treated this connection as an agent"}

        elif msg_type == MessageType.AGENT_LIST.value:
            self._replace_agents(message.get("agents") or [])

        elif msg_type == MessageType.AGENT_CONNECTED.value:
            agent_id = message.get("agent_id")
            self.agents[agent_id] = {
                "id": agent_id,
                "address": message.get("address"),
                "port": message.get("port"),
                "device_label": message.get("device_label"),
            }
            self.selection.paths.setdefault(agent_id, self.selection.default_path)

        elif msg_type == MessageType.AGENT_DISCONNECTED.value:
            if self.forget_agent(message.get("agent_id")):
                message = {**message, "selection_cleared": True}

        elif msg_type == MessageType.AGENT_STATE.value:
            state = message.get("state") or {}
            if state.get("current_path"):
                self.selection.paths[message.get("agent_id")] = state["current_path"]

        elif msg_type == MessageType.AGENT_MESSAGE.value:
            self._track_agent_path(message.get("agent_id"), message.get("message"))

        elif msg_type == MessageType.SERVER_SHUTDOWN.value:
            # The hub is about to close us; stop sending before it does
            self.operator_id = None
            self._transition(SessionState.DISCONNECTED)

        if self.on_message:
            try:
                self.on_message(message)
            except Exception:
                log_exception(f"Message listener failed on {msg_type!r} frame")
        return message

    def _replace_agents(self, agents: Any) -> None:
        self.agents = {a["id"]: a for a in agents if isinstance(a, dict) and "id" in a}
        self.cache_stale = False
        for agent_id, info in self.agents.items():
            self.selection.paths[agent_id] = info.get("current_path") or \
                self.selection.paths.get(agent_id, self.selection.default_path)
        for agent_id in list(self.selection.paths):
            if agent_id not in self.agents:
                del self.selection.paths[agent_id]
        if self.selection.agent_id is not None and self.selection.agent_id not in self.agents:
            self.selection.clear()

    def forget_agent(self, agent_id: Any) -> bool:
        """Drop a departed agent. Returns True if it was the selected one."""
        self.agents.pop(agent_id, None)
        self.selection.paths.pop(agent_id, None)
        if self.selection.agent_id is not None and self.selection.agent_id == agent_id:
            self.selection.clear()
            return True
        return False

    def _track_agent_path(self, agent_id: Any, raw: Any) -> None:
        if not isinstance(raw, str):
            return
        try:
            inner = json.loads(raw)
        except json.JSONDecodeError:
            return
        if not isinstance(inner, dict):
            return
        for key in _PATH_KEYS:
            if isinstance(inner.get(key), str) and inner[key]:
                self.selection.paths[agent_id] = inner[key]
                return

    # ------------------------------------------------------------------
    # Command helpers
    # ------------------------------------------------------------------

    def select(self, agent_id: int) -> bool:
        """Focus an agent known to the cache."""
        if agent_id not in self.agents:
            return False
        self.selection.select(agent_id)
        return True

    def deselect(self) -> Optional[int]:
        return self.selection.clear()

    def target_command(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Aim an agent command at the selected agent, or at every agent."""
        if self.selection.broadcast_mode:
            return {"type": MessageType.BROADCAST_TO_AGENTS.value, "message": message}
        return {
            "type": MessageType.SEND_TO_AGENT.value,
            "agent_id": self.selection.agent_id,
            "message": message,
        }
