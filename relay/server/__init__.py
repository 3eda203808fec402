"""Relay server components."""

from .relay_server import RelayServer
from .protocol import MessageType, RelayMessage, parse_agent_event, parse_command
from .registry import ConnectionRecord, ConnectionRegistry, Role
from .state import AgentState, SessionStateStore
from .dispatcher import FanoutDispatcher

__all__ = [
    "RelayServer",
    "MessageType",
    "RelayMessage",
    "parse_agent_event",
    "parse_command",
    "ConnectionRecord",
    "ConnectionRegistry",
    "Role",
    "AgentState",
    "SessionStateStore",
    "FanoutDispatcher",
]
