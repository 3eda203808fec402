"""Operator command routing."""

import time
from typing import Any, Dict, List, Optional

from .dispatcher import FanoutDispatcher
from .protocol import (
    BroadcastToAgents,
    GetAgentState,
    Heartbeat,
    InvalidCommand,
    KickAgent,
    ListAgents,
    ListOperators,
    MessageType,
    RelayMessage,
    SendToAgent,
    ServerStatus,
    UnknownCommand,
    encode,
    parse_command,
)
from .registry import ConnectionRegistry
from .state import SessionStateStore
from relay.errors import ProtocolError
from utils.formatting import format_duration
from utils.logger import logger
from utils.system import memory_usage


class CommandRouter:
    """Maps operator commands to actions on the registries and state store.

    Replies go to the issuing operator only. Nothing an operator sends
    reaches an agent unless it is a well-formed send or broadcast command.
    """

    def __init__(
        self,
        agents: ConnectionRegistry,
        operators: ConnectionRegistry,
        states: SessionStateStore,
        dispatcher: FanoutDispatcher,
        port: Optional[int] = None,
        started_at: Optional[float] = None,
    ):
        self.agents = agents
        self.operators = operators
        self.states = states
        self.dispatcher = dispatcher
        self.port = port
        self.started_at = started_at or time.time()

        self._handlers = {
            ListAgents: self._list_agents,
            ListOperators: self._list_operators,
            ServerStatus: self._server_status,
            SendToAgent: self._send_to_agent,
            BroadcastToAgents: self._broadcast_to_agents,
            KickAgent: self._kick_agent,
            GetAgentState: self._get_agent_state,
            Heartbeat: self._heartbeat,
            UnknownCommand: self._unknown,
            InvalidCommand: self._invalid,
        }

    async def route(self, operator_id: int, raw: str) -> None:
        """Handle one inbound operator frame."""
        try:
            command = parse_command(raw)
        except ProtocolError as e:
            logger.debug(f"operator {operator_id}: unparseable frame: {e}")
            await self._reply(operator_id, RelayMessage.error(str(e), code="parse_error"))
            return

        logger.info(f"operator {operator_id}: {type(command).__name__}")
        await self._handlers[type(command)](operator_id, command)

    async def _reply(self, operator_id: int, message: RelayMessage) -> bool:
        return await self.dispatcher.unicast(self.operators, operator_id, message)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def agent_snapshot(self) -> List[Dict[str, Any]]:
        """Every agent record joined with its cached state."""
        agents = []
        for record in self.agents.records():
            entry = record.to_dict()
            state = self.states.get(record.id)
            entry.update({
                "current_path": state.current_path if state else None,
                "selected_files": list(state.selected_files) if state else [],
                "upload_queue_length": state.upload_queue_length if state else 0,
                "wallpaper_path": state.wallpaper_path if state else None,
            })
            agents.append(entry)
        return agents

    def operator_snapshot(self) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self.operators.records()]

    def status_snapshot(self) -> Dict[str, Any]:
        uptime = time.time() - self.started_at
        return {
            "port": self.port,
            "agents": len(self.agents),
            "operators": len(self.operators),
            "agent_states": len(self.states),
            "uptime": uptime,
            "uptime_formatted": format_duration(uptime),
            "memory": memory_usage(),
            "start_time": self.started_at,
        }

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _list_agents(self, operator_id: int, command: ListAgents) -> None:
        agents = self.agent_snapshot()
        await self._reply(operator_id, RelayMessage.of(
            MessageType.AGENT_LIST, agents=agents, total=len(agents),
        ))

    async def _list_operators(self, operator_id: int, command: ListOperators) -> None:
        operators = self.operator_snapshot()
        await self._reply(operator_id, RelayMessage.of(
            MessageType.OPERATOR_LIST, operators=operators, total=len(operators),
        ))

    async def _server_status(self, operator_id: int, command: ServerStatus) -> None:
        await self._reply(operator_id, RelayMessage.of(
            MessageType.SERVER_STATUS, status=self.status_snapshot(),
        ))

    async def _send_to_agent(self, operator_id: int, command: SendToAgent) -> None:
        frame = encode(command.message)
        if command.agent_id not in self.agents:
            result = RelayMessage.command_result(
                False, f"Agent {command.agent_id} not found",
                agent_id=command.agent_id, original_command=command.envelope,
            )
        elif await self.dispatcher.unicast(self.agents, command.agent_id, frame):
            result = RelayMessage.command_result(
                True, "Command sent",
                agent_id=command.agent_id, sent_message=frame,
            )
        else:
            result = RelayMessage.command_result(
                False, f"Agent {command.agent_id} is disconnected",
                agent_id=command.agent_id, sent_message=frame,
            )
        await self._reply(operator_id, result)

    async def _broadcast_to_agents(self, operator_id: int, command: BroadcastToAgents) -> None:
        delivered = await self.dispatcher.broadcast(self.agents, encode(command.message))
        logger.info(f"operator {operator_id}: broadcast delivered to {delivered} agent(s)")
        await self._reply(operator_id, RelayMessage.command_result(
            True, "Broadcast sent", delivered_count=delivered,
        ))

    async def _kick_agent(self, operator_id: int, command: KickAgent) -> None:
        # Kicking an unknown id still reports success: the agent is gone either way
        record = await self.agents.unregister(command.agent_id)
        if record is None:
            logger.info(f"operator {operator_id}: kick of unknown agent {command.agent_id}")
        await self._reply(operator_id, RelayMessage.command_result(
            True, f"Agent {command.agent_id} disconnected", agent_id=command.agent_id,
        ))

    async def _get_agent_state(self, operator_id: int, command: GetAgentState) -> None:
        await self._reply(operator_id, RelayMessage.of(
            MessageType.AGENT_STATE,
            agent_id=command.agent_id,
            state=self.states.snapshot(command.agent_id),
        ))

    async def _heartbeat(self, operator_id: int, command: Heartbeat) -> None:
        await self._reply(operator_id, RelayMessage.of(MessageType.HEARTBEAT_ACK))

    async def _unknown(self, operator_id: int, command: UnknownCommand) -> None:
        await self._reply(operator_id, RelayMessage.error(
            f"Unknown command: {command.tag}", code="unknown_command", tag=command.tag,
        ))

    async def _invalid(self, operator_id: int, command: InvalidCommand) -> None:
        await self._reply(operator_id, RelayMessage.error(
            f"Invalid {command.tag}: {command.reason}", code="invalid_command", tag=command.tag,
        ))
