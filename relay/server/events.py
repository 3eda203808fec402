"""Agent event handling: state cache updates plus verbatim relay to operators."""

import time
from typing import Awaitable, Callable, Optional

from .dispatcher import FanoutDispatcher
from .protocol import (
    AgentEvent,
    AgentPing,
    DirectoryChanged,
    Identification,
    MessageType,
    NavigationUpdate,
    RelayMessage,
    SelectionUpdate,
    StatusReport,
    UploadCompleted,
    UploadFailed,
    UploadProgress,
    UploadStarted,
    parse_agent_event,
)
from .registry import ConnectionRegistry
from .state import SessionStateStore
from utils.logger import logger

ImageCallback = Callable[[int, str], None]


class AgentEventRelay:
    """Applies agent events to the session cache and relays every frame to operators.

    Operators always receive the raw frame, wrapped with the agent id and
    receive time. The session cache is updated first so a command issued
    in response to a relayed event sees the new state.
    """

    def __init__(
        self,
        agents: ConnectionRegistry,
        operators: ConnectionRegistry,
        states: SessionStateStore,
        dispatcher: FanoutDispatcher,
        on_image: Optional[ImageCallback] = None,
    ):
        self.agents = agents
        self.operators = operators
        self.states = states
        self.dispatcher = dispatcher
        self.on_image = on_image

    async def handle(self, agent_id: int, raw: str) -> Optional[AgentEvent]:
        """Process one agent frame. Returns the parsed event, or None if ignored."""
        if not raw.strip() or agent_id not in self.agents:
            return None

        received_at = time.time()
        event = parse_agent_event(raw)
        self._apply(agent_id, event)

        await self.dispatcher.broadcast(
            self.operators, RelayMessage.agent_message(agent_id, raw, received_at),
        )

        if isinstance(event, AgentPing):
            await self.dispatcher.unicast(self.agents, agent_id, RelayMessage.of(MessageType.PONG))
        elif isinstance(event, Identification) and event.wallpaper and self.on_image:
            self.on_image(agent_id, event.wallpaper)

        return event

    def _apply(self, agent_id: int, event: AgentEvent) -> None:
        """Fold an event into the agent's cached state."""
        states = self.states

        if isinstance(event, Identification):
            record = self.agents.get(agent_id)
            if record is not None:
                record.device_label = event.device_label
            patch = {"device_label": event.device_label}
            if event.path is not None:
                patch["current_path"] = event.path
            states.upsert(agent_id, **patch)
            logger.info(f"agent {agent_id} identified as {event.device_label}")

        elif isinstance(event, NavigationUpdate):
            states.upsert(agent_id, current_path=event.current_path, files=list(event.files))

        elif isinstance(event, SelectionUpdate):
            states.upsert(agent_id, selected_files=list(event.selected_files))

        elif isinstance(event, DirectoryChanged):
            states.upsert(agent_id, current_path=event.path)

        elif isinstance(event, StatusReport):
            patch = {}
            if event.current_path is not None:
                patch["current_path"] = event.current_path
            if event.upload_queue_length is not None:
                patch["upload_queue_length"] = max(0, event.upload_queue_length)
            states.upsert(agent_id, **patch)

        elif isinstance(event, UploadStarted):
            queued = self._queue_length(agent_id)
            states.upsert(agent_id, upload_queue_length=queued + 1,
                          active_upload=event.file_name, upload_progress=0.0)

        elif isinstance(event, UploadProgress):
            states.upsert(agent_id, active_upload=event.file_name, upload_progress=event.progress)

        elif isinstance(event, (UploadCompleted, UploadFailed)):
            queued = self._queue_length(agent_id)
            states.upsert(agent_id, upload_queue_length=max(0, queued - 1),
                          active_upload=None, upload_progress=None)
            if isinstance(event, UploadFailed):
                logger.info(f"agent {agent_id} upload failed: {event.file_name} ({event.error})")

    def _queue_length(self, agent_id: int) -> int:
        state = self.states.get(agent_id)
        return state.upload_queue_length if state else 0
