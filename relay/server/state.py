"""Per-agent cached session state."""

import time
from dataclasses import dataclass, field, asdict, fields
from typing import Any, Dict, List, Optional


@dataclass
class AgentState:
    """Last-known view of one agent, built from its events."""
    current_path: Optional[str] = None
    device_label: str = "unknown"
    selected_files: List[str] = field(default_factory=list)
    upload_queue_length: int = 0
    files: List[Any] = field(default_factory=list)
    active_upload: Optional[str] = None
    upload_progress: Optional[float] = None
    wallpaper_path: Optional[str] = None
    last_update: float = field(default_factory=time.time)


_STATE_FIELDS = {f.name for f in fields(AgentState)}


class SessionStateStore:
    """Cache of AgentState keyed by agent id.

    The cache is a convenience for operators; the relayed event stream is
    the ground truth. Entries share their agent connection's lifecycle, so
    ``remove`` is called from the agent registry's unregister path.
    """

    def __init__(self):
        self._states: Dict[int, AgentState] = {}

    def upsert(self, agent_id: int, **patch) -> AgentState:
        """Merge ``patch`` into the agent's state, creating it if absent."""
        unknown = set(patch) - _STATE_FIELDS
        if unknown:
            raise KeyError(f"Unknown agent state fields: {sorted(unknown)}")

        state = self._states.get(agent_id)
        if state is None:
            state = AgentState()
            self._states[agent_id] = state

        for key, value in patch.items():
            setattr(state, key, value)
        state.last_update = time.time()
        return state

    def get(self, agent_id: int) -> Optional[AgentState]:
        return self._states.get(agent_id)

    def snapshot(self, agent_id: int) -> Optional[Dict[str, Any]]:
        """Plain-dict copy of the agent's state, or None."""
        state = self._states.get(agent_id)
        return asdict(state) if state else None

    def remove(self, agent_id: int) -> Optional[AgentState]:
        return self._states.pop(agent_id, None)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._states

    def __len__(self) -> int:
        return len(self._states)
