"""Relay envelope definitions and the parse step for commands and agent events.

Every frame is a JSON object whose ``type`` (or ``tag``) field selects a
handler. Operator frames parse into one of the command variants below;
agent frames parse into one of the agent event variants, with
``OpaqueEvent`` covering everything the hub does not interpret.
"""

import json
import math
import time
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Tuple, Union

from relay.errors import ProtocolError


class MessageType(Enum):
    """Message types for the relay protocol."""
    # Authentication / onboarding
    OPERATOR_AUTH = "operator_auth"
    OPERATOR_WELCOME = "operator_welcome"
    WELCOME = "welcome"

    # Commands (operator -> hub)
    LIST_AGENTS = "list_agents"
    LIST_OPERATORS = "list_operators"
    SERVER_STATUS = "server_status"
    SEND_TO_AGENT = "send_to_agent"
    BROADCAST_TO_AGENTS = "broadcast_to_agents"
    KICK_AGENT = "kick_agent"
    GET_AGENT_STATE = "get_agent_state"
    HEARTBEAT = "heartbeat"

    # Replies (hub -> operator)
    AGENT_LIST = "agent_list"
    OPERATOR_LIST = "operator_list"
    AGENT_STATE = "agent_state"
    COMMAND_RESULT = "command_result"
    HEARTBEAT_ACK = "heartbeat_ack"
    ERROR = "error"

    # Events (hub -> every operator)
    AGENT_CONNECTED = "agent_connected"
    AGENT_DISCONNECTED = "agent_disconnected"
    AGENT_MESSAGE = "agent_message"
    AGENT_IMAGE_SAVED = "agent_image_saved"
    SERVER_SHUTDOWN = "server_shutdown"

    # Agent events (agent -> hub)
    IDENTIFICATION = "identification"
    NAVIGATION_UPDATE = "navigation_update"
    SELECTION_UPDATE = "selection_update"
    UPLOAD_STARTED = "upload_started"
    UPLOAD_PROGRESS = "upload_progress"
    UPLOAD_COMPLETED = "upload_completed"
    UPLOAD_FAILED = "upload_failed"
    DIRECTORY_CHANGED = "directory_changed"
    STATUS = "status"
    PING = "ping"
    PONG = "pong"


# Older tag spellings still accepted on the wire
TAG_ALIASES = {
    "admin_auth": MessageType.OPERATOR_AUTH.value,
    "change_directory_success": MessageType.DIRECTORY_CHANGED.value,
}

# Operators may send either spelling of the heartbeat tag
OPERATOR_TAG_ALIASES = {
    MessageType.PING.value: MessageType.HEARTBEAT.value,
}


def normalize_tag(value: Any) -> str:
    """Canonical form of a tag: lower case, ``-`` folded to ``_``, aliases resolved."""
    tag = str(value).strip().lower().replace("-", "_")
    return TAG_ALIASES.get(tag, tag)


def decode_envelope(raw: str) -> Tuple[str, Dict[str, Any]]:
    """Parse a raw frame into ``(tag, envelope)``.

    Raises:
        ProtocolError: the frame is not a JSON object carrying a tag.
    """
    try:
        obj = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e

    if not isinstance(obj, dict):
        raise ProtocolError("Envelope must be a JSON object")

    tag = obj.get("type", obj.get("tag"))
    if tag is None or tag == "":
        raise ProtocolError("Envelope has no type")

    return normalize_tag(tag), obj


def encode(payload: Union[str, Dict[str, Any], "RelayMessage"]) -> str:
    """Turn an outbound payload into frame text. Strings pass through untouched."""
    if isinstance(payload, RelayMessage):
        return payload.to_json()
    if isinstance(payload, str):
        return payload
    return json.dumps(payload)


@dataclass
class RelayMessage:
    """Outbound hub message. Serialized flat: ``{"type": ..., "timestamp": ..., **fields}``."""
    type: str
    fields: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.type, "timestamp": self.timestamp}
        data.update(self.fields)
        return data

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def of(cls, msg_type: MessageType, **fields) -> "RelayMessage":
        return cls(type=msg_type.value, fields=fields)

    @classmethod
    def error(cls, message: str, code: str = "error", tag: Optional[str] = None) -> "RelayMessage":
        """Create error message."""
        fields: Dict[str, Any] = {"code": code, "message": message}
        if tag is not None:
            fields["tag"] = tag
        return cls.of(MessageType.ERROR, **fields)

    @classmethod
    def command_result(cls, success: bool, message: str, **extra) -> "RelayMessage":
        """Create the reply to an operator command."""
        return cls.of(MessageType.COMMAND_RESULT, success=success, message=message, **extra)

    @classmethod
    def agent_message(cls, agent_id: int, raw: str, received_at: float) -> "RelayMessage":
        """Wrap a raw agent frame for relay to operators."""
        return cls(
            type=MessageType.AGENT_MESSAGE.value,
            fields={"agent_id": agent_id, "message": raw},
            timestamp=received_at,
        )

    @classmethod
    def server_shutdown(cls) -> "RelayMessage":
        return cls.of(MessageType.SERVER_SHUTDOWN, message="Server is shutting down")


# ============================================================================
# Operator commands
# ============================================================================

@dataclass(frozen=True)
class Command:
    """Base class for parsed operator commands."""
    envelope: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class ListAgents(Command):
    pass


@dataclass(frozen=True)
class ListOperators(Command):
    pass


@dataclass(frozen=True)
class ServerStatus(Command):
    pass


@dataclass(frozen=True)
class Heartbeat(Command):
    pass


@dataclass(frozen=True)
class SendToAgent(Command):
    agent_id: int = 0
    message: Any = None


@dataclass(frozen=True)
class BroadcastToAgents(Command):
    message: Any = None


@dataclass(frozen=True)
class KickAgent(Command):
    agent_id: int = 0


@dataclass(frozen=True)
class GetAgentState(Command):
    agent_id: int = 0


@dataclass(frozen=True)
class UnknownCommand(Command):
    """A well-formed envelope whose tag names no command."""
    tag: str = ""


@dataclass(frozen=True)
class InvalidCommand(Command):
    """A known tag whose required fields are missing or malformed."""
    tag: str = ""
    reason: str = ""


def _whole_number(value: Any) -> Optional[int]:
    """``value`` as an int if it is a finite whole number, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _agent_id(envelope: Dict[str, Any]) -> Optional[int]:
    agent_id = _whole_number(envelope.get("agent_id"))
    return agent_id if agent_id is not None and agent_id > 0 else None


def parse_command(raw: str) -> Command:
    """Parse an operator frame into a typed command.

    Raises:
        ProtocolError: the frame is not a tagged JSON object.
    """
    tag, envelope = decode_envelope(raw)
    tag = OPERATOR_TAG_ALIASES.get(tag, tag)

    simple = {
        MessageType.LIST_AGENTS.value: ListAgents,
        MessageType.LIST_OPERATORS.value: ListOperators,
        MessageType.SERVER_STATUS.value: ServerStatus,
        MessageType.HEARTBEAT.value: Heartbeat,
    }
    if tag in simple:
        return simple[tag](envelope=envelope)

    if tag in (MessageType.SEND_TO_AGENT.value, MessageType.KICK_AGENT.value,
               MessageType.GET_AGENT_STATE.value):
        agent_id = _agent_id(envelope)
        if agent_id is None:
            return InvalidCommand(envelope=envelope, tag=tag,
                                  reason="agent_id must be a positive integer")

        if tag == MessageType.KICK_AGENT.value:
            return KickAgent(envelope=envelope, agent_id=agent_id)
        if tag == MessageType.GET_AGENT_STATE.value:
            return GetAgentState(envelope=envelope, agent_id=agent_id)

        if envelope.get("message") in (None, ""):
            return InvalidCommand(envelope=envelope, tag=tag, reason="message is required")
        return SendToAgent(envelope=envelope, agent_id=agent_id, message=envelope["message"])

    if tag == MessageType.BROADCAST_TO_AGENTS.value:
        if envelope.get("message") in (None, ""):
            return InvalidCommand(envelope=envelope, tag=tag, reason="message is required")
        return BroadcastToAgents(envelope=envelope, message=envelope["message"])

    return UnknownCommand(envelope=envelope, tag=tag)


def parse_operator_auth(raw: str) -> Optional[str]:
    """Return the submitted secret if the frame is an operator auth request."""
    try:
        tag, envelope = decode_envelope(raw)
    except ProtocolError:
        return None
    if tag != MessageType.OPERATOR_AUTH.value:
        return None
    secret = envelope.get("secret", envelope.get("password"))
    return secret if isinstance(secret, str) else None


# ============================================================================
# Agent events
# ============================================================================

@dataclass(frozen=True)
class AgentEvent:
    """Base class for parsed agent frames. ``raw`` is the untouched frame text."""
    raw: str = ""


@dataclass(frozen=True)
class OpaqueEvent(AgentEvent):
    """Anything the hub relays without interpreting."""
    tag: Optional[str] = None


@dataclass(frozen=True)
class Identification(AgentEvent):
    device_label: str = "unknown"
    path: Optional[str] = None
    wallpaper: Optional[str] = None


@dataclass(frozen=True)
class NavigationUpdate(AgentEvent):
    current_path: str = ""
    files: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class SelectionUpdate(AgentEvent):
    selected_files: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class UploadStarted(AgentEvent):
    file_name: str = ""
    file_size: Optional[int] = None


@dataclass(frozen=True)
class UploadProgress(AgentEvent):
    file_name: str = ""
    progress: float = 0.0


@dataclass(frozen=True)
class UploadCompleted(AgentEvent):
    file_name: str = ""


@dataclass(frozen=True)
class UploadFailed(AgentEvent):
    file_name: str = ""
    error: Optional[str] = None


@dataclass(frozen=True)
class DirectoryChanged(AgentEvent):
    path: str = ""


@dataclass(frozen=True)
class StatusReport(AgentEvent):
    current_path: Optional[str] = None
    upload_queue_length: Optional[int] = None


@dataclass(frozen=True)
class AgentPing(AgentEvent):
    pass


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"expected string, got {type(value).__name__}")
    return value


def _str(value: Any) -> str:
    result = _opt_str(value)
    if result is None:
        raise ValueError("missing string field")
    return result


def _opt_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    number = _whole_number(value) if not isinstance(value, str) else None
    if number is None:
        raise ValueError(f"expected a whole number, got {value!r:.40}")
    return number


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError(f"expected a finite number, got {value!r:.40}")
    return float(value)


def _pick(env: Dict[str, Any], *keys: str) -> Any:
    """First non-null value among ``keys``, top level first, then inside ``data``.

    Agents either put fields at the top level (snake_case) or nest them in
    a ``data`` object (camelCase); both spellings are accepted.
    """
    body = env.get("data")
    for source in (env, body if isinstance(body, dict) else {}):
        for key in keys:
            if source.get(key) is not None:
                return source[key]
    return None


def _file_name(env: Dict[str, Any]) -> str:
    return _str(_pick(env, "file_name", "fileName"))


def _build_agent_event(tag: str, env: Dict[str, Any], raw: str) -> AgentEvent:
    if tag == MessageType.IDENTIFICATION.value:
        label = _opt_str(_pick(env, "device_label", "deviceLabel", "deviceType"))
        if label is None and isinstance(env.get("data"), str):
            # Older agents send the device type as the bare ``data`` value
            label = env["data"]
        return Identification(
            raw=raw,
            device_label=label or "unknown",
            path=_opt_str(_pick(env, "path", "current_path", "currentPath")),
            wallpaper=_opt_str(env.get("wallpaper")),
        )
    if tag == MessageType.NAVIGATION_UPDATE.value:
        files = _pick(env, "files")
        if files is None:
            files = []
        if not isinstance(files, list):
            raise ValueError("files must be a list")
        return NavigationUpdate(
            raw=raw,
            current_path=_str(_pick(env, "current_path", "currentPath", "c_path")),
            files=files,
        )
    if tag == MessageType.SELECTION_UPDATE.value:
        selected = _pick(env, "selected_files", "selectedFiles")
        if selected is None:
            selected = []
        if not isinstance(selected, list) or not all(isinstance(p, str) for p in selected):
            raise ValueError("selected_files must be a list of paths")
        return SelectionUpdate(raw=raw, selected_files=selected)

    if tag == MessageType.UPLOAD_STARTED.value:
        return UploadStarted(raw=raw, file_name=_file_name(env),
                             file_size=_opt_int(_pick(env, "file_size", "fileSize")))
    if tag == MessageType.UPLOAD_PROGRESS.value:
        progress = _pick(env, "progress")
        return UploadProgress(raw=raw, file_name=_file_name(env),
                              progress=_number(0 if progress is None else progress))
    if tag == MessageType.UPLOAD_COMPLETED.value:
        return UploadCompleted(raw=raw, file_name=_file_name(env))
    if tag == MessageType.UPLOAD_FAILED.value:
        return UploadFailed(raw=raw, file_name=_file_name(env),
                            error=_opt_str(_pick(env, "error")))
    if tag == MessageType.DIRECTORY_CHANGED.value:
        return DirectoryChanged(
            raw=raw, path=_str(_pick(env, "path", "c_path", "current_path", "currentPath")),
        )
    if tag == MessageType.STATUS.value:
        return StatusReport(
            raw=raw,
            current_path=_opt_str(_pick(env, "current_path", "currentPath")),
            upload_queue_length=_opt_int(_pick(env, "upload_queue_length", "uploadQueueLength")),
        )
    if tag == MessageType.PING.value:
        return AgentPing(raw=raw)
    return OpaqueEvent(raw=raw, tag=tag)


def parse_agent_event(raw: str) -> AgentEvent:
    """Parse an agent frame. Never raises: anything unrecognized is opaque."""
    try:
        tag, envelope = decode_envelope(raw)
    except ProtocolError:
        return OpaqueEvent(raw=raw)

    try:
        return _build_agent_event(tag, envelope, raw)
    except ValueError:
        # Known tag with a malformed body: still relayed, never interpreted
        return OpaqueEvent(raw=raw, tag=tag)
