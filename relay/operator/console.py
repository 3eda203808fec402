"""Interactive operator console for the relay hub."""

import argparse
import asyncio
import json
import shlex
import sys
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .session import OperatorSession, SessionState
from relay.server.protocol import MessageType
from config import OPERATOR_SERVER_URL, RELAY_OPERATOR_SECRET
from utils.formatting import format_ago, format_bytes, format_duration, format_timestamp
from utils.logger import log_exception


# File-manager shortcuts: command -> (agent message type, payload key)
FILE_COMMANDS = {
    "ls": ("list_files", "path"),
    "cd": ("change_directory", "path"),
    "rm": ("delete_file", "path"),
    "upload": ("upload_file", "file"),
    "download": ("download_file", "file"),
}

# Commands that make no sense as a broadcast
SELECTION_REQUIRED = {"upload", "download"}

HELP_SECTIONS = [
    ("Hub", [
        ("help, ?", "Show this help"),
        ("agents, list", "List connected agents"),
        ("operators", "List connected operators"),
        ("status", "Show hub status"),
        ("state [id]", "Show an agent's cached state (selected agent if omitted)"),
    ]),
    ("Selection", [
        ("select <id>", "Aim file commands at one agent"),
        ("deselect", "Go back to broadcast mode"),
    ]),
    ("Commands", [
        ("send [id] <json>", "Send a JSON command to one agent"),
        ("broadcast <json>", "Send a JSON command to every agent"),
        ("kick <id>", "Disconnect an agent"),
    ]),
    ("Files", [
        ("ls [path]", "List files"),
        ("cd <path>", "Change directory"),
        ("rm <path>", "Delete a file"),
        ("upload <path>", "Ask the selected agent to upload a file"),
        ("download <path>", "Ask the selected agent to fetch a file"),
    ]),
    ("Utilities", [
        ("ping", "Round-trip to the hub"),
        ("debug <cmd>", "Show the envelope a command would send"),
        ("reconnect", "Reset reconnect attempts and connect now"),
        ("clear", "Clear the screen"),
        ("exit, quit", "Leave the console"),
    ]),
]


def _safe(value: Any) -> str:
    """Peer-supplied text, escaped so Rich prints it literally."""
    return escape(str(value))


def _field(inner: Dict[str, Any], *keys: str) -> Any:
    """First non-null value among ``keys``, read from the frame or its ``data`` object."""
    data = inner.get("data")
    for source in (inner, data if isinstance(data, dict) else {}):
        for key in keys:
            if source.get(key) is not None:
                return source[key]
    return None


def _listing(msg_type: str, inner: Dict[str, Any]) -> Optional[List[Any]]:
    """The file entries of a listing frame, or None if it carries none."""
    if msg_type not in ("file_list", "navigation_update", "temp"):
        return None
    files = _field(inner, "files")
    if files is None and isinstance(inner.get("data"), list):
        files = inner["data"]
    return files if isinstance(files, list) else None


def build_file_command(name: str, args: List[str]) -> Dict[str, Any]:
    """Agent message for a file-manager shortcut."""
    msg_type, key = FILE_COMMANDS[name]
    return {"type": msg_type, key: " ".join(args)}


def parse_json_arg(text: str) -> Any:
    """Parse a JSON command argument; raises ValueError with a readable message."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e.msg}") from e


class OperatorConsole:
    """Line-oriented command loop on top of an OperatorSession."""

    def __init__(self, session: OperatorSession, console: Optional[Console] = None):
        self.session = session
        self.console = console or Console()
        self.running = False
        self._ping_sent_at: Optional[float] = None

        session.on_message = self.render_message
        session.on_state_change = self._state_changed

        self.commands: Dict[str, Callable[[List[str]], Awaitable[None]]] = {
            "help": self._cmd_help,
            "?": self._cmd_help,
            "agents": self._cmd_agents,
            "list": self._cmd_agents,
            "operators": self._cmd_operators,
            "status": self._cmd_status,
            "state": self._cmd_state,
            "select": self._cmd_select,
            "sel": self._cmd_select,
            "deselect": self._cmd_deselect,
            "desel": self._cmd_deselect,
            "send": self._cmd_send,
            "broadcast": self._cmd_broadcast,
            "kick": self._cmd_kick,
            "ping": self._cmd_ping,
            "debug": self._cmd_debug,
            "reconnect": self._cmd_reconnect,
            "clear": self._cmd_clear,
            "exit": self._cmd_exit,
            "quit": self._cmd_exit,
        }
        for name in FILE_COMMANDS:
            self.commands[name] = self._file_command(name)

    # ------------------------------------------------------------------
    # Prompt and input
    # ------------------------------------------------------------------

    @property
    def prompt(self) -> str:
        agent_id = self.session.selection.agent_id
        if agent_id is None:
            return "operator[broadcast]> "
        return f"operator[agent {agent_id}:{self.session.selection.path_for(agent_id)}]> "

    def show_prompt(self) -> None:
        self.console.print(self.prompt, end="", markup=False, highlight=False)

    async def handle_line(self, line: str) -> None:
        """Execute one console line."""
        line = line.strip()
        if not line:
            return

        try:
            parts = shlex.split(line)
        except ValueError:
            parts = line.split()
        name, args = parts[0].lower(), parts[1:]

        handler = self.commands.get(name)
        if handler is None:
            self.console.print(f"[red]Unknown command: {_safe(name)}[/red]  (type [bold]help[/bold])")
            return
        # send/broadcast/debug take raw JSON, which shlex would mangle
        if name in ("send", "broadcast", "debug"):
            args = line.split(None, 1)[1].split(" ") if " " in line else []
        await handler(args)

    async def _send(self, envelope: Dict[str, Any]) -> bool:
        if not await self.session.send(envelope):
            self.console.print("[red]Not connected to the hub[/red]")
            return False
        return True

    async def _send_to_target(self, message: Dict[str, Any], label: str) -> None:
        envelope = self.session.target_command(message)
        if await self._send(envelope):
            target = self.session.selection.agent_id
            where = "broadcast" if target is None else f"agent {target}"
            self.console.print(f"[green]{label} sent ({where})[/green]")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _cmd_help(self, args: List[str]) -> None:
        table = Table(title="Operator commands", show_header=False, box=None, padding=(0, 2))
        table.add_column("Command", style="cyan", no_wrap=True)
        table.add_column("Description")
        for section, rows in HELP_SECTIONS:
            table.add_row(f"[bold]{section}[/bold]", "")
            for command, description in rows:
                table.add_row(f"  {command}", description)
        self.console.print(table)

    async def _cmd_agents(self, args: List[str]) -> None:
        await self._send({"type": MessageType.LIST_AGENTS.value})

    async def _cmd_operators(self, args: List[str]) -> None:
        await self._send({"type": MessageType.LIST_OPERATORS.value})

    async def _cmd_status(self, args: List[str]) -> None:
        await self._send({"type": MessageType.SERVER_STATUS.value})

    async def _cmd_state(self, args: List[str]) -> None:
        agent_id = self._agent_id_arg(args) if args else self.session.selection.agent_id
        if agent_id is None:
            self.console.print("[yellow]Usage: state <id> (or select an agent first)[/yellow]")
            return
        await self._send({"type": MessageType.GET_AGENT_STATE.value, "agent_id": agent_id})

    async def _cmd_select(self, args: List[str]) -> None:
        agent_id = self._agent_id_arg(args)
        if agent_id is None:
            self.console.print("[yellow]Usage: select <id>[/yellow]")
            return
        if self.session.select(agent_id):
            self.console.print(f"[green]Agent {agent_id} selected[/green]")
        else:
            self.console.print(f"[red]Agent {agent_id} is not in the agent list[/red] "
                               "(run [bold]agents[/bold] to refresh)")

    async def _cmd_deselect(self, args: List[str]) -> None:
        previous = self.session.deselect()
        if previous is None:
            self.console.print("[dim]No agent selected[/dim]")
        else:
            self.console.print(f"[green]Agent {previous} deselected; commands now broadcast[/green]")

    async def _cmd_send(self, args: List[str]) -> None:
        if not args:
            self.console.print('[yellow]Usage: send [id] <json>[/yellow]  e.g. send 1 {"type":"list_files","path":"/sdcard"}')
            return

        agent_id = self._agent_id_arg(args[:1])
        if agent_id is not None:
            payload_text = " ".join(args[1:])
        else:
            agent_id = self.session.selection.agent_id
            payload_text = " ".join(args)
        if agent_id is None or not payload_text:
            self.console.print("[yellow]Usage: send <id> <json>, or select an agent first[/yellow]")
            return

        try:
            message = parse_json_arg(payload_text)
        except ValueError as e:
            self.console.print(f"[red]{e}[/red]")
            return
        await self._send({
            "type": MessageType.SEND_TO_AGENT.value,
            "agent_id": agent_id,
            "message": message,
        })

    async def _cmd_broadcast(self, args: List[str]) -> None:
        if not args:
            self.console.print("[yellow]Usage: broadcast <json>[/yellow]")
            return
        try:
            message = parse_json_arg(" ".join(args))
        except ValueError as e:
            self.console.print(f"[red]{e}[/red]")
            return
        await self._send({"type": MessageType.BROADCAST_TO_AGENTS.value, "message": message})

    async def _cmd_kick(self, args: List[str]) -> None:
        agent_id = self._agent_id_arg(args)
        if agent_id is None:
            self.console.print("[yellow]Usage: kick <id>[/yellow]")
            return
        await self._send({"type": MessageType.KICK_AGENT.value, "agent_id": agent_id})

    def _file_command(self, name: str) -> Callable[[List[str]], Awaitable[None]]:
        async def run(args: List[str]) -> None:
            if name != "ls" and not args:
                self.console.print(f"[yellow]Usage: {name} <path>[/yellow]")
                return
            if name in SELECTION_REQUIRED and self.session.selection.broadcast_mode:
                self.console.print(f"[yellow]{name} needs a selected agent (select <id>)[/yellow]")
                return
            await self._send_to_target(build_file_command(name, args), name)
        return run

    async def _cmd_ping(self, args: List[str]) -> None:
        self._ping_sent_at = time.time()
        await self._send({"type": MessageType.HEARTBEAT.value})

    async def _cmd_debug(self, args: List[str]) -> None:
        if not args:
            self.console.print("[yellow]Usage: debug <cmd>[/yellow]  e.g. debug ls /sdcard")
            return
        name = args[0].lower()
        if name in FILE_COMMANDS:
            message = build_file_command(name, args[1:])
        else:
            try:
                message = parse_json_arg(" ".join(args))
            except ValueError as e:
                self.console.print(f"[red]{e}[/red]")
                return
        envelope = self.session.target_command(message)
        text = json.dumps(envelope, indent=2)
        self.console.print("[cyan]Envelope that would be sent:[/cyan]")
        self.console.print(text, markup=False)
        self.console.print(f"[dim]Size: {len(json.dumps(envelope))} bytes[/dim]")

    async def _cmd_reconnect(self, args: List[str]) -> None:
        if self.session.active:
            self.console.print("[dim]Already connected[/dim]")
        else:
            self.console.print("[blue]Reconnecting...[/blue]")
        self.session.request_reconnect()

    async def _cmd_clear(self, args: List[str]) -> None:
        self.console.clear()

    async def _cmd_exit(self, args: List[str]) -> None:
        self.running = False
        await self.session.close()

    def _agent_id_arg(self, args: List[str]) -> Optional[int]:
        if not args:
            return None
        try:
            value = int(args[0])
        except ValueError:
            return None
        return value if value > 0 else None

    # ------------------------------------------------------------------
    # Rendering of hub messages
    # ------------------------------------------------------------------

    def _state_changed(self, state: SessionState) -> None:
        if state is SessionState.CONNECTING:
            self.console.print(f"[blue]Connecting to {_safe(self.session.server_url)}...[/blue]")
        elif state is SessionState.DISCONNECTED:
            self.console.print("[yellow]Disconnected from hub[/yellow]")
            if self.session.waiting_for_manual_reconnect:
                self.console.print("[red]Maximum reconnect attempts reached[/red]; "
                                   "type [bold]reconnect[/bold] to try again")

    def render_message(self, message: Dict[str, Any]) -> None:
        """Print one hub message."""
        renderers = {
            MessageType.OPERATOR_WELCOME.value: self._render_welcome,
            MessageType.AGENT_LIST.value: self._render_agent_list,
            MessageType.OPERATOR_LIST.value: self._render_operator_list,
            MessageType.SERVER_STATUS.value: self._render_status,
            MessageType.AGENT_STATE.value: self._render_agent_state,
            MessageType.COMMAND_RESULT.value: self._render_command_result,
            MessageType.HEARTBEAT_ACK.value: self._render_heartbeat_ack,
            MessageType.AGENT_CONNECTED.value: self._render_agent_connected,
            MessageType.AGENT_DISCONNECTED.value: self._render_agent_disconnected,
            MessageType.AGENT_MESSAGE.value: self._render_agent_message,
            MessageType.AGENT_IMAGE_SAVED.value: self._render_image_saved,
            MessageType.ERROR.value: self._render_error,
            MessageType.SERVER_SHUTDOWN.value: self._render_shutdown,
        }
        renderer = renderers.get(message.get("type"))
        if renderer is None:
            self.console.print(escape(json.dumps(message)), style="dim")
        else:
            renderer(message)

    def _render_welcome(self, message: Dict[str, Any]) -> None:
        stats = message.get("stats") or {}
        self.console.print(f"[bold green]Authenticated as operator {_safe(message.get('operator_id'))}[/bold green] "
                           f"({stats.get('agents', 0)} agents, {stats.get('operators', 0)} operators online)")
        self.console.print("[dim]Type 'help' for commands[/dim]")

    def _render_agent_list(self, message: Dict[str, Any]) -> None:
        agents = message.get("agents") or []
        if not agents:
            self.console.print("[yellow]No agents connected[/yellow]")
            return

        table = Table(title=f"Agents ({len(agents)})")
        table.add_column("ID", style="cyan", justify="right")
        table.add_column("Device", style="bold")
        table.add_column("Address")
        table.add_column("Path", style="blue")
        table.add_column("Connected")
        table.add_column("Msgs", justify="right")
        table.add_column("Queue", justify="right")
        table.add_column("Live")

        selected = self.session.selection.agent_id
        for agent in agents:
            marker = " *" if agent.get("id") == selected else ""
            live = "[green]yes[/green]" if agent.get("live") else "[red]no[/red]"
            table.add_row(
                f"{agent.get('id')}{marker}",
                _safe(agent.get("device_label") or "unknown"),
                _safe(f"{agent.get('address')}:{agent.get('port')}"),
                _safe(agent.get("current_path") or "-"),
                format_ago(agent["connected_at"]) if agent.get("connected_at") else "-",
                str(agent.get("message_count", 0)),
                str(agent.get("upload_queue_length", 0)),
                live,
            )
        self.console.print(table)

    def _render_operator_list(self, message: Dict[str, Any]) -> None:
        table = Table(title=f"Operators ({message.get('total', 0)})")
        table.add_column("ID", style="cyan", justify="right")
        table.add_column("Address")
        table.add_column("Connected")
        table.add_column("Msgs", justify="right")
        for op in message.get("operators") or []:
            marker = " (you)" if op.get("id") == self.session.operator_id else ""
            table.add_row(
                f"{op.get('id')}{marker}",
                _safe(f"{op.get('address')}:{op.get('port')}"),
                format_ago(op["connected_at"]) if op.get("connected_at") else "-",
                str(op.get("message_count", 0)),
            )
        self.console.print(table)

    def _render_status(self, message: Dict[str, Any]) -> None:
        status = message.get("status") or {}
        table = Table(title="Hub status", show_header=False)
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        table.add_row("Port", str(status.get("port")))
        table.add_row("Agents", str(status.get("agents", 0)))
        table.add_row("Operators", str(status.get("operators", 0)))
        table.add_row("Agent states", str(status.get("agent_states", 0)))
        table.add_row("Uptime", status.get("uptime_formatted") or format_duration(status.get("uptime", 0)))
        table.add_row("Memory", format_bytes(status.get("memory", 0)))
        table.add_row("Started", format_timestamp(status.get("start_time")))
        self.console.print(table)

    def _render_agent_state(self, message: Dict[str, Any]) -> None:
        agent_id = message.get("agent_id")
        state = message.get("state")
        if state is None:
            self.console.print(f"[yellow]No state for agent {agent_id}[/yellow]")
            return

        table = Table(title=f"Agent {agent_id} state", show_header=False)
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        table.add_row("Device", _safe(state.get("device_label")))
        table.add_row("Directory", _safe(state.get("current_path")))
        table.add_row("Files", str(len(state.get("files") or [])))
        table.add_row("Selected", str(len(state.get("selected_files") or [])))
        table.add_row("Upload queue", str(state.get("upload_queue_length", 0)))
        if state.get("active_upload"):
            table.add_row("Uploading", f"{_safe(state['active_upload'])} ({state.get('upload_progress', 0):.0f}%)")
        if state.get("wallpaper_path"):
            table.add_row("Wallpaper", _safe(state["wallpaper_path"]))
        table.add_row("Updated", format_ago(state["last_update"]) if state.get("last_update") else "-")
        self.console.print(table)

    def _render_command_result(self, message: Dict[str, Any]) -> None:
        if message.get("success"):
            extra = ""
            if "delivered_count" in message:
                extra = f" ({message['delivered_count']} agent(s))"
            self.console.print(f"[green]OK[/green] {_safe(message.get('message', ''))}{extra}")
        else:
            self.console.print(f"[red]Failed[/red] {_safe(message.get('message', ''))}")

    def _render_heartbeat_ack(self, message: Dict[str, Any]) -> None:
        if self._ping_sent_at is not None:
            elapsed = (time.time() - self._ping_sent_at) * 1000
            self._ping_sent_at = None
            self.console.print(f"[dim]Pong ({elapsed:.0f} ms)[/dim]")
        else:
            self.console.print("[dim]Pong[/dim]")

    def _render_agent_connected(self, message: Dict[str, Any]) -> None:
        self.console.print(f"[green]+ Agent {message.get('agent_id')} connected[/green] "
                           f"{_safe(message.get('device_label') or '')} from {_safe(message.get('address'))}")

    def _render_agent_disconnected(self, message: Dict[str, Any]) -> None:
        self.console.print(f"[yellow]- Agent {message.get('agent_id')} disconnected[/yellow]")
        if message.get("selection_cleared"):
            self.console.print("[yellow]The selected agent left; commands now broadcast[/yellow]")

    def _render_image_saved(self, message: Dict[str, Any]) -> None:
        self.console.print(f"[cyan]Image from agent {message.get('agent_id')} saved to {_safe(message.get('path'))}[/cyan]")

    def _render_error(self, message: Dict[str, Any]) -> None:
        self.console.print(f"[red]Error:[/red] {_safe(message.get('message', 'unknown error'))}")

    def _render_shutdown(self, message: Dict[str, Any]) -> None:
        self.console.print(f"[bold red]{_safe(message.get('message', 'Hub is shutting down'))}[/bold red]")

    def _render_agent_message(self, message: Dict[str, Any]) -> None:
        agent_id = message.get("agent_id")
        raw = message.get("message")
        try:
            inner = json.loads(raw) if isinstance(raw, str) else None
        except json.JSONDecodeError:
            inner = None
        if not isinstance(inner, dict):
            self.console.print(escape(f"[agent {agent_id}] {str(raw)[:200]}"), style="dim")
            return

        msg_type = str(inner.get("type", inner.get("tag", ""))).lower().replace("-", "_")
        prefix = escape(f"[agent {agent_id}]")
        files = _listing(msg_type, inner)
        file_name = _safe(_field(inner, "file_name", "fileName"))
        if files is not None:
            path = _field(inner, "current_path", "currentPath", "c_path", "path")
            self.render_file_list(files, agent_id, path)
        elif msg_type in ("directory_changed", "change_directory_success"):
            path = _field(inner, "path", "c_path", "current_path", "currentPath")
            self.console.print(f"[cyan]{prefix} now in {_safe(path)}[/cyan]")
        elif msg_type == "change_directory_error":
            self.console.print(f"[red]{prefix} could not change directory: {_safe(_field(inner, 'error'))}[/red]")
        elif msg_type == "upload_started":
            size = _field(inner, "file_size", "fileSize")
            size_text = f" ({format_bytes(size)})" if isinstance(size, (int, float)) else ""
            self.console.print(f"[blue]{prefix} upload started: {file_name}{size_text}[/blue]")
        elif msg_type == "upload_progress":
            progress = _safe(_field(inner, "progress"))
            self.console.print(f"[yellow]{prefix} upload {file_name}: {progress}%[/yellow]")
        elif msg_type == "upload_completed":
            self.console.print(f"[green]{prefix} upload completed: {file_name}[/green]")
        elif msg_type == "upload_failed":
            error = _safe(_field(inner, "error"))
            self.console.print(f"[red]{prefix} upload failed: {file_name} ({error})[/red]")
        elif msg_type == "status":
            path = _safe(_field(inner, "current_path", "currentPath"))
            queue = _safe(_field(inner, "upload_queue_length", "uploadQueueLength") or 0)
            self.console.print(f"[cyan]{prefix} in {path}, upload queue {queue}[/cyan]")
        elif msg_type == "error":
            self.console.print(f"[red]{prefix} {_safe(_field(inner, 'error', 'message'))}[/red]")
        elif msg_type == "identification":
            label = _field(inner, "device_label", "deviceLabel", "deviceType")
            if label is None and isinstance(inner.get("data"), str):
                label = inner["data"]
            self.console.print(f"[cyan]{prefix} identified as {_safe(label)}[/cyan]")
        else:
            self.console.print(f"{prefix} {escape(json.dumps(inner)[:200])}", style="dim")

    def render_file_list(self, files: List[Any], agent_id: Any = None, path: Optional[str] = None) -> None:
        """Render an agent directory listing."""
        title = f"Agent {agent_id}: {_safe(path)}" if path else f"Agent {agent_id} files"
        table = Table(title=title)
        table.add_column("Name", style="bold")
        table.add_column("Type", style="green")
        table.add_column("Size", style="blue", justify="right")
        table.add_column("Modified", style="dim")

        for entry in files:
            if not isinstance(entry, dict):
                table.add_row(_safe(entry), "", "", "")
                continue
            is_dir = entry.get("is_directory", entry.get("isDirectory", False))
            size = entry.get("size")
            modified = entry.get("mtime")
            if isinstance(modified, (int, float)):
                # Agents report milliseconds
                modified = format_timestamp(modified / 1000 if modified > 1e11 else modified)
            table.add_row(
                _safe(entry.get("name", "?")),
                "dir" if is_dir else "file",
                "" if is_dir or not isinstance(size, (int, float)) else format_bytes(size),
                _safe(modified or "N/A"),
            )
        self.console.print(table)
        self.console.print(f"[bold]Total: {len(files)} items[/bold]")

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Run the session and read commands from stdin until exit."""
        loop = asyncio.get_running_loop()
        lines: asyncio.Queue = asyncio.Queue()

        def _on_stdin() -> None:
            line = sys.stdin.readline()
            # Empty read means EOF
            lines.put_nowait(line if line else None)

        loop.add_reader(sys.stdin.fileno(), _on_stdin)
        session_task = asyncio.create_task(self.session.run())
        self.running = True
        try:
            while self.running:
                self.show_prompt()
                line = await lines.get()
                if line is None:
                    break
                try:
                    await self.handle_line(line)
                except Exception:
                    log_exception(f"Console command failed: {line.strip()}")
                    self.console.print("[red]Command failed; see log for details[/red]")
        finally:
            loop.remove_reader(sys.stdin.fileno())
            await self.session.close()
            await session_task


def main() -> int:
    """Entry point for the operator console."""
    parser = argparse.ArgumentParser(description="RelayHub operator console")
    parser.add_argument(
        "-s", "--server",
        default=OPERATOR_SERVER_URL,
        help=f"Hub WebSocket URL (default: {OPERATOR_SERVER_URL})",
    )
    parser.add_argument(
        "--secret",
        default=RELAY_OPERATOR_SECRET,
        help="Operator shared secret",
    )
    args = parser.parse_args()

    console = Console()
    console.print("[bold cyan]RelayHub operator console[/bold cyan]")

    session = OperatorSession(server_url=args.server, secret=args.secret)
    operator = OperatorConsole(session, console)
    try:
        asyncio.run(operator.run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
    console.print("[green]Bye.[/green]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
