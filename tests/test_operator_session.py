"""Tests for relay/operator/session.py module."""

import asyncio
import json
import pytest

from conftest import FakeTransport, settle
from relay.operator.session import OperatorSession, SessionState


class ScriptedConnector:
    """Connector whose outcomes are scripted: an exception to raise or a transport to return."""

    def __init__(self, outcomes=None, default=None):
        self.outcomes = list(outcomes or [])
        self.default = default or OSError("Connection refused")
        self.calls = 0

    async def __call__(self, url):
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def welcomed_client(operator_id=1):
    client = FakeTransport()
    client.feed({"type": "operator_welcome", "operator_id": operator_id, "stats": {}})
    return client


def make_session(connector=None, **kwargs):
    kwargs.setdefault("reconnect_delay", 0)
    kwargs.setdefault("max_attempts", 3)
    kwargs.setdefault("auth_timeout", 0.1)
    return OperatorSession(
        server_url="ws://hub.test:8080",
        secret="s3cret",
        connector=connector or ScriptedConnector(),
        **kwargs,
    )


async def stop(session, task):
    await session.close()
    await asyncio.wait_for(task, 1)


class TestReconnect:
    """Tests for the bounded fixed-delay reconnect loop."""

    @pytest.mark.asyncio
    async def test_attempts_bounded(self):
        """Test reconnects stop at the maximum until asked again."""
        connector = ScriptedConnector()
        session = make_session(connector)
        task = asyncio.create_task(session.run())
        await asyncio.sleep(0.05)

        assert connector.calls == 4
        assert session.attempts == 3
        assert session.state is SessionState.DISCONNECTED
        assert session.waiting_for_manual_reconnect

        await asyncio.sleep(0.05)
        assert connector.calls == 4

        await stop(session, task)

    @pytest.mark.asyncio
    async def test_manual_reconnect_resets_counter(self):
        """Test a manual request grants a fresh round of attempts."""
        connector = ScriptedConnector()
        session = make_session(connector)
        task = asyncio.create_task(session.run())
        await asyncio.sleep(0.05)

        session.request_reconnect()
        assert session.attempts == 0
        await asyncio.sleep(0.05)

        assert connector.calls == 8
        assert session.attempts == 3

        await stop(session, task)

    @pytest.mark.asyncio
    async def test_welcome_resets_counter(self):
        """Test an authenticated connection resets the attempt counter."""
        client = welcomed_client(operator_id=4)
        connector = ScriptedConnector([OSError("refused"), OSError("refused"), client])
        session = make_session(connector)
        task = asyncio.create_task(session.run())
        await asyncio.sleep(0.05)

        assert session.state is SessionState.ACTIVE
        assert session.attempts == 0
        assert session.operator_id == 4
        assert json.loads(client.sent[0]) == {"type": "operator_auth", "secret": "s3cret"}

        client.drop()
        await asyncio.sleep(0.05)
        assert session.operator_id is None
        assert session.attempts == 3
        assert connector.calls == 6

        await stop(session, task)

    @pytest.mark.asyncio
    async def test_auth_timeout(self):
        """Test a hub that never welcomes us counts as a failed attempt."""
        silent = FakeTransport()
        session = make_session(ScriptedConnector([silent]), max_attempts=0)
        task = asyncio.create_task(session.run())
        await asyncio.sleep(0.2)

        assert session.state is SessionState.DISCONNECTED
        assert silent.close_calls >= 1

        await stop(session, task)

    @pytest.mark.asyncio
    async def test_wrong_secret_detected(self):
        """Test being onboarded as an agent is reported as an auth failure."""
        client = FakeTransport()
        client.feed({"type": "welcome", "agent_id": 1})
        seen = []
        session = make_session(ScriptedConnector([client]), max_attempts=0, on_message=seen.append)
        task = asyncio.create_task(session.run())
        await asyncio.sleep(0.05)

        assert session.last_error == "Authentication failed"
        assert seen[0]["type"] == "error"
        assert client.close_calls >= 1

        await stop(session, task)

    @pytest.mark.asyncio
    async def test_state_transitions(self):
        client = welcomed_client()
        states = []
        session = make_session(ScriptedConnector([client]), on_state_change=states.append)
        task = asyncio.create_task(session.run())
        await settle()
        await asyncio.sleep(0.02)

        assert states[:3] == [SessionState.CONNECTING, SessionState.AWAITING_AUTH, SessionState.ACTIVE]

        await stop(session, task)
        assert states[-1] is SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_listener_error_keeps_connection(self):
        """Test a listener that raises does not end the session."""
        seen = []

        def listener(message):
            seen.append(message["type"])
            if message["type"] == "agent_message":
                raise ValueError("render failed")

        client = welcomed_client()
        client.feed({"type": "agent_message", "agent_id": 1, "message": "{}"})
        client.feed({"type": "heartbeat_ack"})
        session = make_session(ScriptedConnector([client]), on_message=listener)
        task = asyncio.create_task(session.run())
        await asyncio.sleep(0.05)

        assert seen == ["operator_welcome", "agent_message", "heartbeat_ack"]
        assert session.state is SessionState.ACTIVE
        assert not task.done()

        await stop(session, task)


class TestSend:
    """Tests for OperatorSession.send."""

    @pytest.mark.asyncio
    async def test_not_active(self):
        session = make_session()
        assert await session.send({"type": "list_agents"}) is False

    @pytest.mark.asyncio
    async def test_active(self):
        session = make_session()
        client = FakeTransport()
        session._ws = client
        session.state = SessionState.ACTIVE

        assert await session.send({"type": "list_agents"})
        assert client.last() == {"type": "list_agents"}


def agent_list(*ids, **paths):
    return json.dumps({
        "type": "agent_list",
        "agents": [{"id": i, "current_path": paths.get(f"p{i}")} for i in ids],
    })


class TestSelectionCache:
    """Tests for the selection and cached agent view."""

    def test_select_requires_known_agent(self):
        session = make_session()
        session.handle_frame(agent_list(1, 2))

        assert session.select(2)
        assert not session.select(9)
        assert session.selection.agent_id == 2

    def test_disconnect_clears_selected(self):
        """Test losing the selected agent returns to broadcast mode."""
        seen = []
        session = make_session(on_message=seen.append)
        session.handle_frame(agent_list(1, 2))
        session.select(2)

        session.handle_frame(json.dumps({"type": "agent_disconnected", "agent_id": 2}))

        assert session.selection.broadcast_mode
        assert 2 not in session.agents
        assert seen[-1]["selection_cleared"] is True

    def test_disconnect_of_other_agent_keeps_selection(self):
        session = make_session()
        session.handle_frame(agent_list(1, 2))
        session.select(1)

        session.handle_frame(json.dumps({"type": "agent_disconnected", "agent_id": 2}))

        assert session.selection.agent_id == 1

    def test_selection_survives_reconnect(self):
        """Test only fresh hub data replaces the selection."""
        session = make_session()
        session.handle_frame(agent_list(1, 2))
        session.select(2)

        session._on_disconnected()
        assert session.selection.agent_id == 2
        assert session.cache_stale

        session.handle_frame(agent_list(1))
        assert session.selection.broadcast_mode
        assert not session.cache_stale

    def test_paths_tracked(self):
        """Test agent paths follow list data, state replies and relayed events."""
        session = make_session()
        session.handle_frame(agent_list(1, p1="/sdcard"))
        assert session.selection.path_for(1) == "/sdcard"

        session.handle_frame(json.dumps({
            "type": "agent_message", "agent_id": 1,
            "message": json.dumps({"type": "navigation_update", "current_path": "/sdcard/DCIM"}),
        }))
        assert session.selection.path_for(1) == "/sdcard/DCIM"

        session.handle_frame(json.dumps({
            "type": "agent_state", "agent_id": 1, "state": {"current_path": "/tmp"},
        }))
        assert session.selection.path_for(1) == "/tmp"

    def test_agent_connected_adds_default_path(self):
        session = make_session()
        session.handle_frame(json.dumps({"type": "agent_connected", "agent_id": 5, "device_label": "Tab"}))

        assert session.agents[5]["device_label"] == "Tab"
        assert session.selection.path_for(5) == session.selection.default_path

    def test_server_shutdown_deactivates(self):
        session = make_session()
        session.state = SessionState.ACTIVE

        session.handle_frame(json.dumps({"type": "server_shutdown", "message": "bye"}))

        assert not session.active

    def test_non_json_ignored(self):
        seen = []
        session = make_session(on_message=seen.append)
        assert session.handle_frame("garbage") is None
        assert seen == []


class TestTargetCommand:
    """Tests for OperatorSession.target_command."""

    def test_broadcast_without_selection(self):
        session = make_session()
        envelope = session.target_command({"type": "list_files", "path": "/"})
        assert envelope == {"type": "broadcast_to_agents", "message": {"type": "list_files", "path": "/"}}

    def test_send_with_selection(self):
        session = make_session()
        session.handle_frame(agent_list(3))
        session.select(3)

        envelope = session.target_command({"type": "list_files"})
        assert envelope["type"] == "send_to_agent"
        assert envelope["agent_id"] == 3
