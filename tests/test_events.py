"""Tests for relay/server/events.py module."""

import json
import pytest
import pytest_asyncio

from relay.server.events import AgentEventRelay
from relay.server.protocol import Identification, OpaqueEvent


@pytest.fixture
def saved_images():
    return []


@pytest.fixture
def relay(agents, operators, states, dispatcher, saved_images):
    return AgentEventRelay(
        agents, operators, states, dispatcher,
        on_image=lambda agent_id, data: saved_images.append((agent_id, data)),
    )


@pytest_asyncio.fixture
async def wired(agents, operators, make_transport):
    """One operator and one agent, both registered."""
    op, agent = make_transport(), make_transport()
    await operators.register(op)
    await agents.register(agent)
    return op, agent


class TestRelayToOperators:
    """Tests for verbatim relay of agent frames."""

    @pytest.mark.asyncio
    async def test_raw_frame_wrapped(self, relay, wired):
        """Test operators get the untouched frame with the agent id."""
        op, _ = wired
        raw = '{"type": "file_list", "files": [{"name": "a.txt"}]}'

        event = await relay.handle(1, raw)

        assert isinstance(event, OpaqueEvent)
        relayed = op.last()
        assert relayed["type"] == "agent_message"
        assert relayed["agent_id"] == 1
        assert relayed["message"] == raw

    @pytest.mark.asyncio
    async def test_non_json_relayed(self, relay, wired):
        op, _ = wired
        await relay.handle(1, "plain text from agent")
        assert op.last()["message"] == "plain text from agent"

    @pytest.mark.asyncio
    async def test_blank_or_unknown_agent_ignored(self, relay, wired):
        op, _ = wired
        assert await relay.handle(1, "   ") is None
        assert await relay.handle(5, '{"type": "status"}') is None
        assert op.sent == []


class TestStateUpdates:
    """Tests for session cache updates from agent events."""

    @pytest.mark.asyncio
    async def test_identification(self, relay, agents, states, wired):
        """Test identification sets the label on record and state."""
        await relay.handle(1, json.dumps({"type": "identification", "device_label": "Pixel", "path": "/sdcard"}))

        assert agents.get(1).device_label == "Pixel"
        assert states.get(1).device_label == "Pixel"
        assert states.get(1).current_path == "/sdcard"

    @pytest.mark.asyncio
    async def test_navigation_and_selection(self, relay, states, wired):
        await relay.handle(1, json.dumps({"type": "navigation_update", "current_path": "/d", "files": [{"name": "x"}]}))
        await relay.handle(1, json.dumps({"type": "selection_update", "selected_files": ["/d/x"]}))

        state = states.get(1)
        assert state.current_path == "/d"
        assert state.files == [{"name": "x"}]
        assert state.selected_files == ["/d/x"]

    @pytest.mark.asyncio
    async def test_directory_changed(self, relay, states, wired):
        await relay.handle(1, '{"type": "change_directory_success", "c_path": "/e"}')
        assert states.get(1).current_path == "/e"

    @pytest.mark.asyncio
    async def test_upload_lifecycle(self, relay, states, wired):
        """Test the upload queue counter rises and falls with upload events."""
        await relay.handle(1, '{"type": "upload_started", "file_name": "a.jpg", "file_size": 100}')
        await relay.handle(1, '{"type": "upload_started", "file_name": "b.jpg"}')
        assert states.get(1).upload_queue_length == 2

        await relay.handle(1, '{"type": "upload_progress", "file_name": "b.jpg", "progress": 50}')
        assert states.get(1).upload_progress == 50.0
        assert states.get(1).active_upload == "b.jpg"

        await relay.handle(1, '{"type": "upload_completed", "file_name": "a.jpg"}')
        await relay.handle(1, '{"type": "upload_failed", "file_name": "b.jpg", "error": "io"}')
        await relay.handle(1, '{"type": "upload_failed", "file_name": "c.jpg"}')

        state = states.get(1)
        assert state.upload_queue_length == 0
        assert state.active_upload is None

    @pytest.mark.asyncio
    async def test_status_report(self, relay, states, wired):
        await relay.handle(1, '{"type": "status", "current_path": "/f", "upload_queue_length": 3}')
        assert states.get(1).current_path == "/f"
        assert states.get(1).upload_queue_length == 3

    @pytest.mark.asyncio
    async def test_malformed_known_tag_leaves_state(self, relay, states, wired):
        """Test a malformed event is relayed but not applied."""
        op, _ = wired
        states.upsert(1, current_path="/keep")

        await relay.handle(1, '{"type": "navigation_update", "current_path": 5}')

        assert states.get(1).current_path == "/keep"
        assert op.last()["type"] == "agent_message"


class TestReplies:
    """Tests for hub replies to agents and image hand-off."""

    @pytest.mark.asyncio
    async def test_ping_gets_pong(self, relay, wired):
        op, agent = wired
        await relay.handle(1, '{"type": "ping"}')

        assert agent.last()["type"] == "pong"
        assert op.last()["type"] == "agent_message"

    @pytest.mark.asyncio
    async def test_wallpaper_handed_off(self, relay, wired, saved_images):
        event = await relay.handle(1, json.dumps({
            "type": "identification", "device_label": "Pixel", "wallpaper": "aGVsbG8=",
        }))

        assert isinstance(event, Identification)
        assert saved_images == [(1, "aGVsbG8=")]

    @pytest.mark.asyncio
    async def test_no_wallpaper_no_handoff(self, relay, wired, saved_images):
        await relay.handle(1, '{"type": "identification", "device_label": "Pixel"}')
        assert saved_images == []


class TestDataPayloadFrames:
    """Tests for agents that nest event fields under ``data``."""

    @pytest.mark.asyncio
    async def test_state_follows_nested_fields(self, relay, agents, states, wired):
        """Test identification, navigation, selection and uploads update the cache."""
        await relay.handle(1, json.dumps({"type": "identification", "data": "Galaxy A51", "path": "/sdcard"}))
        await relay.handle(1, json.dumps({
            "type": "navigation_update",
            "data": {"currentPath": "/sdcard/Download", "files": [{"name": "a.pdf"}], "filesCount": 1},
        }))
        await relay.handle(1, json.dumps({
            "type": "selection_update", "data": {"selectedFiles": ["/sdcard/Download/a.pdf"]},
        }))
        await relay.handle(1, json.dumps({"type": "upload_started", "data": {"fileName": "a.pdf"}}))

        state = states.get(1)
        assert agents.get(1).device_label == "Galaxy A51"
        assert state.device_label == "Galaxy A51"
        assert state.current_path == "/sdcard/Download"
        assert state.files == [{"name": "a.pdf"}]
        assert state.selected_files == ["/sdcard/Download/a.pdf"]
        assert state.active_upload == "a.pdf"


class TestOutOfRangeNumbers:
    """Tests for frames carrying numbers that fit no field."""

    @pytest.mark.asyncio
    async def test_overflowing_size_still_relayed(self, relay, agents, states, wired):
        """Test the frame reaches operators and the agent stays connected."""
        op, _ = wired
        raw = '{"type": "upload_started", "file_name": "f", "file_size": 1e400}'
        states.upsert(1, upload_queue_length=0)

        event = await relay.handle(1, raw)

        assert isinstance(event, OpaqueEvent)
        assert op.last()["message"] == raw
        assert 1 in agents
        assert states.get(1).upload_queue_length == 0
