"""Shared fixtures for RelayHub tests."""

import asyncio
import json
import sys
import pytest
from pathlib import Path

from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


# ============================================================================
# Transport double
# ============================================================================

_CLOSED = object()


class FakeTransport:
    """Stands in for a websockets ServerConnection / ClientConnection.

    Frames queued with ``feed`` are returned by ``recv`` and async
    iteration; everything sent is kept in ``sent``.
    """

    def __init__(self, address=("10.0.0.1", 50000), fail_send=False,
                 fail_ping=False, answer_ping=True, stall_send=False):
        self.remote_address = address
        self.state = State.OPEN
        self.sent = []
        self.close_calls = 0
        self.ping_calls = 0
        self.fail_send = fail_send
        self.fail_ping = fail_ping
        self.answer_ping = answer_ping
        self.stall_send = stall_send
        self._incoming = asyncio.Queue()
        self._eof = False

    def feed(self, frame):
        """Queue a frame for the hub to read (dicts are JSON-encoded)."""
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._incoming.put_nowait(frame)

    def drop(self):
        """Simulate the peer vanishing without a closing handshake."""
        self.state = State.CLOSED
        self._end_stream()

    def _end_stream(self):
        if not self._eof:
            self._eof = True
            self._incoming.put_nowait(_CLOSED)

    async def send(self, data):
        if self.stall_send:
            # A peer that stopped reading: the write never completes
            await asyncio.Event().wait()
        if self.fail_send:
            raise OSError("Broken pipe")
        if self.state is not State.OPEN:
            raise ConnectionClosed(None, None)
        self.sent.append(data)

    async def recv(self):
        item = await self._incoming.get()
        if item is _CLOSED:
            self._incoming.put_nowait(_CLOSED)
            raise ConnectionClosed(None, None)
        return item

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            try:
                yield await self.recv()
            except ConnectionClosed:
                return

    async def close(self):
        self.close_calls += 1
        self.state = State.CLOSED
        self._end_stream()

    async def ping(self):
        self.ping_calls += 1
        if self.fail_ping:
            raise ConnectionClosed(None, None)
        waiter = asyncio.get_running_loop().create_future()
        if self.answer_ping:
            waiter.set_result(0.001)
        return waiter

    # Inspection helpers

    def messages(self):
        """Decoded JSON of every frame sent to this transport."""
        return [json.loads(frame) for frame in self.sent]

    def of_type(self, msg_type):
        return [m for m in self.messages() if m.get("type") == msg_type]

    def last(self):
        return json.loads(self.sent[-1])


async def settle(rounds: int = 25):
    """Let pending tasks and callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def make_transport():
    """Factory for FakeTransport instances with distinct addresses."""
    counter = {"n": 0}

    def _make(**kwargs):
        counter["n"] += 1
        kwargs.setdefault("address", ("10.0.0.%d" % counter["n"], 40000 + counter["n"]))
        return FakeTransport(**kwargs)

    return _make


# ============================================================================
# Hub component fixtures
# ============================================================================

@pytest.fixture
def agents():
    """Agent registry without listeners."""
    from relay.server.registry import ConnectionRegistry, Role
    return ConnectionRegistry(Role.AGENT)


@pytest.fixture
def operators():
    """Operator registry without listeners."""
    from relay.server.registry import ConnectionRegistry, Role
    return ConnectionRegistry(Role.OPERATOR)


@pytest.fixture
def states():
    from relay.server.state import SessionStateStore
    return SessionStateStore()


@pytest.fixture
def dispatcher():
    from relay.server.dispatcher import FanoutDispatcher
    return FanoutDispatcher()


@pytest.fixture
def router(agents, operators, states, dispatcher):
    from relay.server.router import CommandRouter
    return CommandRouter(agents, operators, states, dispatcher, port=8080)


@pytest.fixture
def image_store(tmp_path):
    from storage.images import ImageStore
    return ImageStore(str(tmp_path / "images"))


@pytest.fixture
def hub(image_store):
    """RelayServer wired with real collaborators, not listening on a socket."""
    from relay.server.relay_server import RelayServer
    return RelayServer(
        host="127.0.0.1",
        port=0,
        secret="s3cret",
        identification_timeout=0.2,
        heartbeat_interval=60,
        send_timeout=0.1,
        image_store=image_store,
    )


# ============================================================================
# Image fixtures
# ============================================================================

# 1x1 transparent PNG
PNG_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


@pytest.fixture
def png_base64():
    return PNG_BASE64
