"""Shared fixtures: an in-memory transport and scripted language servers."""

import asyncio
import sys
import time
from pathlib import Path

import pytest

from lsp_ws_proxy.errors import TransportReadError, TransportWriteError
from lsp_ws_proxy.transport import BaseTransport

CHILDREN = Path(__file__).parent / "children"


class FakeTransport(BaseTransport):
    """
    BaseTransport kept in memory.

    The test feeds client messages with `push()` and simulates a client
    disconnect with `disconnect()`. By default the fake client answers a
    close frame straight away, like a browser does.
    """

    def __init__(self, answer_close=True):
        self.incoming = asyncio.Queue()
        self.sent = []
        self.pings = []
        self.ping_attempts = 0
        self.close_frames = []
        self.close_calls = 0
        self.closed = asyncio.Event()
        self.answer_close = answer_close
        self.fail_send = False
        self.send_error = None
        self.fail_ping = False

    @property
    def remote_address(self):
        return ("127.0.0.1", 50000)

    def push(self, message: bytes):
        self.incoming.put_nowait(message)

    def disconnect(self):
        self.incoming.put_nowait(None)

    async def recv(self) -> bytes:
        getter = asyncio.ensure_future(self.incoming.get())
        closer = asyncio.ensure_future(self.closed.wait())
        try:
            done, _ = await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            getter.cancel()
            closer.cancel()
        if getter in done:
            message = getter.result()
            if message is not None:
                return message
        raise TransportReadError("client went away")

    async def send(self, message: bytes):
        if self.send_error is not None:
            error, self.send_error = self.send_error, None
            raise error
        if self.fail_send or self.closed.is_set():
            raise TransportWriteError("send failed")
        self.sent.append(message)

    async def ping(self, timeout: float):
        self.ping_attempts += 1
        if self.fail_ping:
            raise TransportWriteError("ping failed")
        self.pings.append(time.monotonic())

    async def send_close(self, code: int = 1000, reason: str = ""):
        self.close_frames.append((code, reason))
        if self.answer_close:
            self.closed.set()

    async def wait_closed(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self.closed.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def close(self):
        self.close_calls += 1
        self.closed.set()


async def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def wait_until():
    """Poll a predicate until it is true, failing the test after `timeout` seconds."""
    return _wait_until


@pytest.fixture
def child():
    """Factory: (executable, args) running one of the scripted language servers."""

    def _child(name, *args):
        return sys.executable, [str(CHILDREN / f"{name}.py"), *map(str, args)]

    return _child
