import asyncio

import pytest

from lsp_ws_proxy.config import Timeouts
from lsp_ws_proxy.pumps import keepalive, pump_inbound, pump_outbound
from lsp_ws_proxy.session import TerminationSignal


class FakeStdin:
    def __init__(self, fail=False):
        self.data = bytearray()
        self.fail = fail
        self.closed = False

    def write(self, data):
        self.data += data

    async def drain(self):
        if self.fail:
            raise BrokenPipeError("child went away")


class FakeSupervisor:
    pid = 4242

    def __init__(self, stdin):
        self.stdin = stdin

    async def close_stdin(self):
        self.stdin.closed = True


def stdout_with(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


async def test_inbound_frames_each_message(fake_transport):
    stdin = FakeStdin()
    fake_transport.push(b'{"id":1}')
    fake_transport.push(b'{"id":2}')
    fake_transport.disconnect()

    await pump_inbound(fake_transport, FakeSupervisor(stdin))

    assert bytes(stdin.data) == (
        b'Content-Length: 10\r\n\r\n{"id":1}\r\n'
        b'Content-Length: 10\r\n\r\n{"id":2}\r\n'
    )
    assert stdin.closed


async def test_inbound_stops_on_write_failure(fake_transport):
    stdin = FakeStdin(fail=True)
    fake_transport.push(b"first")
    fake_transport.push(b"never read")

    await asyncio.wait_for(pump_inbound(fake_transport, FakeSupervisor(stdin)), timeout=1)

    assert stdin.closed
    assert fake_transport.incoming.qsize() == 1


async def test_outbound_delivers_payload_and_closes(fake_transport):
    terminated = TerminationSignal()

    await pump_outbound(fake_transport, stdout_with(b"Content-Length: 4\r\n\r\npong"),
                        terminated, Timeouts(close_grace=1))

    assert fake_transport.sent == [b"pong"]
    assert terminated.is_set()
    assert fake_transport.close_frames == [(1000, "")]
    assert fake_transport.close_calls == 1


async def test_outbound_send_failure_fires_signal_once(fake_transport):
    fake_transport.fail_send = True
    terminated = TerminationSignal()
    stdout = asyncio.StreamReader()
    stdout.feed_data(b"Content-Length: 4\r\n\r\npong")

    # stdout is still open: the failed send alone must end the pump.
    await asyncio.wait_for(
        pump_outbound(fake_transport, stdout, terminated, Timeouts(close_grace=1)), timeout=2)

    assert terminated.is_set()
    assert fake_transport.sent == []
    assert fake_transport.close_frames == [(1000, "")]


async def test_outbound_failure_reports_internal_error(fake_transport):
    fake_transport.send_error = RuntimeError("boom")
    terminated = TerminationSignal()

    with pytest.raises(RuntimeError):
        await pump_outbound(fake_transport, stdout_with(b"Content-Length: 4\r\n\r\npong"),
                            terminated, Timeouts(close_grace=1))

    assert terminated.is_set()
    assert fake_transport.sent == [b"Internal server error."]
    assert fake_transport.close_frames == [(1011, "internal error")]


async def test_outbound_gives_up_on_silent_client(make_transport):
    transport = make_transport(answer_close=False)
    terminated = TerminationSignal()

    await asyncio.wait_for(
        pump_outbound(transport, stdout_with(b""), terminated, Timeouts(close_grace=0.1)), timeout=2)

    assert terminated.is_set()
    assert transport.close_calls == 1


async def test_keepalive_stops_when_signal_fires(fake_transport):
    terminated = TerminationSignal()
    timeouts = Timeouts(pong_timeout=0.05)
    task = asyncio.create_task(keepalive(fake_transport, terminated, timeouts))

    await asyncio.sleep(0.3)
    terminated.fire()
    await asyncio.wait_for(task, timeout=1)
    pings = len(fake_transport.pings)
    await asyncio.sleep(0.1)

    assert pings >= 2
    assert len(fake_transport.pings) == pings
    assert all(at <= terminated.fired_at for at in fake_transport.pings)


async def test_keepalive_survives_failed_pings(fake_transport):
    fake_transport.fail_ping = True
    terminated = TerminationSignal()
    task = asyncio.create_task(keepalive(fake_transport, terminated, Timeouts(pong_timeout=0.02)))

    await asyncio.sleep(0.2)
    terminated.fire()
    await asyncio.wait_for(task, timeout=1)

    assert fake_transport.ping_attempts >= 2


async def test_keepalive_never_pings_after_early_termination(fake_transport):
    terminated = TerminationSignal()
    terminated.fire()

    await keepalive(fake_transport, terminated, Timeouts(pong_timeout=0.01))

    assert fake_transport.ping_attempts == 0


def test_termination_signal_fires_once():
    terminated = TerminationSignal()
    terminated.fire()

    with pytest.raises(RuntimeError):
        terminated.fire()
    assert terminated.fired_at is not None
