"""
One proxy session: a client connection bridged to its own language server.

Lifecycle:
    STARTING  child spawned, pipes wired
    ACTIVE    inbound pump, outbound pump and keepalive running
    DRAINING  inbound pump ended; stdin closed, child interrupted
              (killed if it outlives kill_grace), termination awaited
    CLOSED    child reaped, all three tasks joined, transport closed

Resources are released in the same order on every path: close stdin,
stop the child, reap it, close the transport.
"""

import asyncio
import enum
import logging
import time
from typing import Optional

from .config import ProxyConfig, Timeouts
from .errors import SubprocessSpawnError
from .pumps import INTERNAL_ERROR_CODE, internal_error, keepalive, pump_inbound, pump_outbound
from .supervisor import Supervisor
from .transport import BaseTransport

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    STARTING = "starting"
    ACTIVE = "active"
    DRAINING = "draining"
    CLOSED = "closed"


class TerminationSignal:
    """One-shot broadcast: set once when the session starts shutting down."""

    def __init__(self):
        self._event = asyncio.Event()
        self.fired_at: Optional[float] = None

    def fire(self):
        if self._event.is_set():
            raise RuntimeError("termination already signaled")
        self.fired_at = time.monotonic()
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self):
        await self._event.wait()


class Session:
    """Bridges one transport to one language server process."""

    def __init__(self, transport: BaseTransport, supervisor: Supervisor,
                 timeouts: Optional[Timeouts] = None):
        self.transport = transport
        self.supervisor = supervisor
        self.timeouts = timeouts or Timeouts()
        self.terminated = TerminationSignal()
        self.state = SessionState.STARTING
        self.returncode: Optional[int] = None

    def _set_state(self, state: SessionState):
        logger.debug("Session %s (pid=%d): %s -> %s", self.transport.remote_address,
                     self.supervisor.pid, self.state.value, state.value)
        self.state = state

    async def _stopped(self):
        # The signal fires before the child exits when a send to the client fails.
        await self.terminated.wait()
        await self.supervisor.process.wait()

    async def run(self):
        """Run the session until the child is reaped and the transport is closed."""
        peer = self.transport.remote_address
        self._set_state(SessionState.ACTIVE)

        inbound = asyncio.create_task(pump_inbound(self.transport, self.supervisor))
        outbound = asyncio.create_task(pump_outbound(
            self.transport, self.supervisor.stdout, self.terminated, self.timeouts))
        pinger = asyncio.create_task(keepalive(self.transport, self.terminated, self.timeouts))

        try:
            await asyncio.wait([inbound])
            if not inbound.cancelled() and inbound.exception() is not None:
                # The outbound pump reports its own failures before closing.
                await internal_error(self.transport)
        finally:
            self._set_state(SessionState.DRAINING)
            if not inbound.done():
                inbound.cancel()

            await self.supervisor.close_stdin()
            await self.supervisor.request_stop(self.timeouts.kill_grace, exited=self._stopped)
            self.returncode = await self.supervisor.wait()

            results = await asyncio.gather(inbound, outbound, pinger, return_exceptions=True)
            failures = [r for r in results
                        if isinstance(r, Exception) and not isinstance(r, asyncio.CancelledError)]
            for failure in failures:
                logger.error("Session %s (pid=%d) failed: %r", peer, self.supervisor.pid, failure,
                             exc_info=failure)
            await self.transport.close()
            self._set_state(SessionState.CLOSED)


async def serve_session(transport: BaseTransport, config: ProxyConfig) -> Optional[Session]:
    """
    Spawn a language server for an accepted connection and run the session.

    Failures stay inside this session: they are logged, the client gets
    "Internal server error." and the connection is closed.

    Returns:
        The finished Session, or None if the child could not be started
    """
    peer = transport.remote_address
    logger.info("Client connected: %s", peer)

    try:
        supervisor = await Supervisor.spawn(config.executable, config.args)
    except SubprocessSpawnError as e:
        logger.error("Session %s: %s", peer, e)
        await internal_error(transport)
        await transport.shutdown(config.timeouts.close_grace, INTERNAL_ERROR_CODE, "internal error")
        return None

    session = Session(transport, supervisor, config.timeouts)
    try:
        await session.run()
    except Exception:
        logger.exception("Session %s (pid=%d) crashed", peer, supervisor.pid)
        await internal_error(transport)
        await transport.shutdown(config.timeouts.close_grace, INTERNAL_ERROR_CODE, "internal error")
    logger.info("Client session closed: %s", peer)
    return session
