"""
The three concurrent activities of a session.

    pump_inbound:  client -> language server stdin
    pump_outbound: language server stdout -> client
    keepalive:     periodic pings to the client

pump_outbound owns the termination signal: it fires it once stdout ends,
and keepalive stops on it.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from .codec import decode_frame, encode_frame
from .config import Timeouts
from .errors import TransportReadError, TransportWriteError
from .supervisor import Supervisor
from .transport import BaseTransport

if TYPE_CHECKING:
    from .session import TerminationSignal

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
INTERNAL_ERROR_CODE = 1011
INTERNAL_ERROR_MESSAGE = b"Internal server error."


def _preview(message: bytes, limit: int = 200) -> str:
    text = message.decode("utf-8", errors="replace")
    return text if len(text) <= limit else text[:limit] + "..."


async def internal_error(transport: BaseTransport):
    """Best-effort plain-text error for the client before the connection closes."""
    try:
        await transport.send(INTERNAL_ERROR_MESSAGE)
    except TransportWriteError as e:
        logger.debug("Could not report internal error to %s: %s", transport.remote_address, e)


async def pump_inbound(transport: BaseTransport, supervisor: Supervisor):
    """Read messages from the client and frame them onto the child's stdin."""
    peer = transport.remote_address
    try:
        while True:  # For each incoming message...
            try:
                message = await transport.recv()
            except TransportReadError as e:
                logger.info("Client %s disconnected: %s", peer, e)
                break

            logger.debug("Client -> LSP: %s", _preview(message))
            try:
                supervisor.stdin.write(encode_frame(message))
                await supervisor.stdin.drain()
            except OSError as e:
                logger.info("Writing to language server (pid=%d) failed: %s", supervisor.pid, e)
                break
    finally:
        # Some servers exit when stdin is closed.
        await supervisor.close_stdin()


async def pump_outbound(transport: BaseTransport, stdout: asyncio.StreamReader,
                        terminated: "TerminationSignal", timeouts: Timeouts):
    """
    Read frames from the child's stdout and send each payload to the client.

    An unexpected error is reported to the client as "Internal server error."
    and the connection is closed with 1011 before the error propagates.
    """
    code, reason = NORMAL_CLOSURE, ""
    try:
        while True:
            payload = await decode_frame(stdout)
            if payload is None:
                logger.info("Language server stdout closed")
                break

            logger.debug("LSP -> Client: %s", _preview(payload))
            try:
                await transport.send(payload)
            except TransportWriteError as e:
                logger.info("Sending to client %s failed: %s", transport.remote_address, e)
                await transport.close()
                break
    except Exception:
        code, reason = INTERNAL_ERROR_CODE, "internal error"
        await internal_error(transport)
        raise
    finally:
        terminated.fire()
        await transport.shutdown(timeouts.close_grace, code, reason)


async def keepalive(transport: BaseTransport, terminated: "TerminationSignal", timeouts: Timeouts):
    """Ping the client every ping_interval seconds until the session terminates."""
    while not terminated.is_set():
        try:
            await asyncio.wait_for(terminated.wait(), timeout=timeouts.ping_interval)
        except asyncio.TimeoutError:
            pass
        if terminated.is_set():
            break

        try:
            await transport.ping(timeouts.write_timeout)
        except TransportWriteError as e:
            logger.warning("ping: %s", e)
