"""
Client-side transport for a proxy session.

BaseTransport is the connection the pumps talk to; WebSocketTransport
adapts an accepted `websockets` server connection to it.

All writes (messages, pings, the close frame) go through one lock so the
outbound pump and the keepalive task never interleave frames.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import websockets

from .errors import TransportReadError, TransportWriteError

logger = logging.getLogger(__name__)


class BaseTransport(ABC):
    """
    Abstract message connection to the client.

    Implementations: WebSocketTransport (and in-memory fakes in tests).
    """

    @property
    def remote_address(self):
        return None

    @abstractmethod
    async def recv(self) -> bytes:
        """
        Receive the next whole message from the client.

        Raises:
            TransportReadError: If the connection is closed or broken
        """

    @abstractmethod
    async def send(self, message: bytes):
        """
        Send one message to the client.

        Raises:
            TransportWriteError: If the send fails
        """

    @abstractmethod
    async def ping(self, timeout: float):
        """
        Send a ping control frame, giving up after `timeout` seconds.

        Raises:
            TransportWriteError: If the ping could not be written in time
        """

    @abstractmethod
    async def send_close(self, code: int = 1000, reason: str = ""):
        """Start the closing handshake. Best-effort, never raises."""

    @abstractmethod
    async def wait_closed(self, timeout: float) -> bool:
        """Wait up to `timeout` seconds for the closing handshake. True if it completed."""

    @abstractmethod
    async def close(self):
        """Close the connection now, whatever state the handshake is in."""

    async def shutdown(self, grace: float, code: int = 1000, reason: str = ""):
        """Send a close frame, give the client `grace` seconds to answer, then close."""
        await self.send_close(code, reason)
        if not await self.wait_closed(grace):
            logger.info("Client %s did not finish closing within %ss, dropping connection",
                        self.remote_address, grace)
        await self.close()


class WebSocketTransport(BaseTransport):
    """
    BaseTransport over a `websockets` server connection.

    Text frames from the client are handed on as UTF-8 bytes. Payloads from
    the language server go out as text frames, or as binary frames when they
    are not valid UTF-8.
    """

    def __init__(self, ws):
        self.ws = ws
        self._write_lock = asyncio.Lock()
        self._closing: Optional[asyncio.Task] = None

    @property
    def remote_address(self):
        return self.ws.remote_address

    async def recv(self) -> bytes:
        try:
            message = await self.ws.recv()
        except websockets.exceptions.ConnectionClosed as e:
            raise TransportReadError(f"connection closed: {e}") from e
        if isinstance(message, str):
            message = message.encode("utf-8")
        return message

    async def send(self, message: bytes):
        try:
            frame = message.decode("utf-8")
        except UnicodeDecodeError:
            frame = message  # Not text: pass the bytes through as a binary frame.
        try:
            async with self._write_lock:
                await self.ws.send(frame)
        except (websockets.exceptions.ConnectionClosed, OSError) as e:
            raise TransportWriteError(f"send failed: {e}") from e

    async def ping(self, timeout: float):
        async def _ping():
            async with self._write_lock:
                # Awaiting ping() only writes the frame; the pong waiter is dropped.
                await self.ws.ping()

        try:
            await asyncio.wait_for(_ping(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TransportWriteError(f"ping not written within {timeout}s") from e
        except (websockets.exceptions.ConnectionClosed, OSError) as e:
            raise TransportWriteError(f"ping failed: {e}") from e

    async def send_close(self, code: int = 1000, reason: str = ""):
        if self._closing is None:
            self._closing = asyncio.create_task(self._close_handshake(code, reason))
        # Let the task write the close frame before returning.
        await asyncio.sleep(0)

    async def _close_handshake(self, code: int, reason: str):
        try:
            async with self._write_lock:
                await self.ws.close(code, reason)
        except (websockets.exceptions.ConnectionClosed, OSError) as e:
            logger.debug("Close handshake with %s failed: %s", self.remote_address, e)

    async def wait_closed(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(asyncio.shield(self.ws.wait_closed()), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def close(self):
        transport = getattr(self.ws, "transport", None)
        if transport is not None:
            transport.abort()
        if self._closing is not None:
            await asyncio.gather(self._closing, return_exceptions=True)
