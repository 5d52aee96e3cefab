"""
WebSocket listener: accepts browser connections and gives each one its own
language server session.
"""

import asyncio
import logging

import websockets

from .config import ProxyConfig
from .session import serve_session
from .transport import WebSocketTransport

logger = logging.getLogger(__name__)


class LSPProxyServer:
    def __init__(self, config: ProxyConfig):
        self.config = config
        self.sessions = set()

    async def handle_client(self, websocket):
        """Handle one WebSocket connection for its whole lifetime"""
        transport = WebSocketTransport(websocket)
        task = asyncio.current_task()
        self.sessions.add(task)
        try:
            await serve_session(transport, self.config)
        finally:
            self.sessions.discard(task)

    def serve(self):
        """The websockets server for this config, ready for `async with`."""
        return websockets.serve(
            self.handle_client,
            self.config.host,
            self.config.port,
            max_size=self.config.max_message_size,
            origins=self.config.websocket_origins(),
            # The session's keepalive task sends the pings.
            ping_interval=None,
            ping_timeout=None,
            close_timeout=self.config.timeouts.close_grace,
        )

    async def run(self):
        """Run the WebSocket proxy until cancelled"""
        if self.config.allow_any_origin:
            logger.warning("Accepting WebSocket connections from any origin")
        logger.info("Language server command: %s", " ".join(self.config.command))

        async with self.serve():
            logger.info("WebSocket proxy ready on ws://%s:%d", self.config.host, self.config.port)
            await asyncio.Future()  # Run forever
