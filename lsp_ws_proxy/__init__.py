"""
WebSocket bridge for stdio language servers.

Each browser connection gets its own language server process; messages are
translated between WebSocket frames and Content-Length framing on stdio.
"""

from .codec import decode_frame, encode_frame
from .config import ProxyConfig, Timeouts
from .errors import (
    FrameParseAnomaly,
    ProxyError,
    SubprocessSpawnError,
    SubprocessUnresponsive,
    TransportError,
    TransportReadError,
    TransportWriteError,
)
from .server import LSPProxyServer
from .session import Session, SessionState, TerminationSignal, serve_session
from .supervisor import Supervisor
from .transport import BaseTransport, WebSocketTransport

__version__ = "0.1.0"
