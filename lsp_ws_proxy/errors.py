"""
Exception types for the LSP WebSocket proxy.

Transport errors end the pump that hit them and are never retried.
SubprocessSpawnError is fatal to one session only. FrameParseAnomaly and
SubprocessUnresponsive are logged, not propagated.
"""


class ProxyError(Exception):
    """Base class for proxy errors."""


class TransportError(ProxyError, ConnectionError):
    """The WebSocket peer went away or the network failed."""


class TransportReadError(TransportError):
    """Reading the next message from the client failed."""


class TransportWriteError(TransportError):
    """Writing a message or control frame to the client failed."""


class SubprocessSpawnError(ProxyError):
    """The language server executable could not be started."""

    def __init__(self, command, cause=None):
        self.command = list(command)
        self.cause = cause
        message = f"failed to start {' '.join(self.command)!r}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class FrameParseAnomaly(ProxyError):
    """A header block had a missing or unparseable Content-Length."""


class SubprocessUnresponsive(ProxyError):
    """The child did not exit within the grace window after an interrupt."""

    def __init__(self, pid, grace):
        self.pid = pid
        self.grace = grace
        super().__init__(f"process {pid} still running {grace}s after interrupt")
