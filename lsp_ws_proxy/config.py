"""
Proxy configuration: listen address, language server command, origin policy
and the timing constants used by a session.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

DEFAULT_ADDR = "localhost:5008"

# Maximum message size allowed from the client.
MAX_MESSAGE_SIZE = 8192


@dataclass
class Timeouts:
    """Timing constants for one session, in seconds."""

    # Time allowed to write a ping to the client.
    write_timeout: float = 10.0

    # Assumed client liveness timeout; pings go out well inside it.
    pong_timeout: float = 60.0

    # Time to wait for the client's close frame before force closing.
    close_grace: float = 10.0

    # Time the language server gets after an interrupt before it is killed.
    kill_grace: float = 1.0

    @property
    def ping_interval(self) -> float:
        """Send pings with this period. Must be less than pong_timeout."""
        return self.pong_timeout * 9 / 10


def parse_address(addr: str) -> Tuple[str, int]:
    """Split "host:port" (or "[v6]:port", or ":port") into host and port."""
    host, sep, port = addr.rpartition(":")
    if not sep or not port:
        raise ValueError(f"address {addr!r} must look like host:port")
    try:
        port_number = int(port)
    except ValueError:
        raise ValueError(f"invalid port {port!r} in address {addr!r}")
    if not 0 <= port_number <= 65535:
        raise ValueError(f"port {port_number} out of range in address {addr!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host or "0.0.0.0", port_number


@dataclass
class ProxyConfig:
    """Everything the listener needs to serve sessions."""

    executable: str
    args: List[str] = field(default_factory=lambda: ["--stdio"])
    host: str = "localhost"
    port: int = 5008

    # Browsers send an Origin header on the upgrade request. With
    # allow_any_origin every origin is accepted; otherwise only the listed
    # origins and clients that send no Origin at all.
    allow_any_origin: bool = False
    origins: List[str] = field(default_factory=list)

    max_message_size: int = MAX_MESSAGE_SIZE
    timeouts: Timeouts = field(default_factory=Timeouts)

    @classmethod
    def for_jar(cls, jar: str, **kwargs) -> "ProxyConfig":
        """Config for a language server shipped as an executable jar."""
        return cls(executable="java", args=["-jar", jar, "--stdio"], **kwargs)

    @classmethod
    def from_args(cls, args) -> "ProxyConfig":
        """Build a config from the namespace returned by cli.build_parser()."""
        host, port = parse_address(args.addr)
        timeouts = Timeouts(
            write_timeout=args.write_timeout,
            pong_timeout=args.pong_timeout,
            close_grace=args.close_grace,
            kill_grace=args.kill_grace,
        )
        common = dict(
            host=host,
            port=port,
            allow_any_origin=args.allow_any_origin,
            origins=list(args.origin or []),
            max_message_size=args.max_message_size,
            timeouts=timeouts,
        )
        if args.jar:
            return cls.for_jar(args.jar, **common)
        executable, *rest = args.command
        return cls(executable=executable, args=rest or ["--stdio"], **common)

    @property
    def command(self) -> List[str]:
        return [self.executable, *self.args]

    def websocket_origins(self) -> Optional[List[Optional[str]]]:
        """Value for websockets.serve(origins=...); None disables the check."""
        if self.allow_any_origin:
            return None
        return [*self.origins, None]
