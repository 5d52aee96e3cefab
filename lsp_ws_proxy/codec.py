"""
Content-Length framing used by language servers on stdio.

    Content-Length: <n>\\r\\n
    \\r\\n
    <n bytes of payload>

Only Content-Length is interpreted; any other header is skipped.
"""

import asyncio
import logging
from typing import Optional

from .errors import FrameParseAnomaly

logger = logging.getLogger(__name__)

CONTENT_LENGTH = "content-length"
MAX_CONTENT_LENGTH = 2**31 - 1


def encode_frame(message: bytes) -> bytes:
    """Frame a client message for the language server's stdin."""
    payload = message + b"\r\n"  # Payload should have CRLF at the end.
    header = f"Content-Length: {len(payload)}\r\n\r\n".encode("ascii")
    return header + payload


def _parse_length(value: str) -> int:
    # Plain ASCII digits only: no sign, no underscores.
    if not (value.isascii() and value.isdigit()):
        raise FrameParseAnomaly(f"unparseable Content-Length {value!r}")
    length = int(value)
    if length > MAX_CONTENT_LENGTH:
        raise FrameParseAnomaly(f"Content-Length {length} out of range")
    return length


async def decode_frame(reader: asyncio.StreamReader) -> Optional[bytes]:
    """
    Read one frame from the language server's stdout.

    Returns:
        The payload bytes, or None once the stream has ended.

    A missing or bad Content-Length is read as 0 so the pump keeps moving.
    Never reads past the declared payload.
    """
    length = None

    while True:  # Read headers until empty line.
        try:
            raw = await reader.readline()
        except ValueError as e:
            # Line longer than the reader's limit; the buffer is gone, so no resync.
            logger.warning("%s, ending stream", FrameParseAnomaly(f"oversized header line: {e}"))
            return None
        if not raw.endswith(b"\n"):
            # EOF, possibly in the middle of a header line.
            return None

        line = raw.decode("latin-1").strip()
        if not line:
            break

        name, sep, value = line.partition(":")
        if not sep:
            logger.warning("Header line without colon ends header block: %r", line)
            break

        if name.strip().lower() == CONTENT_LENGTH:
            try:
                length = _parse_length(value.strip())
            except FrameParseAnomaly as e:
                logger.warning("%s, reading empty payload", e)
                length = 0

    if length is None:
        logger.warning("%s", FrameParseAnomaly("header block without Content-Length, reading empty payload"))
        length = 0

    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        logger.debug("Stream ended %d bytes into a %d byte payload", len(e.partial), length)
        return None
