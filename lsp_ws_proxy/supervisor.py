"""
Language server child process: spawn, pipes, and stop escalation.

Stop is two-staged. Many servers exit on stdin EOF or SIGINT; the rest are
killed once the grace window runs out, so a session never waits forever on
an unresponsive child.
"""

import asyncio
import logging
import signal
from typing import Awaitable, Callable, Optional, Sequence

from .errors import SubprocessSpawnError, SubprocessUnresponsive

logger = logging.getLogger(__name__)

# Enough for one header line; payloads are read with readexactly().
STDOUT_LIMIT = 1024 * 1024


class Supervisor:
    """Owns one language server process and its stdin/stdout pipes."""

    def __init__(self, process: asyncio.subprocess.Process, command: Sequence[str]):
        self.process = process
        self.command = list(command)

    @classmethod
    async def spawn(cls, executable: str, args: Sequence[str] = ()) -> "Supervisor":
        """
        Start the language server with stdin and stdout as pipes.

        stderr is inherited from the proxy and is not part of the protocol.

        Raises:
            SubprocessSpawnError: If the executable cannot be started
        """
        command = [executable, *args]
        logger.info("Starting language server: %s", " ".join(command))
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                limit=STDOUT_LIMIT,
            )
        except (OSError, ValueError) as e:
            raise SubprocessSpawnError(command, e) from e
        logger.info("Language server started (pid=%d)", process.pid)
        return cls(process, command)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    @property
    def stdin(self) -> asyncio.StreamWriter:
        return self.process.stdin

    @property
    def stdout(self) -> asyncio.StreamReader:
        return self.process.stdout

    async def close_stdin(self):
        """Signal end-of-input to the child."""
        if self.stdin.is_closing():
            return
        self.stdin.close()
        try:
            await self.stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            pass

    def interrupt(self):
        """Ask the child to stop (SIGINT, or terminate() where SIGINT can't be sent)."""
        if self.returncode is not None:
            return
        try:
            self.process.send_signal(signal.SIGINT)
        except ValueError:
            # Windows only delivers SIGTERM/CTRL_* events to a child.
            self.process.terminate()
        except ProcessLookupError:
            pass

    def kill(self):
        """Stop the child unconditionally."""
        if self.returncode is not None:
            return
        try:
            self.process.kill()
        except ProcessLookupError:
            pass

    async def request_stop(self, grace: float,
                           exited: Optional[Callable[[], Awaitable]] = None):
        """
        Interrupt the child, then kill it if it hasn't exited after `grace` seconds.

        Args:
            grace: Seconds to wait after the interrupt
            exited: Awaitable factory telling when the child is gone
                    (defaults to waiting on the process itself)
        """
        if exited is None:
            exited = self.process.wait

        self.interrupt()
        try:
            await asyncio.wait_for(exited(), timeout=grace)
            return
        except asyncio.TimeoutError:
            logger.warning("%s, killing it", SubprocessUnresponsive(self.pid, grace))

        self.kill()
        await exited()

    async def wait(self) -> int:
        """Reap the child. Called on every exit path."""
        returncode = await self.process.wait()
        logger.info("Language server exited (pid=%d, returncode=%s)", self.pid, returncode)
        return returncode
