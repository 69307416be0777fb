"""
Byte relay between the local terminal and a remote shell.

Three independent copy loops, each on its own daemon thread:

    stdin   local input   -> remote input
    stdout  remote output -> local output
    stderr  remote errors -> local error output

Bytes are copied as-is. A loop ends when its source reaches end-of-stream
or errors; that ends only its own direction. The relay as a whole finishes
when both remote output streams have ended (the shell exited) or when it is
cancelled.
"""

from __future__ import annotations
import io
import logging
import os
import select
import sys
import threading
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Optional

from ..exceptions import RelayError
from ..transport.base import RemoteSession

logger = logging.getLogger(__name__)


STDIN = "stdin"
STDOUT = "stdout"
STDERR = "stderr"


@dataclass
class DirectionResult:
    """How one copy loop ended."""
    name: str
    bytes_copied: int = 0
    error: Optional[BaseException] = None
    cancelled: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None and not self.cancelled


@dataclass
class RelayResult:
    """Outcome of a relay run."""
    directions: dict[str, DirectionResult] = field(default_factory=dict)
    exit_status: Optional[int] = None
    cancelled: bool = False

    def __getitem__(self, name: str) -> DirectionResult:
        return self.directions[name]


class IORelay:
    """
    Relay bytes between local streams and a RemoteSession.

    Usage:
        relay = IORelay(session, stdin, stdout, stderr)
        result = relay.run()        # blocks until the shell exits

        # from another thread, or via the shared event:
        relay.cancel()

    Args:
        session: Session with a started shell
        stdin: Local binary input
        stdout: Local binary output
        stderr: Local binary error output
        cancel_event: Optional shared event; setting it cancels the relay
        release: Called once on cancellation to close the session's
            streams (defaults to ``session.close``)
    """

    READ_BUFFER_SIZE = 32768
    POLL_INTERVAL = 0.1

    def __init__(
        self,
        session: RemoteSession,
        stdin: BinaryIO,
        stdout: BinaryIO,
        stderr: BinaryIO,
        cancel_event: Optional[threading.Event] = None,
        release: Optional[Callable[[], None]] = None,
        buffer_size: int = READ_BUFFER_SIZE,
    ):
        self.session = session
        self.stdin = stdin
        self.stdout = stdout
        self.stderr = stderr
        self.buffer_size = buffer_size

        self._cancel = cancel_event or threading.Event()
        self._stop = threading.Event()
        self._release = release or session.close
        self._released = False
        self._release_lock = threading.Lock()

        self._results = {
            name: DirectionResult(name) for name in (STDIN, STDOUT, STDERR)
        }
        self._threads: dict[str, threading.Thread] = {}

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop all directions. Safe to call from any thread."""
        logger.info("Relay cancellation requested")
        self._cancel.set()
        self._release_streams()

    def run(self) -> RelayResult:
        """
        Start the copy loops and block until the shell exits or the relay
        is cancelled.

        Raises:
            RelayError: every direction ended with a stream error
        """
        self._threads = {
            STDIN: threading.Thread(target=self._copy_input, name="relay-stdin", daemon=True),
            STDOUT: threading.Thread(
                target=self._copy_output,
                args=(STDOUT, self.session.recv, self.stdout),
                name="relay-stdout",
                daemon=True,
            ),
            STDERR: threading.Thread(
                target=self._copy_output,
                args=(STDERR, self.session.recv_stderr, self.stderr),
                name="relay-stderr",
                daemon=True,
            ),
        }
        for thread in self._threads.values():
            thread.start()

        while not self._cancel.is_set() and not self._outputs_finished():
            self._cancel.wait(self.POLL_INTERVAL)

        if self._cancel.is_set():
            self._release_streams()

        # Remote side is done (or we are cancelling); the input loop only
        # notices on its next poll, a blocking reader is left to die with
        # the process.
        self._stop.set()
        for name in (STDOUT, STDERR):
            self._threads[name].join()
        self._threads[STDIN].join(timeout=self.POLL_INTERVAL * 2)
        if self._threads[STDIN].is_alive():
            logger.debug("Local input reader still blocked; pending input is not sent")

        result = RelayResult(
            directions=dict(self._results),
            exit_status=self._exit_status(),
            cancelled=self._cancel.is_set(),
        )

        if all(r.failed for r in self._results.values()):
            raise RelayError("All relay directions failed", list(self._results.values()))

        logger.info(
            f"Relay finished: sent={self._results[STDIN].bytes_copied}B, "
            f"received={self._results[STDOUT].bytes_copied}B, "
            f"errors={self._results[STDERR].bytes_copied}B"
            + (" (cancelled)" if result.cancelled else "")
        )
        return result

    # -------------------------------------------------------------------------
    # Copy loops
    # -------------------------------------------------------------------------

    def _copy_input(self) -> None:
        result = self._results[STDIN]
        try:
            while not self._stopping():
                data = self._read_local(self.stdin)
                if data is None:
                    continue
                if not data:
                    logger.debug("Local input reached end-of-stream")
                    if not self._stopping():
                        self.session.shutdown_write()
                    break
                if self._stopping():
                    logger.debug(f"Dropping {len(data)}B of local input read after the shell ended")
                    break
                self.session.send(data)
                result.bytes_copied += len(data)
            else:
                logger.debug(
                    f"Stopped forwarding local input after {result.bytes_copied}B; "
                    f"anything unread is dropped"
                )
        except Exception as e:
            self._record_error(result, e)
        else:
            result.cancelled = self._cancel.is_set()

    def _copy_output(self, name: str, reader: Callable[[int], bytes], sink: BinaryIO) -> None:
        result = self._results[name]
        try:
            while True:
                data = reader(self.buffer_size)
                if not data:
                    logger.debug(f"Remote {name} reached end-of-stream")
                    break
                sink.write(data)
                flush = getattr(sink, "flush", None)
                if flush:
                    flush()
                result.bytes_copied += len(data)
        except Exception as e:
            self._record_error(result, e)
        else:
            result.cancelled = self._cancel.is_set()

    def _record_error(self, result: DirectionResult, error: Exception) -> None:
        if self._cancel.is_set():
            result.cancelled = True
            logger.debug(f"Relay {result.name} stopped by cancellation: {error}")
            return
        result.error = error
        logger.warning(f"Relay {result.name} ended with error: {error}")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _stopping(self) -> bool:
        return self._stop.is_set() or self._cancel.is_set()

    def _outputs_finished(self) -> bool:
        return not any(self._threads[name].is_alive() for name in (STDOUT, STDERR))

    def _release_streams(self) -> None:
        with self._release_lock:
            if self._released:
                return
            self._released = True
        try:
            self._release()
        except Exception as e:
            logger.debug(f"Error releasing session streams: {e}")

    def _read_local(self, stream: BinaryIO) -> Optional[bytes]:
        """
        Read a chunk of local input.

        Returns None when nothing arrived within the poll interval, so the
        caller can check for cancellation.
        """
        fd = self._fileno(stream)
        if fd is not None:
            ready, _, _ = select.select([fd], [], [], self.POLL_INTERVAL)
            if not ready:
                return None
            return os.read(fd, self.buffer_size)

        reader = getattr(stream, "read1", None) or stream.read
        return reader(self.buffer_size)

    @staticmethod
    def _fileno(stream) -> Optional[int]:
        # select() only works on sockets on Windows
        if sys.platform == "win32":
            return None
        try:
            return stream.fileno()
        except (AttributeError, OSError, io.UnsupportedOperation):
            return None

    def _exit_status(self) -> Optional[int]:
        try:
            return self.session.exit_status
        except Exception as e:
            logger.debug(f"Could not read exit status: {e}")
            return None
