"""
Local terminal handles.

Gives the relay raw binary stdin/stdout/stderr, reports the window size
for the pty request, and can switch the local tty to raw mode so
keystrokes reach the remote shell unbuffered.
"""

from __future__ import annotations
import logging
import shutil
import signal
import sys
import threading
from contextlib import contextmanager
from typing import BinaryIO, Callable, Optional

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == 'win32'

if not IS_WINDOWS:
    import termios
    import tty


class LocalTerminal:
    """
    The process's own terminal.

    Streams default to the binary buffers behind sys.stdin/stdout/stderr.
    """

    def __init__(
        self,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[BinaryIO] = None,
        stderr: Optional[BinaryIO] = None,
    ):
        self.stdin = stdin if stdin is not None else sys.stdin.buffer
        self.stdout = stdout if stdout is not None else sys.stdout.buffer
        self.stderr = stderr if stderr is not None else sys.stderr.buffer

    def isatty(self) -> bool:
        """Is input attached to an interactive terminal?"""
        try:
            return self.stdin.isatty()
        except (AttributeError, ValueError):
            return False

    def size(self, fallback: tuple[int, int] = (80, 40)) -> tuple[int, int]:
        """Window size as (cols, rows)."""
        cols, rows = shutil.get_terminal_size(fallback)
        return cols, rows

    @contextmanager
    def raw_mode(self):
        """
        Put the local tty in raw mode for the duration of the block.

        No-op when input is not a tty or on Windows. The previous
        attributes are always restored.
        """
        if IS_WINDOWS or not self.isatty():
            yield
            return

        fd = self.stdin.fileno()
        saved = termios.tcgetattr(fd)
        try:
            tty.setraw(fd)
            logger.debug("Local terminal switched to raw mode")
            yield
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)
            logger.debug("Local terminal attributes restored")

    def watch_resize(self, callback: Callable[[int, int], None]) -> Callable[[], None]:
        """
        Call ``callback(cols, rows)`` whenever the window is resized.

        Only possible on Unix from the main thread; otherwise does nothing.

        Returns:
            Function that removes the handler
        """
        if IS_WINDOWS or threading.current_thread() is not threading.main_thread():
            return lambda: None

        def on_winch(signum, frame):
            cols, rows = self.size()
            try:
                callback(cols, rows)
            except Exception as e:
                logger.error(f"Resize error: {e}")

        previous = signal.signal(signal.SIGWINCH, on_winch)

        def restore():
            signal.signal(signal.SIGWINCH, previous)

        return restore
