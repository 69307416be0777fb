"""
Abstract transport interface.

The core never talks to paramiko directly: it dials through a Dialer,
opens sessions on the returned Connection, and drives each RemoteSession
through pty request, shell request, and byte relay.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional

from ..connection.auth import Authenticator
from ..connection.hostkeys import HostKeyVerifier
from ..connection.profile import ConnectionTarget, TerminalRequest


class RemoteSession(ABC):
    """
    One channel over a transport connection.

    Stream methods may be called concurrently from different threads
    (one reader per remote stream, one writer).
    """

    @abstractmethod
    def request_pty(self, request: TerminalRequest) -> None:
        """Request a pseudo-terminal. Blocks until the remote answers."""
        pass

    @abstractmethod
    def invoke_shell(self) -> None:
        """Start the remote shell. Blocks until the remote answers."""
        pass

    @abstractmethod
    def send(self, data: bytes) -> None:
        """Write all of ``data`` to the remote input."""
        pass

    @abstractmethod
    def recv(self, size: int) -> bytes:
        """Read remote output; empty bytes means end-of-stream."""
        pass

    @abstractmethod
    def recv_stderr(self, size: int) -> bytes:
        """Read remote error output; empty bytes means end-of-stream."""
        pass

    @abstractmethod
    def shutdown_write(self) -> None:
        """Signal end-of-input to the remote."""
        pass

    @abstractmethod
    def resize(self, cols: int, rows: int) -> None:
        """Notify remote of terminal resize."""
        pass

    @property
    @abstractmethod
    def exit_status(self) -> Optional[int]:
        """Remote exit status if it has been reported, else None."""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the channel. Safe to call more than once."""
        pass


class Connection(ABC):
    """An authenticated transport that can host many sessions."""

    @abstractmethod
    def open_session(self) -> RemoteSession:
        pass

    @property
    @abstractmethod
    def is_active(self) -> bool:
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the transport. Safe to call more than once."""
        pass


class Dialer(ABC):
    """Creates authenticated connections."""

    @abstractmethod
    def dial(
        self,
        target: ConnectionTarget,
        authenticator: Authenticator,
        verifier: HostKeyVerifier,
    ) -> Connection:
        """
        Connect, verify the host key, and authenticate.

        Raises:
            ConnectionFailedError: on any dial or handshake failure
        """
        pass
