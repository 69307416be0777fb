"""
Interactive shell client.

Ties the pieces together: validate config, dial (host verification and
authentication happen inside), open a session, negotiate pty and shell,
relay bytes until the shell exits or the run is cancelled.
"""

from __future__ import annotations
import logging
import threading
from typing import Optional

from .config import ClientConfig
from .connection.auth import Authenticator, ChallengeHandler
from .connection.hostkeys import HostKeyVerifier
from .session.negotiator import negotiate
from .session.relay import IORelay, RelayResult
from .terminal import LocalTerminal
from .transport.base import Connection, Dialer, RemoteSession

logger = logging.getLogger(__name__)


class ShellClient:
    """
    Run one interactive shell over SSH.

    Usage:
        config = ClientConfig(username="admin", password="pw", host="10.0.0.1")
        client = ShellClient(config)
        result = client.run()

    Args:
        config: Run configuration
        dialer: Transport collaborator (defaults to ParamikoDialer)
        terminal: Local terminal streams (defaults to the process's own)
        verifier: Host verifier (defaults to the one config selects)
        challenge_handler: Keyboard-interactive handler override
        cancel_event: Setting this event cancels the relay
    """

    def __init__(
        self,
        config: ClientConfig,
        dialer: Optional[Dialer] = None,
        terminal: Optional[LocalTerminal] = None,
        verifier: Optional[HostKeyVerifier] = None,
        challenge_handler: Optional[ChallengeHandler] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.config = config
        self._dialer = dialer
        self._terminal = terminal
        self._verifier = verifier
        self._challenge_handler = challenge_handler
        self.cancel_event = cancel_event or threading.Event()

        self._connection: Optional[Connection] = None
        self._relay: Optional[IORelay] = None

    @property
    def terminal(self) -> LocalTerminal:
        if self._terminal is None:
            self._terminal = LocalTerminal()
        return self._terminal

    def _get_dialer(self) -> Dialer:
        if self._dialer is None:
            from .transport.paramiko_transport import ParamikoDialer
            self._dialer = ParamikoDialer(
                connect_timeout=self.config.connect_timeout,
                keepalive_interval=self.config.keepalive_interval,
                legacy_algorithms=self.config.legacy_algorithms,
            )
        return self._dialer

    def connect(self) -> Connection:
        """
        Dial and authenticate.

        Raises:
            ConfigurationError: before any network activity
            ConnectionFailedError: dial, host key, or auth failure
        """
        self.config.validate()
        target = self.config.target()
        authenticator = Authenticator(
            self.config.username,
            self.config.auth_methods(self._challenge_handler),
        )
        verifier = self._verifier or self.config.verifier()

        self._connection = self._get_dialer().dial(target, authenticator, verifier)
        logger.info(f"Connected to {target} as {self.config.username}")
        return self._connection

    def run(self) -> RelayResult:
        """
        Connect (if needed), start a shell, and relay until it exits.

        The session is closed exactly once whichever way this returns,
        and the connection is closed afterwards.

        Raises:
            ConfigurationError, ConnectionFailedError, SessionSetupError,
            RelayError
        """
        connection = self._connection or self.connect()
        try:
            return self.run_session(connection)
        finally:
            self.close()

    def run_session(self, connection: Connection) -> RelayResult:
        """
        Open one session on an existing connection and relay it.

        The connection stays open; callers may open further sessions.
        """
        request = self.config.terminal_request()
        session = connection.open_session()
        release = _ReleaseOnce(session)
        try:
            negotiate(session, request)

            term = self.terminal
            self._relay = IORelay(
                session,
                term.stdin,
                term.stdout,
                term.stderr,
                cancel_event=self.cancel_event,
                release=release,
            )
            stop_watching = term.watch_resize(session.resize)
            try:
                with term.raw_mode():
                    return self._relay.run()
            finally:
                stop_watching()
        finally:
            release()
            self._relay = None

    def cancel(self) -> None:
        """Cancel a running relay from another thread."""
        self.cancel_event.set()
        if self._relay is not None:
            self._relay.cancel()

    def close(self) -> None:
        """Close the connection, if open."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None


class _ReleaseOnce:
    """Close a session on the first call only."""

    def __init__(self, session: RemoteSession):
        self._session = session
        self._lock = threading.Lock()
        self._done = False

    def __call__(self) -> None:
        with self._lock:
            if self._done:
                return
            self._done = True
        logger.debug("Releasing session")
        try:
            self._session.close()
        except Exception as e:
            logger.warning(f"Session close error: {e}")


def run_shell(
    config: ClientConfig,
    dialer: Optional[Dialer] = None,
    terminal: Optional[LocalTerminal] = None,
    cancel_event: Optional[threading.Event] = None,
) -> RelayResult:
    """
    Convenience entry point: validate, connect, and run one shell.

    Raises:
        ConfigurationError: missing username (before any dial)
    """
    client = ShellClient(config, dialer=dialer, terminal=terminal, cancel_event=cancel_event)
    return client.run()
