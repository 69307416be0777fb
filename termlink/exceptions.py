"""
Error kinds raised by termlink.

Configuration errors are raised before any network activity. Connection
errors wrap the transport's failure (refused socket, handshake failure,
host key rejection, authentication failure). Setup errors mean the
connection is fine but the pty or shell request was refused.
"""

from __future__ import annotations
from typing import Optional


class TermlinkError(Exception):
    """Base class for all termlink errors."""
    pass


class ConfigurationError(TermlinkError):
    """Caller supplied an unusable configuration (e.g. no username)."""
    pass


class ConnectionFailedError(TermlinkError):
    """
    Dial or handshake failure.

    The underlying cause is chained via ``raise ... from``.
    """

    def __init__(self, message: str, target=None):
        super().__init__(message)
        self.target = target


class AuthenticationFailedError(ConnectionFailedError):
    """Every configured auth method was refused."""
    pass


class HostKeyVerificationError(ConnectionFailedError):
    """The host verifier rejected the server's key."""
    pass


# =============================================================================
# Host key errors (raised by verifiers)
# =============================================================================

class HostKeyError(TermlinkError):
    """Raised by a HostKeyVerifier to reject a presented key."""

    def __init__(self, message: str, record=None):
        super().__init__(message)
        self.record = record


class HostKeyMismatchError(HostKeyError):
    """Presented key differs from the expected one."""
    pass


class HostKeyNotConfiguredError(HostKeyError):
    """Fixed-key verifier has no expected key."""
    pass


class UnknownHostKeyError(HostKeyError):
    """Host is not present in the known_hosts store."""
    pass


class HostKeyRejectedError(HostKeyError):
    """A custom inspector declined the key."""
    pass


# =============================================================================
# Keyboard-interactive errors
# =============================================================================

class ChallengeError(TermlinkError):
    """Keyboard-interactive challenge could not be answered."""
    pass


class ChallengeResponseError(ChallengeError):
    """Handler returned a different number of answers than questions."""

    def __init__(self, expected: int, received: int):
        super().__init__(
            f"Challenge handler returned {received} answer(s) "
            f"for {expected} question(s)"
        )
        self.expected = expected
        self.received = received


class ChallengeUnavailableError(ChallengeError):
    """No interactive terminal is available to answer the challenge."""
    pass


# =============================================================================
# Session errors
# =============================================================================

class SessionSetupError(TermlinkError):
    """Session open, pty request, or shell request failed."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


class RelayError(TermlinkError):
    """Every relay direction ended with a stream error."""

    def __init__(self, message: str, results=None):
        super().__init__(message)
        self.results = results or []
