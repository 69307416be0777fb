"""
Connection targets, credentials, and terminal requests.

Plain dataclasses: nothing here touches the network.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional, Mapping, TYPE_CHECKING

from paramiko import Message

from ..exceptions import ConfigurationError

if TYPE_CHECKING:
    from .auth import ChallengeHandler


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 22


# =============================================================================
# Address resolution
# =============================================================================

@dataclass(frozen=True)
class ConnectionTarget:
    """Host and port to dial."""
    host: str
    port: int = DEFAULT_PORT

    @property
    def address(self) -> tuple[str, int]:
        """Socket address tuple."""
        return (self.host, self.port)

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def resolve_target(host: str, port: Optional[int] = None) -> ConnectionTarget:
    """
    Turn a host (and optional port) into a ConnectionTarget.

    Accepts ``host``, ``host:port`` and ``[v6addr]:port``. An explicit
    ``port`` argument wins over a port embedded in ``host``.

    Raises:
        ConfigurationError: empty host or port out of range
    """
    host = (host or "").strip()
    embedded_port = None

    if host.startswith("["):
        end = host.find("]")
        if end < 0:
            raise ConfigurationError(f"Malformed host: {host!r}")
        rest = host[end + 1:]
        host = host[1:end]
        if rest.startswith(":"):
            embedded_port = rest[1:]
        elif rest:
            raise ConfigurationError(f"Malformed host: {rest!r}")
    elif host.count(":") == 1:
        host, embedded_port = host.split(":")

    if not host:
        raise ConfigurationError("Hostname required")

    if port is None:
        if embedded_port:
            try:
                port = int(embedded_port)
            except ValueError:
                raise ConfigurationError(f"Invalid port: {embedded_port!r}")
        else:
            port = DEFAULT_PORT

    if not 0 < port < 65536:
        raise ConfigurationError(f"Port out of range: {port}")

    return ConnectionTarget(host=host, port=port)


# =============================================================================
# Credentials
# =============================================================================

class AuthMethod(Enum):
    """Supported authentication methods."""
    PASSWORD = "password"
    KEYBOARD_INTERACTIVE = "keyboard-interactive"


@dataclass
class AuthConfig:
    """
    One authentication method and its secret material.

    Use the constructors rather than building this directly:

        AuthConfig.password_auth("admin", "secret")
        AuthConfig.keyboard_interactive("admin", TerminalChallengeHandler())
    """
    method: AuthMethod
    username: str
    password: str = ""
    challenge_handler: Optional[ChallengeHandler] = None

    @classmethod
    def password_auth(cls, username: str, password: str = "") -> AuthConfig:
        return cls(method=AuthMethod.PASSWORD, username=username, password=password or "")

    @classmethod
    def keyboard_interactive(cls, username: str, handler: ChallengeHandler) -> AuthConfig:
        return cls(
            method=AuthMethod.KEYBOARD_INTERACTIVE,
            username=username,
            challenge_handler=handler,
        )

    def __repr__(self) -> str:
        # Never leak the secret into logs
        return f"AuthConfig(method={self.method.value}, username={self.username!r})"


# =============================================================================
# Terminal request
# =============================================================================

class TerminalMode(IntEnum):
    """Encoded terminal mode opcodes (RFC 4254 section 8)."""
    TTY_OP_END = 0
    VINTR = 1
    VQUIT = 2
    VERASE = 3
    VKILL = 4
    VEOF = 5
    VEOL = 6
    VEOL2 = 7
    VSTART = 8
    VSTOP = 9
    VSUSP = 10
    VDSUSP = 11
    VREPRINT = 12
    VWERASE = 13
    VLNEXT = 14
    VFLUSH = 15
    VSWTCH = 16
    VSTATUS = 17
    VDISCARD = 18
    IGNPAR = 30
    PARMRK = 31
    INPCK = 32
    ISTRIP = 33
    INLCR = 34
    IGNCR = 35
    ICRNL = 36
    IUCLC = 37
    IXON = 38
    IXANY = 39
    IXOFF = 40
    IMAXBEL = 41
    ISIG = 50
    ICANON = 51
    XCASE = 52
    ECHO = 53
    ECHOE = 54
    ECHOK = 55
    ECHONL = 56
    NOFLSH = 57
    TOSTOP = 58
    IEXTEN = 59
    ECHOCTL = 60
    ECHOKE = 61
    PENDIN = 62
    OPOST = 70
    OLCUC = 71
    ONLCR = 72
    OCRNL = 73
    ONOCR = 74
    ONLRET = 75
    CS7 = 90
    CS8 = 91
    PARENB = 92
    PARODD = 93
    TTY_OP_ISPEED = 128
    TTY_OP_OSPEED = 129


DEFAULT_TERM_TYPE = "xterm"
DEFAULT_ROWS = 40
DEFAULT_COLS = 80


def default_modes() -> dict[int, int]:
    """Echo off, 14.4kbaud."""
    return {
        TerminalMode.ECHO: 0,
        TerminalMode.TTY_OP_ISPEED: 14400,
        TerminalMode.TTY_OP_OSPEED: 14400,
    }


@dataclass(frozen=True)
class TerminalRequest:
    """Parameters of the pty-req sent once per session."""
    term_type: str = DEFAULT_TERM_TYPE
    rows: int = DEFAULT_ROWS
    cols: int = DEFAULT_COLS
    modes: Mapping[int, int] = field(default_factory=default_modes)

    def __post_init__(self):
        if self.rows <= 0 or self.cols <= 0:
            raise ConfigurationError(
                f"Terminal size must be positive, got {self.cols}x{self.rows}"
            )
        for opcode, value in self.modes.items():
            if not 0 < int(opcode) < 160:
                raise ConfigurationError(f"Invalid terminal mode opcode: {opcode}")
            if not 0 <= value <= 0xFFFFFFFF:
                raise ConfigurationError(
                    f"Terminal mode {opcode} value out of range: {value}"
                )

    def encode_modes(self) -> bytes:
        """
        Serialize the mode table for the pty-req message.

        Each entry is an opcode byte followed by a uint32 value; the
        list is terminated by TTY_OP_END.
        """
        m = Message()
        for opcode, value in self.modes.items():
            m.add_byte(bytes([int(opcode)]))
            m.add_int(value)
        m.add_byte(bytes([TerminalMode.TTY_OP_END]))
        return m.asbytes()
