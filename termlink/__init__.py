"""
termlink - interactive SSH shell client.

- Pluggable host key verification (accept-any, pinned key, custom,
  known_hosts, prompt)
- Password and keyboard-interactive authentication
- pty request with an explicit terminal mode table
- Cancellable three-way byte relay between the local terminal and the
  remote shell
"""

__version__ = "0.1.0"

from .config import ClientConfig, AppSettings, SettingsManager, HostProfile, load_profiles
from .client import ShellClient, run_shell
from .connection.profile import (
    ConnectionTarget,
    AuthConfig,
    AuthMethod,
    TerminalMode,
    TerminalRequest,
    resolve_target,
)
from .connection.hostkeys import (
    HostKeyRecord,
    HostKeyVerifier,
    AcceptAnyVerifier,
    FixedKeyVerifier,
    CustomVerifier,
    KnownHostsVerifier,
)
from .connection.auth import ChallengeHandler, CallbackChallengeHandler
from .session.relay import IORelay, RelayResult
from .exceptions import (
    TermlinkError,
    ConfigurationError,
    ConnectionFailedError,
    SessionSetupError,
    RelayError,
)

__all__ = [
    # Config
    "ClientConfig",
    "AppSettings",
    "SettingsManager",
    "HostProfile",
    "load_profiles",
    # Core
    "ShellClient",
    "run_shell",
    "IORelay",
    "RelayResult",
    # Connection
    "ConnectionTarget",
    "AuthConfig",
    "AuthMethod",
    "TerminalMode",
    "TerminalRequest",
    "resolve_target",
    # Host keys
    "HostKeyRecord",
    "HostKeyVerifier",
    "AcceptAnyVerifier",
    "FixedKeyVerifier",
    "CustomVerifier",
    "KnownHostsVerifier",
    # Auth
    "ChallengeHandler",
    "CallbackChallengeHandler",
    # Errors
    "TermlinkError",
    "ConfigurationError",
    "ConnectionFailedError",
    "SessionSetupError",
    "RelayError",
]
