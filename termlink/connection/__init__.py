"""
Connection building blocks: targets, credentials, host key policies and
authentication.
"""

from .profile import (
    ConnectionTarget,
    AuthMethod,
    AuthConfig,
    TerminalMode,
    TerminalRequest,
    resolve_target,
)
from .hostkeys import (
    HostKeyRecord,
    HostKeyVerifier,
    HostKeyPolicy,
    AcceptAnyVerifier,
    FixedKeyVerifier,
    CustomVerifier,
    KnownHostsVerifier,
    PromptVerifier,
    build_verifier,
)
from .auth import (
    Authenticator,
    ChallengeHandler,
    CallbackChallengeHandler,
    StaticChallengeHandler,
    TerminalChallengeHandler,
)

__all__ = [
    # Targets and credentials
    "ConnectionTarget",
    "AuthMethod",
    "AuthConfig",
    "TerminalMode",
    "TerminalRequest",
    "resolve_target",
    # Host verification
    "HostKeyRecord",
    "HostKeyVerifier",
    "HostKeyPolicy",
    "AcceptAnyVerifier",
    "FixedKeyVerifier",
    "CustomVerifier",
    "KnownHostsVerifier",
    "PromptVerifier",
    "build_verifier",
    # Authentication
    "Authenticator",
    "ChallengeHandler",
    "CallbackChallengeHandler",
    "StaticChallengeHandler",
    "TerminalChallengeHandler",
]
