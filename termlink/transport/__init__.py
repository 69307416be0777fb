"""
Transport layer - dialing, connections and session channels.

The core only depends on the abstract Dialer / Connection / RemoteSession
interfaces; ParamikoDialer is the production implementation.
"""

from .base import Dialer, Connection, RemoteSession
from .paramiko_transport import ParamikoDialer, ParamikoConnection, ParamikoSession

__all__ = [
    "Dialer",
    "Connection",
    "RemoteSession",
    "ParamikoDialer",
    "ParamikoConnection",
    "ParamikoSession",
]
