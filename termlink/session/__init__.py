"""
Session setup and byte relay.
"""

from .negotiator import negotiate
from .relay import IORelay, RelayResult, DirectionResult

__all__ = [
    "negotiate",
    "IORelay",
    "RelayResult",
    "DirectionResult",
]
