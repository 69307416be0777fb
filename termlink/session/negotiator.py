"""
Session setup: pty request, then shell request.
"""

from __future__ import annotations
import logging

from ..connection.profile import TerminalRequest
from ..exceptions import SessionSetupError
from ..transport.base import RemoteSession

logger = logging.getLogger(__name__)


def negotiate(session: RemoteSession, request: TerminalRequest) -> None:
    """
    Request a pseudo-terminal and start the remote shell.

    The shell request is only issued once the pty request has succeeded.
    The session is not closed here on failure; whoever opened it releases it.

    Raises:
        SessionSetupError: pty or shell request refused or failed
    """
    logger.debug(
        f"Requesting pty: term={request.term_type}, "
        f"size={request.cols}x{request.rows}, {len(request.modes)} mode(s)"
    )
    try:
        session.request_pty(request)
    except Exception as e:
        raise SessionSetupError(f"Pseudo-terminal request failed: {e}", stage="pty") from e

    logger.debug("Requesting shell")
    try:
        session.invoke_shell()
    except Exception as e:
        raise SessionSetupError(f"Shell request failed: {e}", stage="shell") from e

    logger.info("Remote shell started")
