"""
Authentication against an SSH transport.

Methods from the configured list are tried in order until the transport
reports full authentication. Keyboard-interactive challenges are answered
through a ChallengeHandler, which may be called for several rounds (e.g.
password then one-time code).
"""

from __future__ import annotations
import logging
import sys
from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence

import click
import paramiko

from .profile import AuthConfig, AuthMethod
from ..exceptions import (
    AuthenticationFailedError,
    ChallengeError,
    ChallengeResponseError,
    ChallengeUnavailableError,
    ConfigurationError,
)

logger = logging.getLogger(__name__)


class ChallengeHandler(ABC):
    """Answers keyboard-interactive questions."""

    @abstractmethod
    def respond(
        self,
        username: str,
        instruction: str,
        questions: Sequence[str],
        echoes: Sequence[bool],
    ) -> list[str]:
        """
        Answer one challenge round.

        Args:
            username: User being authenticated
            instruction: Free-form text from the server (may be empty)
            questions: Prompts, in order
            echoes: Whether each answer may be echoed while typed

        Returns:
            One answer per question, in the same order
        """
        pass


class CallbackChallengeHandler(ChallengeHandler):
    """Wrap a plain callable with the ``respond`` signature."""

    def __init__(self, callback: Callable[[str, str, Sequence[str], Sequence[bool]], list]):
        self.callback = callback

    def respond(self, username, instruction, questions, echoes) -> list[str]:
        return self.callback(username, instruction, questions, echoes)


class StaticChallengeHandler(ChallengeHandler):
    """Answer every question with the same secret."""

    def __init__(self, secret: str):
        self.secret = secret

    def respond(self, username, instruction, questions, echoes) -> list[str]:
        return [self.secret for _ in questions]


class TerminalChallengeHandler(ChallengeHandler):
    """
    Ask the human at the local terminal.

    Prompts go to stderr so stdout stays clean. Answers to non-echoing
    questions are read with hidden input.
    """

    def __init__(self, isatty: Callable[[], bool] = None):
        self._isatty = isatty or (lambda: sys.stdin is not None and sys.stdin.isatty())

    def respond(self, username, instruction, questions, echoes) -> list[str]:
        if not self._isatty():
            raise ChallengeUnavailableError(
                "Server requested keyboard-interactive input but no terminal is attached"
            )

        if instruction:
            click.echo(instruction, err=True)

        answers = []
        for question, echo in zip(questions, echoes):
            answers.append(click.prompt(
                question.rstrip(),
                default="",
                show_default=False,
                hide_input=not echo,
                err=True,
            ))
        return answers


class _InteractiveAdapter:
    """
    Adapt a ChallengeHandler to paramiko's interactive callback.

    paramiko calls ``handler(title, instructions, prompt_list)`` where
    prompt_list holds ``(prompt, echo)`` pairs. The answer count is checked
    here so a faulty handler never sends a short reply to the server.
    """

    def __init__(self, username: str, handler: ChallengeHandler):
        self.username = username
        self.handler = handler
        self.rounds = 0
        self.error: Optional[Exception] = None

    def __call__(self, title: str, instructions: str, prompt_list) -> list[str]:
        self.rounds += 1
        questions = [prompt for prompt, _ in prompt_list]
        echoes = [bool(echo) for _, echo in prompt_list]
        instruction = "\n".join(part for part in (title, instructions) if part)

        logger.debug(
            f"Keyboard-interactive round {self.rounds}: {len(questions)} question(s)"
        )

        try:
            answers = self.handler.respond(self.username, instruction, questions, echoes)
            answers = list(answers) if answers is not None else []
            if len(answers) != len(questions):
                raise ChallengeResponseError(len(questions), len(answers))
        except Exception as e:
            self.error = e
            raise

        return [str(answer) for answer in answers]


class Authenticator:
    """
    Run the configured auth methods against a paramiko Transport.

    Usage:
        auth = Authenticator("admin", [AuthConfig.password_auth("admin", "pw")])
        auth.authenticate(transport)
    """

    def __init__(self, username: str, methods: Sequence[AuthConfig]):
        if not username:
            raise ConfigurationError("Username is required")
        if not methods:
            raise ConfigurationError("At least one authentication method is required")
        self.username = username
        self.methods = list(methods)

    def authenticate(self, transport: paramiko.Transport) -> str:
        """
        Authenticate the transport.

        Returns:
            Name of the method that completed authentication

        Raises:
            AuthenticationFailedError: every method failed
        """
        last_error: Optional[Exception] = None

        for auth in self.methods:
            logger.info(f"Trying auth method: {auth.method.value}")
            try:
                remaining = self._attempt(transport, auth)
            except ChallengeError as e:
                raise AuthenticationFailedError(str(e)) from e
            except paramiko.BadAuthenticationType as e:
                last_error = e
                logger.debug(
                    f"Auth method {auth.method.value} not allowed, "
                    f"server offers: {', '.join(e.allowed_types)}"
                )
                continue
            except paramiko.AuthenticationException as e:
                last_error = e
                logger.debug(f"Auth method {auth.method.value} failed: {e}")
                continue

            if transport.is_authenticated():
                logger.info(f"Authenticated as {self.username} via {auth.method.value}")
                return auth.method.value

            # Partial success; the server wants another factor
            logger.info(
                f"Partial authentication via {auth.method.value}, "
                f"server still requires: {', '.join(remaining or [])}"
            )
            last_error = paramiko.AuthenticationException(
                f"Partial authentication; further methods required: "
                f"{', '.join(remaining or [])}"
            )

        raise AuthenticationFailedError(
            f"All auth methods failed for {self.username}. Last error: {last_error}"
        ) from last_error

    def _attempt(self, transport: paramiko.Transport, auth: AuthConfig) -> list[str]:
        username = auth.username or self.username

        if auth.method == AuthMethod.PASSWORD:
            return transport.auth_password(username, auth.password or "")

        if auth.method == AuthMethod.KEYBOARD_INTERACTIVE:
            if auth.challenge_handler is None:
                raise ConfigurationError("Keyboard-interactive auth requires a challenge handler")
            adapter = _InteractiveAdapter(username, auth.challenge_handler)
            try:
                return transport.auth_interactive(username, adapter)
            except paramiko.SSHException:
                # The handler runs on paramiko's transport thread; surface
                # its own error instead of the generic transport failure
                if adapter.error is not None:
                    raise adapter.error
                raise

        raise ConfigurationError(f"Unsupported auth method: {auth.method}")
