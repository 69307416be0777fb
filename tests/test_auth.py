"""Tests for the authenticator and keyboard-interactive handlers."""

from unittest.mock import Mock

import paramiko
import pytest

from termlink.connection.auth import (
    Authenticator,
    CallbackChallengeHandler,
    StaticChallengeHandler,
    TerminalChallengeHandler,
)
from termlink.connection.profile import AuthConfig
from termlink.exceptions import (
    AuthenticationFailedError,
    ChallengeResponseError,
    ChallengeUnavailableError,
    ConfigurationError,
)


def interactive_server(rounds, accept=lambda answers: True):
    """
    Fake ``Transport.auth_interactive`` that runs the given challenge rounds.

    Each round is a list of (prompt, echo) pairs. Answers are collected in
    ``server.answers``.
    """
    state = {"authenticated": False}

    def auth_interactive(username, handler, submethods=""):
        for prompts in rounds:
            server.answers.append(handler("", "Verification required", prompts))
        if not accept(server.answers):
            raise paramiko.AuthenticationException("Authentication failed.")
        state["authenticated"] = True
        return []

    server = Mock()
    server.answers = []
    server.auth_interactive.side_effect = auth_interactive
    server.auth_password.side_effect = paramiko.BadAuthenticationType(
        "Bad authentication type", ["keyboard-interactive"]
    )
    server.is_authenticated.side_effect = lambda: state["authenticated"]
    return server


class TestAuthenticator:

    def test_requires_username(self):
        with pytest.raises(ConfigurationError):
            Authenticator("", [AuthConfig.password_auth("", "pw")])

    def test_requires_a_method(self):
        with pytest.raises(ConfigurationError):
            Authenticator("admin", [])

    def test_password_success(self):
        transport = Mock()
        transport.auth_password.return_value = []
        transport.is_authenticated.return_value = True

        auth = Authenticator("admin", [AuthConfig.password_auth("admin", "secret")])
        assert auth.authenticate(transport) == "password"
        transport.auth_password.assert_called_once_with("admin", "secret")

    def test_falls_back_to_keyboard_interactive(self):
        transport = interactive_server([[("Password: ", False)]])
        auth = Authenticator("admin", [
            AuthConfig.password_auth("admin", "secret"),
            AuthConfig.keyboard_interactive("admin", StaticChallengeHandler("secret")),
        ])

        assert auth.authenticate(transport) == "keyboard-interactive"
        assert transport.answers == [["secret"]]

    def test_all_methods_fail(self):
        transport = Mock()
        transport.auth_password.side_effect = paramiko.AuthenticationException("Authentication failed.")
        transport.auth_interactive.side_effect = paramiko.AuthenticationException("Authentication failed.")
        transport.is_authenticated.return_value = False

        auth = Authenticator("admin", [
            AuthConfig.password_auth("admin", "wrong"),
            AuthConfig.keyboard_interactive("admin", StaticChallengeHandler("wrong")),
        ])
        with pytest.raises(AuthenticationFailedError, match="All auth methods failed for admin"):
            auth.authenticate(transport)
        assert transport.auth_password.call_count == 1
        assert transport.auth_interactive.call_count == 1

    def test_method_not_offered(self):
        transport = Mock()
        transport.auth_password.side_effect = paramiko.BadAuthenticationType(
            "Bad authentication type", ["publickey"]
        )
        auth = Authenticator("admin", [AuthConfig.password_auth("admin", "pw")])
        with pytest.raises(AuthenticationFailedError):
            auth.authenticate(transport)

    def test_partial_success_moves_to_next_method(self):
        transport = interactive_server([[("Verification code: ", True)]])
        transport.auth_password.side_effect = None
        transport.auth_password.return_value = ["keyboard-interactive"]

        auth = Authenticator("admin", [
            AuthConfig.password_auth("admin", "secret"),
            AuthConfig.keyboard_interactive("admin", StaticChallengeHandler("123456")),
        ])
        assert auth.authenticate(transport) == "keyboard-interactive"
        assert transport.answers == [["123456"]]

    def test_multiple_rounds(self):
        seen = []

        def callback(username, instruction, questions, echoes):
            seen.append((username, instruction, list(questions), list(echoes)))
            return ["pw"] if len(seen) == 1 else ["424242"]

        transport = interactive_server(
            [[("Password: ", False)], [("Code: ", True)]],
            accept=lambda answers: answers == [["pw"], ["424242"]],
        )
        auth = Authenticator("admin", [
            AuthConfig.keyboard_interactive("admin", CallbackChallengeHandler(callback)),
        ])

        assert auth.authenticate(transport) == "keyboard-interactive"
        assert seen == [
            ("admin", "Verification required", ["Password: "], [False]),
            ("admin", "Verification required", ["Code: "], [True]),
        ]

    def test_zero_question_round(self):
        transport = interactive_server([[], [("Password: ", False)]])
        auth = Authenticator("admin", [
            AuthConfig.keyboard_interactive("admin", StaticChallengeHandler("pw")),
        ])
        auth.authenticate(transport)
        assert transport.answers == [[], ["pw"]]

    def test_wrong_answer_count_fails_authentication(self):
        transport = interactive_server([[("Password: ", False), ("Code: ", True)]])
        handler = CallbackChallengeHandler(lambda *args: ["only-one"])
        auth = Authenticator("admin", [AuthConfig.keyboard_interactive("admin", handler)])

        with pytest.raises(AuthenticationFailedError) as exc_info:
            auth.authenticate(transport)
        cause = exc_info.value.__cause__
        assert isinstance(cause, ChallengeResponseError)
        assert (cause.expected, cause.received) == (2, 1)

    def test_handler_error_surfaces_through_transport_failure(self):
        # paramiko runs the handler on its own thread and reports a generic failure
        def auth_interactive(username, handler, submethods=""):
            try:
                handler("", "", [("Password: ", False)])
            except Exception:
                raise paramiko.SSHException("Authentication failed.")
            return []

        transport = Mock()
        transport.auth_interactive.side_effect = auth_interactive
        handler = CallbackChallengeHandler(lambda *args: [])
        auth = Authenticator("admin", [AuthConfig.keyboard_interactive("admin", handler)])

        with pytest.raises(AuthenticationFailedError) as exc_info:
            auth.authenticate(transport)
        assert isinstance(exc_info.value.__cause__, ChallengeResponseError)


class TestChallengeHandlers:

    def test_static_answers_every_question(self):
        handler = StaticChallengeHandler("pw")
        assert handler.respond("admin", "", ["a", "b"], [False, True]) == ["pw", "pw"]
        assert handler.respond("admin", "", [], []) == []

    def test_terminal_without_tty(self):
        handler = TerminalChallengeHandler(isatty=lambda: False)
        with pytest.raises(ChallengeUnavailableError):
            handler.respond("admin", "", ["Password: "], [False])

    def test_terminal_prompts(self, monkeypatch):
        calls = []

        def fake_prompt(text, **kwargs):
            calls.append((text, kwargs["hide_input"]))
            return "answer"

        monkeypatch.setattr("termlink.connection.auth.click.prompt", fake_prompt)
        handler = TerminalChallengeHandler(isatty=lambda: True)

        answers = handler.respond("admin", "", ["Password: ", "Username: "], [False, True])
        assert answers == ["answer", "answer"]
        assert calls == [("Password:", True), ("Username:", False)]
