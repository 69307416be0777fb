"""Tests for the shell client lifecycle."""

import threading

import pytest

from conftest import FakeConnection, FakeDialer, FakeSession
from termlink.client import ShellClient, run_shell
from termlink.config import ClientConfig
from termlink.connection.hostkeys import AcceptAnyVerifier
from termlink.connection.profile import ConnectionTarget
from termlink.exceptions import (
    ConfigurationError,
    ConnectionFailedError,
    SessionSetupError,
)


@pytest.fixture
def config():
    return ClientConfig(
        username="admin",
        password="secret",
        host="10.0.0.5",
        host_key_policy="accept-any",
    )


def test_missing_username_never_dials(terminal):
    dialer = FakeDialer()
    with pytest.raises(ConfigurationError):
        run_shell(ClientConfig(host_key_policy="accept-any"), dialer=dialer, terminal=terminal)
    assert dialer.dial_calls == []


def test_dial_receives_target_and_collaborators(config, terminal):
    dialer = FakeDialer()
    run_shell(config, dialer=dialer, terminal=terminal)

    (target, authenticator, verifier), = dialer.dial_calls
    assert target == ConnectionTarget("10.0.0.5", 22)
    assert authenticator.username == "admin"
    assert isinstance(verifier, AcceptAnyVerifier)


def test_explicit_verifier_wins(config, terminal):
    dialer = FakeDialer()
    verifier = AcceptAnyVerifier()
    ShellClient(config, dialer=dialer, terminal=terminal, verifier=verifier).run()
    assert dialer.dial_calls[0][2] is verifier


def test_successful_run_releases_everything_once(config, terminal):
    session = FakeSession(stdout_data=b"$ ", exit_status=0)
    connection = FakeConnection([session])

    result = run_shell(config, dialer=FakeDialer(connection), terminal=terminal)

    assert result.exit_status == 0
    assert terminal.stdout.getvalue() == b"$ "
    assert session.calls == ["pty", "shell"]
    assert session.pty_requests[0].term_type == "xterm"
    assert session.close_calls == 1
    assert connection.close_calls == 1


def test_connection_failure_propagates(config, terminal, refused):
    with pytest.raises(ConnectionFailedError):
        run_shell(config, dialer=FakeDialer(error=refused), terminal=terminal)


def test_open_failure_closes_connection(config, terminal):
    connection = FakeConnection(open_error=SessionSetupError("channel refused", stage="open"))
    with pytest.raises(SessionSetupError):
        run_shell(config, dialer=FakeDialer(connection), terminal=terminal)
    assert connection.close_calls == 1


@pytest.mark.parametrize("failure", ["fail_pty", "fail_shell"])
def test_setup_failure_closes_session_once(config, terminal, failure):
    session = FakeSession(**{failure: RuntimeError("denied")})
    connection = FakeConnection([session])

    with pytest.raises(SessionSetupError):
        run_shell(config, dialer=FakeDialer(connection), terminal=terminal)

    assert session.close_calls == 1
    assert connection.close_calls == 1


def test_cancel_closes_session_once(config, terminal):
    session = FakeSession(exit_on_eof=False)
    connection = FakeConnection([session])
    event = threading.Event()

    threading.Timer(0.2, event.set).start()
    result = run_shell(config, dialer=FakeDialer(connection), terminal=terminal, cancel_event=event)

    assert result.cancelled
    assert session.close_calls == 1
    assert connection.close_calls == 1


def test_client_cancel_from_another_thread(config, terminal):
    session = FakeSession(exit_on_eof=False)
    client = ShellClient(config, dialer=FakeDialer(FakeConnection([session])), terminal=terminal)

    threading.Timer(0.2, client.cancel).start()
    result = client.run()

    assert result.cancelled
    assert session.close_calls == 1


def test_two_sessions_on_one_connection(config, terminal):
    first, second = FakeSession(stdout_data=b"one"), FakeSession(stdout_data=b"two")
    connection = FakeConnection([first, second])
    client = ShellClient(config, dialer=FakeDialer(connection), terminal=terminal)

    client.connect()
    client.run_session(connection)
    client.run_session(connection)
    client.close()

    assert terminal.stdout.getvalue() == b"onetwo"
    assert first.close_calls == 1 and second.close_calls == 1
    assert connection.close_calls == 1
