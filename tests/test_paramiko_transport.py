"""Tests for the paramiko-backed transport, with paramiko's network side mocked."""

from unittest.mock import Mock

import paramiko
import pytest
from paramiko.common import cMSG_CHANNEL_REQUEST

from termlink.connection.hostkeys import AcceptAnyVerifier, FixedKeyVerifier
from termlink.connection.profile import ConnectionTarget, TerminalMode, TerminalRequest
from termlink.exceptions import (
    AuthenticationFailedError,
    ConnectionFailedError,
    HostKeyVerificationError,
    SessionSetupError,
)
from termlink.transport.paramiko_transport import (
    ParamikoConnection,
    ParamikoDialer,
    ParamikoSession,
)

TARGET = ConnectionTarget("10.0.0.5", 22)


def open_channel():
    channel = Mock()
    channel.remote_chanid = 7
    channel.closed = False
    channel.eof_received = False
    channel.eof_sent = False
    channel.active = True
    return channel


class TestParamikoSession:

    def test_pty_request_carries_modes(self):
        channel = open_channel()
        request = TerminalRequest(
            term_type="vt100", rows=24, cols=132,
            modes={TerminalMode.ECHO: 0, TerminalMode.TTY_OP_ISPEED: 38400},
        )

        ParamikoSession(channel).request_pty(request)

        (sent,), _ = channel.transport._send_user_message.call_args
        m = paramiko.Message(sent.asbytes())
        assert m.get_byte() == cMSG_CHANNEL_REQUEST
        assert m.get_int() == 7
        assert m.get_text() == "pty-req"
        assert m.get_boolean() is True
        assert m.get_text() == "vt100"
        assert (m.get_int(), m.get_int()) == (132, 24)
        assert (m.get_int(), m.get_int()) == (0, 0)
        assert m.get_binary() == request.encode_modes()

        channel._event_pending.assert_called_once()
        channel._wait_for_event.assert_called_once()

    def test_pty_request_on_closed_channel(self):
        channel = open_channel()
        channel.closed = True
        with pytest.raises(paramiko.SSHException):
            ParamikoSession(channel).request_pty(TerminalRequest())
        channel.transport._send_user_message.assert_not_called()

    def test_close_is_idempotent(self):
        channel = open_channel()
        session = ParamikoSession(channel)
        session.close()
        session.close()
        assert session.closed
        channel.close.assert_called_once()

    def test_exit_status(self):
        channel = open_channel()
        channel.exit_status_ready.return_value = False
        assert ParamikoSession(channel).exit_status is None

        channel.exit_status_ready.return_value = True
        channel.recv_exit_status.return_value = 2
        assert ParamikoSession(channel).exit_status == 2

    def test_io_passthrough(self):
        channel = open_channel()
        channel.recv.return_value = b"out"
        session = ParamikoSession(channel)

        session.send(b"ls\n")
        assert session.recv(1024) == b"out"
        session.shutdown_write()
        session.resize(100, 30)

        channel.sendall.assert_called_once_with(b"ls\n")
        channel.shutdown_write.assert_called_once()
        channel.resize_pty.assert_called_once_with(width=100, height=30)


class TestParamikoConnection:

    def test_open_failure(self):
        transport = Mock()
        transport.open_session.side_effect = paramiko.ChannelException(1, "Administratively prohibited")
        with pytest.raises(SessionSetupError) as exc_info:
            ParamikoConnection(transport, TARGET).open_session()
        assert exc_info.value.stage == "open"

    def test_close_is_idempotent(self):
        transport = Mock()
        connection = ParamikoConnection(transport, TARGET)
        connection.close()
        connection.close()
        assert not connection.is_active
        transport.close.assert_called_once()


class TestParamikoDialer:

    @pytest.fixture
    def sock(self, monkeypatch):
        sock = Mock()
        sock.getpeername.return_value = ("10.0.0.5", 22)
        monkeypatch.setattr(ParamikoDialer, "_open_socket", lambda self, target: sock)
        return sock

    @pytest.fixture
    def transport(self, monkeypatch, ed25519_blob):
        transport = Mock()
        transport.get_remote_server_key.return_value = paramiko.Ed25519Key(data=ed25519_blob)
        monkeypatch.setattr(paramiko, "Transport", Mock(return_value=transport))
        return transport

    def test_socket_failure(self, monkeypatch):
        def refuse(self, target):
            raise ConnectionRefusedError("Connection refused")

        monkeypatch.setattr(ParamikoDialer, "_open_socket", refuse)
        with pytest.raises(ConnectionFailedError) as exc_info:
            ParamikoDialer().dial(TARGET, Mock(), AcceptAnyVerifier())
        assert exc_info.value.target == TARGET
        assert isinstance(exc_info.value.__cause__, ConnectionRefusedError)

    def test_success(self, sock, transport):
        authenticator = Mock()
        connection = ParamikoDialer(keepalive_interval=15).dial(TARGET, authenticator, AcceptAnyVerifier())

        assert isinstance(connection, ParamikoConnection)
        assert connection.transport is transport
        transport.start_client.assert_called_once()
        authenticator.authenticate.assert_called_once_with(transport)
        transport.set_keepalive.assert_called_once_with(15)
        transport.close.assert_not_called()

    def test_verifier_sees_presented_key(self, sock, transport, ed25519_blob):
        records = []
        verifier = Mock()
        verifier.verify.side_effect = records.append

        ParamikoDialer().dial(TARGET, Mock(), verifier)

        (record,) = records
        assert record.public_key == ed25519_blob
        assert record.hostname == "10.0.0.5"
        assert record.remote_address == "10.0.0.5:22"

    def test_host_key_rejected_before_auth(self, sock, transport):
        authenticator = Mock()
        verifier = FixedKeyVerifier(b"some other key")

        with pytest.raises(HostKeyVerificationError):
            ParamikoDialer().dial(TARGET, authenticator, verifier)

        authenticator.authenticate.assert_not_called()
        transport.close.assert_called_once()
        sock.close.assert_called_once()

    def test_auth_failure_closes_transport(self, sock, transport):
        authenticator = Mock()
        authenticator.authenticate.side_effect = AuthenticationFailedError("All auth methods failed")

        with pytest.raises(AuthenticationFailedError) as exc_info:
            ParamikoDialer().dial(TARGET, authenticator, AcceptAnyVerifier())

        assert exc_info.value.target == TARGET
        transport.close.assert_called_once()

    def test_handshake_failure(self, sock, transport):
        transport.start_client.side_effect = paramiko.SSHException("Error reading SSH protocol banner")
        with pytest.raises(ConnectionFailedError, match="handshake"):
            ParamikoDialer().dial(TARGET, Mock(), AcceptAnyVerifier())
        sock.close.assert_called_once()
