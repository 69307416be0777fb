"""
Shared fixtures: in-memory transport, connection and session fakes.
"""

import io
import threading

import paramiko
import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from termlink.connection.hostkeys import HostKeyRecord
from termlink.exceptions import ConnectionFailedError
from termlink.terminal import LocalTerminal
from termlink.transport.base import Connection, Dialer, RemoteSession


def make_ed25519_blob() -> bytes:
    """Wire-format public key blob for a fresh ed25519 key."""
    raw = Ed25519PrivateKey.generate().public_key().public_bytes(
        Encoding.Raw, PublicFormat.Raw
    )
    m = paramiko.Message()
    m.add_string("ssh-ed25519")
    m.add_string(raw)
    return m.asbytes()


def make_record(blob: bytes, hostname: str = "server01", port: int = 22) -> HostKeyRecord:
    return HostKeyRecord(
        hostname=hostname,
        remote_address=f"10.0.0.1:{port}",
        public_key=blob,
        key_type="ssh-ed25519",
        port=port,
    )


class FakeSession(RemoteSession):
    """
    In-memory session.

    Remote output is served from the given buffers; once drained, reads
    block until the local side sends EOF (when ``exit_on_eof``) or the
    session is closed.
    """

    def __init__(
        self,
        stdout_data: bytes = b"",
        stderr_data: bytes = b"",
        exit_on_eof: bool = True,
        exit_status: int = 0,
        fail_pty: Exception = None,
        fail_shell: Exception = None,
        fail_send: Exception = None,
    ):
        self._cond = threading.Condition()
        self._buffers = {"stdout": bytearray(stdout_data), "stderr": bytearray(stderr_data)}
        self._eof = False
        self._closed = False
        self._exit_status = exit_status
        self.exit_on_eof = exit_on_eof
        self.fail_pty = fail_pty
        self.fail_shell = fail_shell
        self.fail_send = fail_send

        self.calls = []
        self.pty_requests = []
        self.shell_calls = 0
        self.sent = bytearray()
        self.shutdown_calls = 0
        self.close_calls = 0
        self.resizes = []

    def request_pty(self, request):
        self.calls.append("pty")
        self.pty_requests.append(request)
        if self.fail_pty:
            raise self.fail_pty

    def invoke_shell(self):
        self.calls.append("shell")
        self.shell_calls += 1
        if self.fail_shell:
            raise self.fail_shell

    def send(self, data):
        if self.fail_send:
            raise self.fail_send
        self.sent.extend(data)

    def _read(self, name, size):
        with self._cond:
            while True:
                buf = self._buffers[name]
                if buf:
                    chunk = bytes(buf[:size])
                    del buf[:size]
                    return chunk
                if self._closed or (self._eof and self.exit_on_eof):
                    return b""
                self._cond.wait()

    def recv(self, size):
        return self._read("stdout", size)

    def recv_stderr(self, size):
        return self._read("stderr", size)

    def shutdown_write(self):
        with self._cond:
            self.shutdown_calls += 1
            self._eof = True
            self._cond.notify_all()

    def resize(self, cols, rows):
        self.resizes.append((cols, rows))

    @property
    def exit_status(self):
        if self._eof and self.exit_on_eof:
            return self._exit_status
        return None

    @property
    def closed(self):
        return self._closed

    def close(self):
        with self._cond:
            self.close_calls += 1
            self._closed = True
            self._cond.notify_all()


class FakeConnection(Connection):
    def __init__(self, sessions=None, open_error: Exception = None):
        self._pending = list(sessions or [])
        self.open_error = open_error
        self.opened = []
        self.close_calls = 0

    def open_session(self):
        if self.open_error:
            raise self.open_error
        session = self._pending.pop(0) if self._pending else FakeSession()
        self.opened.append(session)
        return session

    @property
    def is_active(self):
        return self.close_calls == 0

    def close(self):
        self.close_calls += 1


class FakeDialer(Dialer):
    def __init__(self, connection: Connection = None, error: Exception = None):
        self.connection = connection or FakeConnection()
        self.error = error
        self.dial_calls = []

    def dial(self, target, authenticator, verifier):
        self.dial_calls.append((target, authenticator, verifier))
        if self.error:
            raise self.error
        return self.connection


@pytest.fixture
def ed25519_blob():
    return make_ed25519_blob()


@pytest.fixture
def terminal():
    return LocalTerminal(stdin=io.BytesIO(b""), stdout=io.BytesIO(), stderr=io.BytesIO())


@pytest.fixture
def refused():
    return ConnectionFailedError("Cannot connect to 127.0.0.1:22: refused")
