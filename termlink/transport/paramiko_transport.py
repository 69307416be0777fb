"""
Transport implementation using Paramiko.

Dial sequence: TCP connect, key exchange (paramiko.Transport.start_client),
host key verification, authentication. Sessions are paramiko channels.
"""

from __future__ import annotations
import logging
import socket
import threading
import warnings
from typing import Optional

import paramiko
from paramiko.common import cMSG_CHANNEL_REQUEST

from .base import Connection, Dialer, RemoteSession
from ..connection.auth import Authenticator
from ..connection.hostkeys import HostKeyRecord, HostKeyVerifier
from ..connection.profile import ConnectionTarget, TerminalRequest
from ..exceptions import (
    ConnectionFailedError,
    HostKeyError,
    HostKeyVerificationError,
    SessionSetupError,
    TermlinkError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Legacy Device Support - Algorithm Configuration
# =============================================================================
# Broad compatibility with older servers while still preferring modern
# algorithms. Only applied when legacy_algorithms is enabled.

PREFERRED_CIPHERS = (
    "aes128-ctr",
    "aes192-ctr",
    "aes256-ctr",
    "aes128-gcm@openssh.com",
    "aes256-gcm@openssh.com",
    "chacha20-poly1305@openssh.com",
    "aes128-cbc",
    "aes192-cbc",
    "aes256-cbc",
    "3des-cbc",
)

PREFERRED_KEX = (
    "curve25519-sha256",
    "curve25519-sha256@libssh.org",
    "ecdh-sha2-nistp256",
    "ecdh-sha2-nistp384",
    "ecdh-sha2-nistp521",
    "diffie-hellman-group14-sha256",
    "diffie-hellman-group16-sha512",
    "diffie-hellman-group-exchange-sha256",
    "diffie-hellman-group14-sha1",
    "diffie-hellman-group-exchange-sha1",
    "diffie-hellman-group1-sha1",
)

PREFERRED_KEYS = (
    "ssh-ed25519",
    "ecdsa-sha2-nistp256",
    "ecdsa-sha2-nistp384",
    "ecdsa-sha2-nistp521",
    "rsa-sha2-512",
    "rsa-sha2-256",
    "ssh-rsa",
)


def apply_legacy_algorithms(transport: paramiko.Transport) -> None:
    """
    Widen the algorithm lists of one transport for older servers.

    Only algorithms this paramiko build supports are kept.
    """
    warnings.filterwarnings('ignore', category=DeprecationWarning, module='paramiko')

    options = transport.get_security_options()
    available_ciphers = set(paramiko.Transport._cipher_info.keys())
    available_kex = set(paramiko.Transport._kex_info.keys())
    available_keys = set(paramiko.Transport._key_info.keys())

    options.ciphers = tuple(c for c in PREFERRED_CIPHERS if c in available_ciphers)
    options.kex = tuple(k for k in PREFERRED_KEX if k in available_kex)
    options.key_types = tuple(k for k in PREFERRED_KEYS if k in available_keys)

    logger.debug(
        f"Applied legacy transport settings: "
        f"{len(options.ciphers)} ciphers, {len(options.kex)} kex, "
        f"{len(options.key_types)} keys"
    )


class ParamikoSession(RemoteSession):
    """A paramiko Channel driven as an interactive shell."""

    def __init__(self, channel: paramiko.Channel):
        self._channel = channel
        self._close_lock = threading.Lock()
        self._closed = False

    @property
    def channel(self) -> paramiko.Channel:
        return self._channel

    def request_pty(self, request: TerminalRequest) -> None:
        """
        Send pty-req with the encoded mode table.

        Channel.get_pty() always sends an empty mode list, so the request
        is built here the same way paramiko builds it.
        """
        m = paramiko.Message()
        m.add_byte(cMSG_CHANNEL_REQUEST)
        m.add_int(self._channel.remote_chanid)
        m.add_string("pty-req")
        m.add_boolean(True)
        m.add_string(request.term_type)
        m.add_int(request.cols)
        m.add_int(request.rows)
        m.add_int(0)
        m.add_int(0)
        m.add_string(request.encode_modes())
        self._send_request(m)

    def _send_request(self, m: paramiko.Message) -> None:
        chan = self._channel
        if chan.closed or chan.eof_received or chan.eof_sent or not chan.active:
            raise paramiko.SSHException("Channel is not open")
        chan._event_pending()
        chan.transport._send_user_message(m)
        chan._wait_for_event()

    def invoke_shell(self) -> None:
        self._channel.invoke_shell()

    def send(self, data: bytes) -> None:
        self._channel.sendall(data)

    def recv(self, size: int) -> bytes:
        return self._channel.recv(size)

    def recv_stderr(self, size: int) -> bytes:
        return self._channel.recv_stderr(size)

    def shutdown_write(self) -> None:
        self._channel.shutdown_write()

    def resize(self, cols: int, rows: int) -> None:
        if not self._channel.closed:
            self._channel.resize_pty(width=cols, height=rows)

    @property
    def exit_status(self) -> Optional[int]:
        if self._channel.exit_status_ready():
            return self._channel.recv_exit_status()
        return None

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._channel.close()
        except Exception as e:
            logger.debug(f"Channel close error: {e}")


class ParamikoConnection(Connection):
    """Authenticated paramiko Transport; hosts any number of sessions."""

    def __init__(
        self,
        transport: paramiko.Transport,
        target: ConnectionTarget,
        open_timeout: Optional[float] = None,
    ):
        self._transport = transport
        self.target = target
        self.open_timeout = open_timeout
        self._close_lock = threading.Lock()
        self._closed = False

    @property
    def transport(self) -> paramiko.Transport:
        return self._transport

    @property
    def is_active(self) -> bool:
        return not self._closed and self._transport.is_active()

    def open_session(self) -> RemoteSession:
        try:
            channel = self._transport.open_session(timeout=self.open_timeout)
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise SessionSetupError(
                f"Could not open session on {self.target}: {e}", stage="open"
            ) from e
        logger.debug(f"Opened channel {channel.get_id()} on {self.target}")
        return ParamikoSession(channel)

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        logger.info(f"Closing connection to {self.target}")
        try:
            self._transport.close()
        except Exception as e:
            logger.debug(f"Transport close error: {e}")


class ParamikoDialer(Dialer):
    """
    Dial with paramiko.

    Args:
        connect_timeout: TCP connect and key exchange timeout (seconds)
        banner_timeout: Time to wait for the server's SSH banner
        keepalive_interval: Seconds between keepalives, 0 disables
        legacy_algorithms: Prefer a wider algorithm set for old servers
    """

    def __init__(
        self,
        connect_timeout: float = 10.0,
        banner_timeout: float = 15.0,
        keepalive_interval: int = 30,
        legacy_algorithms: bool = False,
    ):
        self.connect_timeout = connect_timeout
        self.banner_timeout = banner_timeout
        self.keepalive_interval = keepalive_interval
        self.legacy_algorithms = legacy_algorithms

    def _open_socket(self, target: ConnectionTarget) -> socket.socket:
        return socket.create_connection(target.address, timeout=self.connect_timeout)

    def dial(
        self,
        target: ConnectionTarget,
        authenticator: Authenticator,
        verifier: HostKeyVerifier,
    ) -> Connection:
        logger.info(f"Connecting to {target}")
        try:
            sock = self._open_socket(target)
        except OSError as e:
            raise ConnectionFailedError(f"Cannot connect to {target}: {e}", target) from e

        transport = None
        try:
            transport = paramiko.Transport(sock)
            transport.banner_timeout = self.banner_timeout
            if self.legacy_algorithms:
                apply_legacy_algorithms(transport)

            transport.start_client(timeout=self.connect_timeout)

            record = HostKeyRecord.from_pkey(
                hostname=target.host,
                remote_address=self._peer_address(sock, target),
                pkey=transport.get_remote_server_key(),
                port=target.port,
            )
            logger.debug(f"Server host key: {record.key_type} {record.fingerprint}")
            try:
                verifier.verify(record)
            except HostKeyError as e:
                raise HostKeyVerificationError(
                    f"Host key verification failed for {target}: {e}", target
                ) from e

            authenticator.authenticate(transport)

            if self.keepalive_interval:
                transport.set_keepalive(self.keepalive_interval)
            logger.debug(
                f"Negotiated: cipher={transport.remote_cipher}, "
                f"mac={transport.remote_mac}"
            )
            return ParamikoConnection(transport, target, open_timeout=self.connect_timeout)

        except ConnectionFailedError as e:
            if e.target is None:
                e.target = target
            self._abort(transport, sock)
            raise
        except TermlinkError:
            self._abort(transport, sock)
            raise
        except Exception as e:
            self._abort(transport, sock)
            raise ConnectionFailedError(
                f"SSH handshake with {target} failed: {e}", target
            ) from e

    @staticmethod
    def _peer_address(sock: socket.socket, target: ConnectionTarget) -> str:
        try:
            peer = sock.getpeername()
            return f"{peer[0]}:{peer[1]}"
        except OSError:
            return str(target)

    @staticmethod
    def _abort(transport: Optional[paramiko.Transport], sock: socket.socket) -> None:
        """Tear down a half-open connection."""
        if transport is not None:
            try:
                transport.close()
            except Exception as e:
                logger.debug(f"Transport close error: {e}")
        try:
            sock.close()
        except OSError as e:
            logger.debug(f"Socket close error: {e}")
