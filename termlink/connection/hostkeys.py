"""
Host key verification policies.

A verifier is consulted exactly once per connection attempt, after key
exchange and before authentication. ``verify()`` returns normally to accept
the key and raises a HostKeyError to reject it.

Policies:
- AcceptAnyVerifier: trust everything (diagnostics only)
- FixedKeyVerifier: byte-for-byte match against one expected key
- CustomVerifier: delegate to a caller-supplied inspector
- KnownHostsVerifier: OpenSSH known_hosts store, optionally accept-new
- PromptVerifier: ask the user about unknown keys
"""

from __future__ import annotations
import base64
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

import click
import paramiko
from paramiko.hostkeys import InvalidHostKey
from cryptography.hazmat.primitives import hashes

from ..exceptions import (
    ConfigurationError,
    HostKeyError,
    HostKeyMismatchError,
    HostKeyNotConfiguredError,
    HostKeyRejectedError,
    UnknownHostKeyError,
)

logger = logging.getLogger(__name__)

DEFAULT_KNOWN_HOSTS = Path.home() / ".ssh" / "known_hosts"


@dataclass(frozen=True)
class HostKeyRecord:
    """What the server presented during the handshake."""
    hostname: str
    remote_address: str
    public_key: bytes
    key_type: str = ""
    port: int = 22
    pkey: Optional[paramiko.PKey] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_pkey(
        cls,
        hostname: str,
        remote_address: str,
        pkey: paramiko.PKey,
        port: int = 22,
    ) -> HostKeyRecord:
        return cls(
            hostname=hostname,
            remote_address=remote_address,
            public_key=pkey.asbytes(),
            key_type=pkey.get_name(),
            port=port,
            pkey=pkey,
        )

    @property
    def fingerprint(self) -> str:
        """OpenSSH-style SHA256 fingerprint."""
        digest = hashes.Hash(hashes.SHA256())
        digest.update(self.public_key)
        encoded = base64.b64encode(digest.finalize()).decode("ascii")
        return "SHA256:" + encoded.rstrip("=")

    @property
    def known_hosts_name(self) -> str:
        """Name used for this host in a known_hosts file."""
        if self.port == 22:
            return self.hostname
        return f"[{self.hostname}]:{self.port}"

    def to_pkey(self) -> paramiko.PKey:
        """Rebuild a paramiko key object (needed to store the key)."""
        if self.pkey is not None:
            return self.pkey
        return paramiko.PKey.from_type_string(self.key_type, self.public_key)


class HostKeyVerifier(ABC):
    """Decides whether a server's presented key is acceptable."""

    @abstractmethod
    def verify(self, record: HostKeyRecord) -> None:
        """
        Accept or reject the presented key.

        Raises:
            HostKeyError: key rejected
        """
        pass


class AcceptAnyVerifier(HostKeyVerifier):
    """
    Accept every key.

    INSECURE: anyone able to intercept the connection can impersonate the
    server. Only use this for diagnostics against hosts you control.
    """

    def verify(self, record: HostKeyRecord) -> None:
        logger.warning(
            f"Host key for {record.hostname} accepted without verification "
            f"({record.key_type or 'unknown type'})"
        )


class FixedKeyVerifier(HostKeyVerifier):
    """Accept exactly one key, compared in its wire-serialized form."""

    def __init__(self, expected_key: Union[bytes, paramiko.PKey, None]):
        if isinstance(expected_key, paramiko.PKey):
            expected_key = expected_key.asbytes()
        self.expected_key: Optional[bytes] = expected_key

    @classmethod
    def from_openssh(cls, line: str) -> FixedKeyVerifier:
        """
        Build from an OpenSSH public key line.

        Accepts ``ssh-ed25519 AAAA... comment`` and known_hosts style
        ``host ssh-ed25519 AAAA...`` lines.
        """
        parts = line.strip().split()
        for i in range(min(2, max(len(parts) - 1, 0))):
            key_type, blob = parts[i], parts[i + 1]
            try:
                data = base64.b64decode(blob, validate=True)
                if paramiko.Message(data).get_text() == key_type:
                    return cls(data)
            except (ValueError, paramiko.SSHException):
                continue
        raise ConfigurationError(f"Not an OpenSSH public key: {line[:40]!r}")

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> FixedKeyVerifier:
        """Build from the first key line of a .pub or known_hosts file."""
        path = Path(path).expanduser()
        try:
            lines = path.read_text().splitlines()
        except OSError as e:
            raise ConfigurationError(f"Cannot read host key file {path}: {e}") from e
        for line in lines:
            if line.strip() and not line.lstrip().startswith("#"):
                return cls.from_openssh(line)
        raise ConfigurationError(f"No host key found in {path}")

    def verify(self, record: HostKeyRecord) -> None:
        if self.expected_key is None:
            raise HostKeyNotConfiguredError(
                "No expected host key configured", record
            )
        if record.public_key != self.expected_key:
            raise HostKeyMismatchError(
                f"Host key mismatch for {record.hostname}: "
                f"server presented {record.fingerprint}",
                record,
            )
        logger.debug(f"Host key for {record.hostname} matches pinned key")


class CustomVerifier(HostKeyVerifier):
    """
    Delegate to caller logic.

    The inspector receives the HostKeyRecord and returns False to reject;
    True or None accepts. It may have side effects such as logging or
    capturing the key.
    """

    def __init__(self, inspector: Callable[[HostKeyRecord], Optional[bool]]):
        self.inspector = inspector

    def verify(self, record: HostKeyRecord) -> None:
        try:
            verdict = self.inspector(record)
        except HostKeyError:
            raise
        except Exception as e:
            raise HostKeyRejectedError(
                f"Host key inspector failed for {record.hostname}: {e}", record
            ) from e

        if verdict is False:
            raise HostKeyRejectedError(
                f"Host key for {record.hostname} rejected ({record.fingerprint})",
                record,
            )


class KnownHostsVerifier(HostKeyVerifier):
    """
    Verify against an OpenSSH known_hosts file.

    With ``add_unknown`` set, keys of hosts not yet in the file are
    appended and saved (OpenSSH's accept-new). A known host presenting a
    different key is always rejected.
    """

    def __init__(self, path: Union[str, Path, None] = None, add_unknown: bool = False):
        self.path = Path(path).expanduser() if path else DEFAULT_KNOWN_HOSTS
        self.add_unknown = add_unknown
        self._host_keys = paramiko.HostKeys()
        if self.path.exists():
            try:
                self._host_keys.load(str(self.path))
            except OSError as e:
                logger.warning(f"Could not read {self.path}: {e}")
            except (InvalidHostKey, paramiko.SSHException) as e:
                raise ConfigurationError(f"Cannot read {self.path}: {e}") from e
            else:
                logger.debug(f"Loaded {len(self._host_keys)} known host(s) from {self.path}")

    def lookup(self, record: HostKeyRecord) -> Optional[bool]:
        """
        Check the store.

        Returns:
            True if the key is known, False if the host is known with a
            different key of the same type, None if not in the store
        """
        entry = self._host_keys.lookup(record.known_hosts_name)
        if entry is None:
            return None
        known = entry.get(record.key_type)
        if known is None:
            return None
        return known.asbytes() == record.public_key

    def add(self, record: HostKeyRecord) -> None:
        """Remember a key and write the store to disk."""
        self._host_keys.add(record.known_hosts_name, record.key_type, record.to_pkey())
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._host_keys.save(str(self.path))
        logger.info(f"Added {record.known_hosts_name} ({record.key_type}) to {self.path}")

    def verify(self, record: HostKeyRecord) -> None:
        status = self.lookup(record)
        if status is True:
            logger.debug(f"Host key for {record.known_hosts_name} found in {self.path}")
            return
        if status is False:
            raise HostKeyMismatchError(
                f"REMOTE HOST IDENTIFICATION HAS CHANGED for {record.known_hosts_name}: "
                f"server presented {record.fingerprint}, which does not match {self.path}",
                record,
            )
        if not self.add_unknown:
            raise UnknownHostKeyError(
                f"Host {record.known_hosts_name} is not in {self.path} "
                f"({record.key_type} {record.fingerprint})",
                record,
            )
        self.add(record)


class PromptVerifier(CustomVerifier):
    """
    Ask the user before trusting an unknown key.

    Known keys are accepted silently and changed keys are always rejected.
    """

    def __init__(
        self,
        store: Optional[KnownHostsVerifier] = None,
        remember: bool = True,
        confirm: Callable[[str], bool] = None,
    ):
        super().__init__(self._inspect)
        self.store = store
        self.remember = remember
        self._confirm = confirm or (lambda text: click.confirm(text, default=False, err=True))

    def _inspect(self, record: HostKeyRecord) -> bool:
        if self.store is not None:
            status = self.store.lookup(record)
            if status is True:
                return True
            if status is False:
                raise HostKeyMismatchError(
                    f"Host key for {record.known_hosts_name} has changed "
                    f"(now {record.fingerprint})",
                    record,
                )

        text = (
            f"The authenticity of host '{record.known_hosts_name} ({record.remote_address})' "
            f"can't be established.\n"
            f"{record.key_type} key fingerprint is {record.fingerprint}.\n"
            f"Are you sure you want to continue connecting?"
        )
        if not self._confirm(text):
            return False

        if self.store is not None and self.remember:
            self.store.add(record)
        return True


# =============================================================================
# Policy selection
# =============================================================================

class HostKeyPolicy(Enum):
    """Named verifier policies selectable from configuration."""
    ACCEPT_ANY = "accept-any"
    FIXED = "fixed"
    KNOWN_HOSTS = "known-hosts"
    ACCEPT_NEW = "accept-new"
    PROMPT = "prompt"


DEFAULT_HOST_KEY_POLICY = HostKeyPolicy.KNOWN_HOSTS


def build_verifier(
    policy: Union[HostKeyPolicy, str],
    host_key: Optional[str] = None,
    known_hosts: Union[str, Path, None] = None,
) -> HostKeyVerifier:
    """
    Create the verifier for a configured policy.

    Args:
        policy: HostKeyPolicy or its string value
        host_key: OpenSSH key line or path to a key file (FIXED only)
        known_hosts: known_hosts file (KNOWN_HOSTS, ACCEPT_NEW, PROMPT)
    """
    try:
        policy = HostKeyPolicy(policy)
    except ValueError:
        raise ConfigurationError(f"Unknown host key policy: {policy!r}")

    if policy == HostKeyPolicy.ACCEPT_ANY:
        return AcceptAnyVerifier()

    if policy == HostKeyPolicy.FIXED:
        if not host_key:
            # Rejects every key at verification time
            return FixedKeyVerifier(None)
        if os.path.exists(os.path.expanduser(host_key)):
            return FixedKeyVerifier.from_file(host_key)
        return FixedKeyVerifier.from_openssh(host_key)

    if policy == HostKeyPolicy.PROMPT:
        return PromptVerifier(store=KnownHostsVerifier(known_hosts))

    return KnownHostsVerifier(
        known_hosts,
        add_unknown=(policy == HostKeyPolicy.ACCEPT_NEW),
    )
