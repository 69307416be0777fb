"""
Configuration for termlink.

- ClientConfig: everything one run needs, built once and passed to the core
- AppSettings: persistent defaults, stored in ~/.termlink/config.json
- HostProfile: named hosts, stored in ~/.termlink/hosts.yaml
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field, asdict, fields, replace
from pathlib import Path
from typing import Optional

import yaml

from .connection.auth import ChallengeHandler, StaticChallengeHandler, TerminalChallengeHandler
from .connection.hostkeys import DEFAULT_HOST_KEY_POLICY, HostKeyPolicy, HostKeyVerifier, build_verifier
from .connection.profile import (
    AuthConfig,
    ConnectionTarget,
    TerminalRequest,
    DEFAULT_COLS,
    DEFAULT_HOST,
    DEFAULT_ROWS,
    DEFAULT_TERM_TYPE,
    default_modes,
    resolve_target,
)
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Default config location
DEFAULT_CONFIG_DIR = Path.home() / ".termlink"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.json"
DEFAULT_PROFILES_FILE = DEFAULT_CONFIG_DIR / "hosts.yaml"


@dataclass
class ClientConfig:
    """
    Settings for one interactive session.

    Constructed once (by the CLI or by library callers) and handed to
    ShellClient; nothing here is shared global state.
    """
    username: str = ""
    password: str = field(default="", repr=False)
    host: str = DEFAULT_HOST
    # None: port embedded in host, else DEFAULT_PORT
    port: Optional[int] = None

    # Authentication
    keyboard_interactive: bool = False

    # Host verification
    host_key_policy: str = DEFAULT_HOST_KEY_POLICY.value
    host_key: Optional[str] = None
    known_hosts: Optional[str] = None

    # Terminal request
    term_type: str = DEFAULT_TERM_TYPE
    rows: int = DEFAULT_ROWS
    cols: int = DEFAULT_COLS
    modes: dict[int, int] = field(default_factory=default_modes)

    # Transport
    connect_timeout: float = 10.0
    keepalive_interval: int = 30
    legacy_algorithms: bool = False

    def validate(self) -> None:
        """
        Check what must be known before dialing.

        Raises:
            ConfigurationError: no username, or bad target/terminal values
        """
        if not self.username:
            raise ConfigurationError("Username is required")
        self.target()
        self.terminal_request()

    def target(self) -> ConnectionTarget:
        return resolve_target(self.host, self.port)

    def terminal_request(self) -> TerminalRequest:
        return TerminalRequest(
            term_type=self.term_type,
            rows=self.rows,
            cols=self.cols,
            modes=dict(self.modes),
        )

    def auth_methods(self, challenge_handler: Optional[ChallengeHandler] = None) -> list[AuthConfig]:
        """
        Auth methods to try, in order.

        Password auth when not keyboard-interactive. In keyboard-interactive
        mode a configured password is tried first, then the challenge
        handler. Without an explicit handler, challenges are answered with
        the configured password, or prompted on the local terminal when
        there is none.
        """
        if not self.keyboard_interactive:
            return [AuthConfig.password_auth(self.username, self.password)]

        methods = []
        if self.password:
            methods.append(AuthConfig.password_auth(self.username, self.password))
            default_handler = StaticChallengeHandler(self.password)
        else:
            default_handler = TerminalChallengeHandler()
        methods.append(AuthConfig.keyboard_interactive(
            self.username,
            challenge_handler or default_handler,
        ))
        return methods

    def verifier(self) -> HostKeyVerifier:
        return build_verifier(self.host_key_policy, self.host_key, self.known_hosts)

    def apply_profile(self, profile: HostProfile) -> ClientConfig:
        """Return a copy with the profile's non-empty values filled in."""
        updates = {
            name: value
            for name, value in asdict(profile).items()
            if name != "name" and value not in (None, "")
        }
        return replace(self, **updates)

    @classmethod
    def from_settings(cls, settings: AppSettings, **overrides) -> ClientConfig:
        """Start from persisted defaults, then apply non-None overrides."""
        config = cls(
            host_key_policy=settings.host_key_policy,
            known_hosts=settings.known_hosts_file,
            term_type=settings.default_term_type,
            connect_timeout=settings.connect_timeout,
            keepalive_interval=settings.keepalive_interval,
            legacy_algorithms=settings.legacy_algorithms,
        )
        valid = {f.name for f in fields(cls)}
        updates = {k: v for k, v in overrides.items() if v is not None and k in valid}
        return replace(config, **updates)


# =============================================================================
# Persistent settings
# =============================================================================

@dataclass
class AppSettings:
    """
    Defaults that persist across runs.
    """
    # Terminal
    default_term_type: str = DEFAULT_TERM_TYPE

    # Host verification
    host_key_policy: str = DEFAULT_HOST_KEY_POLICY.value
    known_hosts_file: Optional[str] = None

    # Transport
    connect_timeout: float = 10.0
    keepalive_interval: int = 30
    legacy_algorithms: bool = False

    # Recent targets (host:port only, never credentials)
    recent_hosts: list[str] = field(default_factory=list)
    max_recent: int = 10

    def to_dict(self) -> dict:
        """Serialize to dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> AppSettings:
        """Deserialize from dict, ignoring unknown keys."""
        valid_fields = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)

    def add_recent_host(self, target: str) -> None:
        """Add a target to the recent list (moves to front if exists)."""
        if target in self.recent_hosts:
            self.recent_hosts.remove(target)
        self.recent_hosts.insert(0, target)
        self.recent_hosts = self.recent_hosts[:self.max_recent]


class SettingsManager:
    """
    Persistent defaults in ~/.termlink/config.json.

    A missing or unparsable file gives the built-in defaults. A bad entry
    is dropped with a warning naming its key; the rest of the file still
    applies.

    Usage:
        manager = SettingsManager()
        config = ClientConfig.from_settings(manager.settings)
        ...
        manager.record_host("10.0.0.5:22")
    """

    # Per-key checks; keys not listed only need the default's type
    _CHECKS = {
        "host_key_policy": lambda v: v in {p.value for p in HostKeyPolicy},
        "known_hosts_file": lambda v: v is None or isinstance(v, str),
        "connect_timeout": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool) and v > 0,
        "keepalive_interval": lambda v: isinstance(v, int) and not isinstance(v, bool) and v >= 0,
        "max_recent": lambda v: isinstance(v, int) and not isinstance(v, bool) and v > 0,
        "recent_hosts": lambda v: isinstance(v, list) and all(isinstance(h, str) for h in v),
    }

    def __init__(self, config_path: Path = None):
        self._config_path = Path(config_path) if config_path else DEFAULT_CONFIG_FILE
        self._settings: Optional[AppSettings] = None

    @property
    def path(self) -> Path:
        return self._config_path

    @property
    def settings(self) -> AppSettings:
        """Current settings, read from disk on first use."""
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    def load(self) -> AppSettings:
        if not self._config_path.exists():
            logger.debug(f"No settings at {self._config_path}, using defaults")
            return AppSettings()

        try:
            data = json.loads(self._config_path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring settings file {self._config_path}: {e}")
            return AppSettings()
        if not isinstance(data, dict):
            logger.warning(f"Ignoring settings file {self._config_path}: expected a JSON object")
            return AppSettings()

        settings = self._from_file(data)
        logger.debug(f"Loaded settings from {self._config_path}")
        return settings

    def _from_file(self, data: dict) -> AppSettings:
        defaults = AppSettings()
        known = [f.name for f in fields(AppSettings)]

        unknown = sorted(set(data) - set(known))
        if unknown:
            logger.warning(
                f"Ignoring unknown setting(s) in {self._config_path}: {', '.join(unknown)} "
                f"(known: {', '.join(known)})"
            )

        accepted = {}
        for name in known:
            if name not in data:
                continue
            value = data[name]
            default = getattr(defaults, name)
            check = self._CHECKS.get(name, lambda v: isinstance(v, type(default)))
            if not check(value):
                logger.warning(
                    f"Ignoring setting {name}={value!r} in {self._config_path}, "
                    f"using default {default!r}"
                )
                continue
            accepted[name] = value
        return AppSettings(**accepted)

    def save(self) -> None:
        """Write current settings; failures are logged, never raised."""
        if self._settings is None:
            return
        try:
            self._config_path.parent.mkdir(parents=True, exist_ok=True)
            self._config_path.write_text(json.dumps(self._settings.to_dict(), indent=2))
            logger.debug(f"Saved settings to {self._config_path}")
        except OSError as e:
            logger.warning(f"Could not save settings to {self._config_path}: {e}")

    def record_host(self, target: str) -> None:
        """Remember a successfully dialed target and save."""
        self.settings.add_recent_host(target)
        self.save()

    def reset(self) -> AppSettings:
        """Back to built-in defaults (not saved until save())."""
        self._settings = AppSettings()
        return self._settings


# =============================================================================
# Host profiles
# =============================================================================

@dataclass
class HostProfile:
    """A named host entry from hosts.yaml."""
    name: str
    host: str = ""
    port: Optional[int] = None
    username: str = ""
    keyboard_interactive: Optional[bool] = None
    host_key_policy: Optional[str] = None
    host_key: Optional[str] = None
    term_type: Optional[str] = None


def load_profiles(path: Path = None) -> dict[str, HostProfile]:
    """
    Load host profiles.

    File format:

        hosts:
          web01:
            host: 10.0.0.5
            port: 2222
            username: admin
            host_key_policy: fixed
            host_key: "ssh-ed25519 AAAA..."

    Returns:
        Profiles keyed by name; empty if the file does not exist

    Raises:
        ConfigurationError: unreadable or malformed file
    """
    path = Path(path) if path else DEFAULT_PROFILES_FILE
    if not path.exists():
        logger.debug(f"No profiles file at {path}")
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read profiles from {path}: {e}") from e

    hosts = data.get("hosts") if isinstance(data, dict) else None
    if hosts is None:
        return {}
    if not isinstance(hosts, dict):
        raise ConfigurationError(f"'hosts' in {path} must be a mapping")

    valid = {f.name for f in fields(HostProfile)} - {"name"}
    profiles = {}
    for name, entry in hosts.items():
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Profile '{name}' in {path} must be a mapping")
        unknown = set(entry) - valid
        if unknown:
            logger.warning(f"Ignoring unknown keys in profile '{name}': {', '.join(sorted(unknown))}")
        profiles[str(name)] = HostProfile(
            name=str(name),
            **{k: v for k, v in entry.items() if k in valid},
        )

    logger.debug(f"Loaded {len(profiles)} profile(s) from {path}")
    return profiles
