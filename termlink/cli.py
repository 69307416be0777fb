"""
termlink/cli.py

Command-line interface: open an interactive shell on a remote host.

Usage:
    termlink -u admin --host 10.0.0.5
    termlink -u admin -p secret --host 10.0.0.5 --port 2222
    termlink -u admin --host bastion -k --host-key-policy prompt
    termlink --profile web01
"""

import sys
from dataclasses import replace
from pathlib import Path

import click

from .client import ShellClient
from .config import ClientConfig, SettingsManager, load_profiles
from .connection.hostkeys import HostKeyPolicy
from .connection.profile import DEFAULT_HOST, DEFAULT_PORT
from .exceptions import ConfigurationError, TermlinkError
from .log import setup_logging
from .terminal import LocalTerminal

EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _fail(message: str, code: int = EXIT_FAILURE) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-u", "--user", "username", envvar="TERMLINK_USER", default=None,
              help="Remote username (required)")
@click.option("-p", "--password", default=None, envvar="TERMLINK_PASSWORD",
              help="Password (empty if omitted)")
@click.option("-P", "--ask-password", is_flag=True, help="Prompt for the password")
@click.option("--host", default=None, help=f"Target host [default: {DEFAULT_HOST}]")
@click.option("--port", type=int, default=None, help=f"Target port [default: {DEFAULT_PORT}]")
@click.option("-k", "--keyboard-interactive", is_flag=True,
              help="Use keyboard-interactive authentication")
@click.option("--host-key-policy", type=click.Choice([p.value for p in HostKeyPolicy]),
              default=None, help="How to verify the server's host key")
@click.option("--host-key", default=None,
              help="Expected host key (OpenSSH line or file) for the 'fixed' policy")
@click.option("--known-hosts", type=click.Path(dir_okay=False), default=None,
              help="known_hosts file [default: ~/.ssh/known_hosts]")
@click.option("--term", "term_type", default=None, help="Terminal type for the pty request")
@click.option("--rows", type=int, default=None, help="Terminal rows [default: local size]")
@click.option("--cols", type=int, default=None, help="Terminal columns [default: local size]")
@click.option("--connect-timeout", type=float, default=None, help="Connect timeout in seconds")
@click.option("--legacy-algorithms", is_flag=True, help="Allow older ciphers and key exchanges")
@click.option("--profile", default=None, help="Named host from the profiles file")
@click.option("--profiles-file", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Host profiles YAML [default: ~/.termlink/hosts.yaml]")
@click.option("--config", "config_file", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Settings file [default: ~/.termlink/config.json]")
@click.option("-v", "--verbose", count=True, help="More logging (-vv includes paramiko)")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None,
              help="Write a debug log to this file")
@click.pass_context
def cli(ctx, username, password, ask_password, host, port, keyboard_interactive,
        host_key_policy, host_key, known_hosts, term_type, rows, cols,
        connect_timeout, legacy_algorithms, profile, profiles_file, config_file,
        verbose, log_file):
    """Open an interactive shell on a remote host over SSH."""
    ctx.ensure_object(dict)
    setup_logging(verbose, log_file)

    manager = SettingsManager(config_file)
    terminal = ctx.obj.get("terminal") or LocalTerminal()

    try:
        config = ClientConfig.from_settings(manager.settings)

        if profile:
            profiles = load_profiles(profiles_file)
            if profile not in profiles:
                raise ConfigurationError(f"Profile '{profile}' not found")
            config = config.apply_profile(profiles[profile])

        if rows is None and cols is None and terminal.isatty():
            cols, rows = terminal.size()

        config = replace(config, **{
            name: value for name, value in {
                "username": username,
                "password": password,
                "host": host,
                "port": port,
                "keyboard_interactive": True if keyboard_interactive else None,
                "host_key_policy": host_key_policy,
                "host_key": host_key,
                "known_hosts": known_hosts,
                "term_type": term_type,
                "rows": rows,
                "cols": cols,
                "connect_timeout": connect_timeout,
                "legacy_algorithms": True if legacy_algorithms else None,
            }.items() if value is not None
        })

        # Fail on a missing username before prompting or dialing
        if not config.username:
            raise ConfigurationError("Username is required (use -u/--user)")
        config.validate()

        if ask_password:
            config = replace(config, password=click.prompt(
                f"Password for {config.username}@{config.host}",
                hide_input=True, default="", show_default=False, err=True,
            ))

    except ConfigurationError as e:
        _fail(str(e), EXIT_USAGE)

    client = ShellClient(config, dialer=ctx.obj.get("dialer"), terminal=terminal)
    try:
        client.connect()

        manager.record_host(str(config.target()))

        result = client.run()

    except ConfigurationError as e:
        _fail(str(e), EXIT_USAGE)
    except TermlinkError as e:
        client.close()
        if verbose and e.__cause__ is not None:
            click.echo(f"Cause: {e.__cause__!r}", err=True)
        _fail(str(e))
    except KeyboardInterrupt:
        client.cancel()
        client.close()
        click.echo("Interrupted", err=True)
        sys.exit(EXIT_INTERRUPTED)

    if result.cancelled:
        sys.exit(EXIT_INTERRUPTED)
    sys.exit(result.exit_status if result.exit_status is not None else 0)


def main():
    """Entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
