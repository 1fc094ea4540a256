import os
import sqlite3

import click
from rich.console import Console
from rich.markup import escape

from walstream import __version__
from walstream.config import CONFIG_ENV_VAR
from walstream.credentials import load_credentials, save_credential
from walstream.errors import UsageError, WalstreamError
from walstream.log import log_restore
from walstream.options import TIMESTAMP_EXAMPLE
from walstream.resolve import format_snapshot_table, list_snapshots, resolve_restore

# Failures reported as a one-line message instead of a traceback.
COMMAND_ERRORS = (WalstreamError, OSError, RuntimeError, ValueError, sqlite3.Error)


def config_option(f):
    return click.option(
        "-config", "--config", "config_path",
        envvar=CONFIG_ENV_VAR,
        metavar="PATH",
        help=f"Configuration file. Defaults to ${CONFIG_ENV_VAR}.",
    )(f)


def _fail(e):
    Console(stderr=True, highlight=False).print(f"[red]error: {escape(str(e))}[/red]", soft_wrap=True)
    raise SystemExit(1)


@click.group()
@click.version_option(version=__version__)
def main():
    """walstream: restore and inspect replicated SQLite databases."""
    load_credentials()


@main.command()
@click.argument("key")
@click.argument("value")
def auth(key, value):
    """Save a replica credential. Stored in ~/.walstream/credentials.

    Examples:
        walstream auth AWS_ACCESS_KEY_ID AKIA...
        walstream auth AWS_SECRET_ACCESS_KEY ...
    """
    save_credential(key, value)
    click.echo(f"Saved {key} to ~/.walstream/credentials")


@main.command()
@config_option
@click.option("-o", "--output", "output_path", metavar="PATH",
              help="Output path of the restored database. Defaults to original DB path.")
@click.option("-replica", "--replica", "replica_name", metavar="NAME",
              help="Restore from a specific replica. Defaults to replica with latest data.")
@click.option("-generation", "--generation", metavar="NAME",
              help="Restore from a specific generation. Defaults to generation with latest data.")
@click.option("-index", "--index", type=click.IntRange(min=0), metavar="NUM",
              help="Restore up to a specific WAL index (inclusive). Defaults to the highest available index.")
@click.option("-timestamp", "--timestamp", metavar="TIMESTAMP",
              help=f"Restore to a specific point-in-time, e.g. {TIMESTAMP_EXAMPLE}. Defaults to latest backup.")
@click.option("-dry-run", "--dry-run", "dry_run", is_flag=True,
              help="Print all log output as if running, but do not restore.")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output.")
@click.argument("target", nargs=-1)
@click.pass_context
def restore(ctx, config_path, output_path, replica_name, generation, index, timestamp, dry_run, verbose, target):
    """Recover a database from a previous snapshot and WAL.

    \b
    Examples:
        # Restore latest replica for database to original location.
        walstream restore -config /etc/walstream.json /path/to/db

        # Restore to a given point in time.
        walstream restore -timestamp 2020-01-01T00:00:00Z /path/to/db

        # Restore to a new location from a specific generation on S3.
        walstream restore -replica s3 -generation xxxxxxxx -o /tmp/db /path/to/db
    """
    flags = {
        "output_path": output_path,
        "replica_name": replica_name,
        "generation": generation,
        "index": index,
        "timestamp": timestamp,
        "dry_run": dry_run,
        "verbose": verbose,
    }
    try:
        options, result = resolve_restore(target, config_path, flags)
    except UsageError as e:
        raise click.UsageError(str(e), ctx)
    except COMMAND_ERRORS as e:
        _fail(e)

    log_restore(os.path.abspath(target[0]), result, options.timestamp)


@main.command()
@config_option
@click.option("-replica", "--replica", "replica_name", metavar="NAME",
              help="Optional, filter by a specific replica.")
@click.argument("target", nargs=-1)
@click.pass_context
def snapshots(ctx, config_path, replica_name, target):
    """List all snapshots available for a database or replica.

    \b
    Examples:
        # List all snapshots for a database.
        walstream snapshots -config /etc/walstream.json /path/to/db

        # List snapshots on one replica of a database.
        walstream snapshots -replica s3 /path/to/db

        # List all snapshots by replica URL.
        walstream snapshots s3://mybkt/db
    """
    try:
        infos = list_snapshots(target, config_path, replica_name)
    except UsageError as e:
        raise click.UsageError(str(e), ctx)
    except COMMAND_ERRORS as e:
        _fail(e)

    click.echo(format_snapshot_table(infos), nl=False)
