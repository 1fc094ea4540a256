"""Turn command-line input into a restore call or a snapshot listing.

Both commands take exactly one positional argument, a database path or a
replica URL. Restore always goes through the configuration file. Snapshot
listing picks its source from an ordered list of strategies; the first one
that applies wins.
"""

import os

from walstream.config import expand, read_config_file
from walstream.db import new_db_from_config
from walstream.errors import ConfigRequiredError, DatabaseNotFoundError, ReplicaNotFoundError, UsageError
from walstream.options import RestoreOptions, format_timestamp, narration_console
from walstream.replica import is_url, replica_from_url

SNAPSHOT_HEADER = ("replica", "generation", "index", "size", "created")


def single_argument(args, missing_message):
    """Return the only positional argument, or raise UsageError."""
    if not args or not args[0]:
        raise UsageError(missing_message)
    if len(args) > 1:
        raise UsageError("too many arguments")
    return args[0]


def lookup_database(config, path, open_database=new_db_from_config):
    dbc = config.db_config(path)
    if dbc is None:
        raise DatabaseNotFoundError(path)
    return open_database(config, dbc)


# ----------------------------------------------------------------------
# Restore
# ----------------------------------------------------------------------

def resolve_restore(args, config_path, flags=None, load_config=read_config_file,
                    open_database=new_db_from_config, make_logger=narration_console):
    """Resolve the target database and restore it.

    ``flags`` holds the raw restore flags accepted by RestoreOptions.from_flags.
    Arguments, the config path and the timestamp are all validated before the
    configuration is loaded. Returns (options, result of Database.restore).
    """
    target = single_argument(args, "database path or replica URL required")
    if not config_path:
        raise ConfigRequiredError("-config required")
    options = RestoreOptions.from_flags(make_logger=make_logger, **(flags or {}))

    db_path = os.path.abspath(target)
    config = load_config(config_path)
    db = lookup_database(config, db_path, open_database)
    return options, db.restore(options)


# ----------------------------------------------------------------------
# Snapshots
# ----------------------------------------------------------------------

class ReplicaURLSource:
    """Positional argument is a replica URL. Configuration is never read."""

    def applies(self, target, config_path, replica_name):
        return is_url(target)

    def open(self, target, config_path, replica_name, load_config, open_database):
        return None, replica_from_url(target)


class ConfigReplicaSource:
    """A named replica of a database found in the configuration file."""

    def applies(self, target, config_path, replica_name):
        return bool(config_path) and bool(replica_name)

    def open(self, target, config_path, replica_name, load_config, open_database):
        db = lookup_database(load_config(config_path), expand(target), open_database)
        r = db.replica(replica_name)
        if r is None:
            raise ReplicaNotFoundError(replica_name, db.path)
        return db, r


class ConfigDatabaseSource:
    """A database found in the configuration file, across all its replicas."""

    def applies(self, target, config_path, replica_name):
        return bool(config_path)

    def open(self, target, config_path, replica_name, load_config, open_database):
        return lookup_database(load_config(config_path), expand(target), open_database), None


SNAPSHOT_SOURCES = (ReplicaURLSource(), ConfigReplicaSource(), ConfigDatabaseSource())


def resolve_snapshot_source(target, config_path, replica_name=None,
                            load_config=read_config_file, open_database=new_db_from_config,
                            sources=SNAPSHOT_SOURCES):
    """Return (database, replica) for the first source that applies.

    Exactly one of the two is queried: the replica when set, else the database.
    """
    for source in sources:
        if source.applies(target, config_path, replica_name):
            return source.open(target, config_path, replica_name, load_config, open_database)
    raise ConfigRequiredError("config path or replica URL required")


def list_snapshots(args, config_path, replica_name=None, load_config=read_config_file,
                   open_database=new_db_from_config):
    """Snapshot infos for the resolved source, in the order it returns them."""
    target = single_argument(args, "database path required")
    db, r = resolve_snapshot_source(target, config_path, replica_name, load_config, open_database)
    if r is not None:
        return r.snapshots()
    return db.snapshots()


def format_snapshot_table(infos):
    """Render snapshots as tab-separated lines, header first."""
    lines = ["\t".join(SNAPSHOT_HEADER)]
    for info in infos:
        lines.append("\t".join([
            info.replica,
            info.generation,
            str(info.index),
            str(info.size),
            format_timestamp(info.created_at),
        ]))
    return "\n".join(lines) + "\n"
