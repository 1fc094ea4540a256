import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from urllib.parse import urlparse

from walstream.errors import ConfigError

CONFIG_ENV_VAR = "WALSTREAM_CONFIG"

REPLICA_TYPES = {"file", "s3"}


def expand(path):
    """Expand ~ and make the path absolute."""
    return os.path.abspath(os.path.expanduser(str(path)))


@dataclass
class ReplicaConfig:
    name: str = ""
    type: str = ""
    path: str = ""
    url: str = ""
    bucket: str = ""
    region: str = ""
    endpoint: str = ""


@dataclass
class DBConfig:
    path: str
    replicas: list = field(default_factory=list)


@dataclass
class Config:
    dbs: list = field(default_factory=list)

    def db_config(self, path):
        """Return the DBConfig whose expanded path matches, or None."""
        path = expand(path)
        for dbc in self.dbs:
            if dbc.path == path:
                return dbc
        return None


def _replica_from_raw(raw, db_path):
    if not isinstance(raw, dict):
        raise ConfigError(f"replica entries for {db_path} must be objects")
    rc = ReplicaConfig(**{k: str(raw[k]) for k in (f.name for f in fields(ReplicaConfig)) if raw.get(k)})

    # A URL fills in type, bucket and path.
    if rc.url:
        u = urlparse(rc.url)
        if not u.scheme:
            raise ConfigError(f"invalid replica url for {db_path}: {rc.url}")
        rc.type = rc.type or u.scheme
        if u.scheme == "s3":
            rc.bucket = rc.bucket or u.netloc
            rc.path = rc.path or u.path.strip("/")
        elif u.scheme == "file":
            rc.path = rc.path or u.path
    rc.type = rc.type or "file"
    if rc.type not in REPLICA_TYPES:
        raise ConfigError(f"unknown replica type {rc.type!r} for {db_path}. Use 'file' or 's3'.")
    if rc.type == "file":
        if not rc.path:
            raise ConfigError(f"file replica for {db_path} requires a path")
        rc.path = expand(rc.path)
    if rc.type == "s3" and not rc.bucket:
        raise ConfigError(f"s3 replica for {db_path} requires a bucket")
    rc.name = rc.name or rc.type
    return rc


def parse_config(text, source="<config>", expand_env=True):
    """Parse configuration JSON text into a Config."""
    if expand_env:
        text = os.path.expandvars(text)
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {source}: {e}")

    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid config in {source}: expected an object")
    dbs = raw.get("dbs", [])
    if not isinstance(dbs, list):
        raise ConfigError(f"Invalid config in {source}: 'dbs' must be a list")

    config = Config()
    for entry in dbs:
        if not isinstance(entry, dict) or not entry.get("path"):
            raise ConfigError(f"Invalid config in {source}: every db requires a path")
        db_path = expand(entry["path"])
        replicas = entry.get("replicas", [])
        if not isinstance(replicas, list):
            raise ConfigError(f"Invalid config in {source}: replicas for {db_path} must be a list")

        dbc = DBConfig(path=db_path)
        seen = set()
        for r in replicas:
            rc = _replica_from_raw(r, db_path)
            if rc.name in seen:
                raise ConfigError(f"duplicate replica name {rc.name!r} for {db_path}")
            seen.add(rc.name)
            dbc.replicas.append(rc)
        config.dbs.append(dbc)
    return config


def read_config_file(path, expand_env=True):
    """Load the configuration file at path."""
    config_path = Path(expand(path))
    try:
        text = config_path.read_text()
    except FileNotFoundError:
        raise ConfigError(f"config file not found: {config_path}")
    except OSError as e:
        raise ConfigError(f"cannot read config file {config_path}: {e}")
    return parse_config(text, source=str(config_path), expand_env=expand_env)
