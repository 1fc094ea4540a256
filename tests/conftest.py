import gzip
import os
import sqlite3
from datetime import datetime, timezone

import pytest

from walstream.config import parse_config

GEN_A = "0000000000000aaa"
GEN_B = "0000000000000bbb"


def ts(text):
    return datetime.fromisoformat(text).replace(tzinfo=timezone.utc)


def write_backup_file(root, generation, kind, index, data, created_at=None):
    """Write a gzip file into a replica directory, optionally with a fixed mtime."""
    ext = "snapshot.gz" if kind == "snapshots" else "wal.gz"
    path = root / "generations" / generation / kind / f"{index:08x}.{ext}"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(gzip.compress(data))
    if created_at is not None:
        epoch = created_at.timestamp()
        os.utime(path, (epoch, epoch))
    return path


def build_sqlite_backup(tmp_path):
    """Create a real snapshot and one WAL segment from a WAL-mode SQLite db.

    The snapshot holds row 1, the WAL segment adds row 2.
    """
    src = tmp_path / "src.db"
    conn = sqlite3.connect(str(src), isolation_level=None)
    conn.execute("PRAGMA journal_mode=wal")
    conn.execute("PRAGMA wal_autocheckpoint=0")
    conn.execute("CREATE TABLE t (x INTEGER)")
    conn.execute("INSERT INTO t VALUES (1)")
    conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
    snapshot = src.read_bytes()
    conn.execute("INSERT INTO t VALUES (2)")
    wal = (tmp_path / "src.db-wal").read_bytes()
    conn.close()
    return snapshot, wal


class SpyLoader:
    """Configuration provider that records every path it is asked to load."""

    def __init__(self, config=None):
        self.config = config if config is not None else parse_config('{"dbs": []}')
        self.calls = []

    def __call__(self, path):
        self.calls.append(path)
        return self.config


class FakeDatabase:

    def __init__(self, path, replicas=None, infos=None, error=None):
        self.path = path
        self.replicas = replicas or {}
        self.infos = infos or []
        self.error = error
        self.restored_with = []

    def replica(self, name):
        return self.replicas.get(name)

    def snapshots(self):
        if self.error:
            raise self.error
        return self.infos

    def restore(self, opt):
        self.restored_with.append(opt)
        if self.error:
            raise self.error
        return "restored"


class FakeReplica:

    def __init__(self, name, infos=None):
        self.name = name
        self.infos = infos or []

    def snapshots(self):
        return self.infos


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep audit logs and credentials out of the real home directory."""
    monkeypatch.setattr("walstream.log.LOGS_FILE", tmp_path / "home" / "logs.jsonl")
    monkeypatch.setattr("walstream.credentials.CREDENTIALS_FILE", tmp_path / "home" / "credentials")
    monkeypatch.delenv("WALSTREAM_CONFIG", raising=False)
