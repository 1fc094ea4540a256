import sqlite3

import pytest

from conftest import GEN_A, GEN_B, build_sqlite_backup, ts, write_backup_file
from walstream.config import parse_config
from walstream.db import Database, new_db_from_config
from walstream.errors import ReplicaNotFoundError, RestoreError
from walstream.options import RestoreOptions
from walstream.replica import FileReplica


class RecordingLogger:

    def __init__(self):
        self.lines = []

    def log(self, message):
        self.lines.append(message)


def options(**flags):
    return RestoreOptions.from_flags(make_logger=RecordingLogger, **flags)


@pytest.fixture
def two_replicas(tmp_path):
    """Replica 'old' has only an older generation; 'new' has a newer one."""
    old = tmp_path / "old"
    write_backup_file(old, GEN_A, "snapshots", 0, b"a0", ts("2021-01-01T00:00:00"))
    write_backup_file(old, GEN_A, "wal", 0, b"w", ts("2021-01-01T01:00:00"))

    new = tmp_path / "new"
    write_backup_file(new, GEN_B, "snapshots", 0, b"b0", ts("2021-02-01T00:00:00"))
    write_backup_file(new, GEN_B, "wal", 0, b"w", ts("2021-02-01T01:00:00"))
    write_backup_file(new, GEN_B, "wal", 1, b"w", ts("2021-02-01T02:00:00"))
    write_backup_file(new, GEN_B, "snapshots", 2, b"b2", ts("2021-02-01T03:00:00"))
    write_backup_file(new, GEN_B, "wal", 2, b"w", ts("2021-02-01T04:00:00"))
    write_backup_file(new, GEN_B, "wal", 3, b"w", ts("2021-02-01T05:00:00"))

    return Database(str(tmp_path / "app.db"), [FileReplica("old", old), FileReplica("new", new)])


def test_new_db_from_config(tmp_path):
    config = parse_config(
        '{"dbs": [{"path": "%s", "replicas": [{"name": "a", "path": "%s"}]}]}'
        % (tmp_path / "app.db", tmp_path / "a")
    )
    db = new_db_from_config(config, config.dbs[0])
    assert db.path == str(tmp_path / "app.db")
    assert isinstance(db.replica("a"), FileReplica)
    assert db.replica("b") is None


def test_snapshots_concatenate_replicas_in_order(two_replicas):
    infos = two_replicas.snapshots()
    assert [(s.replica, s.generation, s.index) for s in infos] == [
        ("old", GEN_A, 0), ("new", GEN_B, 0), ("new", GEN_B, 2),
    ]


class TestRestoreTarget:

    def test_latest_replica_and_generation(self, two_replicas):
        target = two_replicas.calc_restore_target(options())
        assert target.replica.name == "new"
        assert target.generation == GEN_B
        assert (target.snapshot_index, target.max_index) == (2, 3)
        assert target.wal_indexes == (2, 3)

    def test_named_replica(self, two_replicas):
        target = two_replicas.calc_restore_target(options(replica_name="old"))
        assert (target.replica.name, target.generation) == ("old", GEN_A)

    def test_unknown_replica(self, two_replicas):
        with pytest.raises(ReplicaNotFoundError, match='"nope"'):
            two_replicas.calc_restore_target(options(replica_name="nope"))

    def test_unknown_generation(self, two_replicas):
        with pytest.raises(RestoreError, match="no matching backups"):
            two_replicas.calc_restore_target(options(generation="ffffffffffffffff"))

    def test_index_picks_earlier_snapshot(self, two_replicas):
        target = two_replicas.calc_restore_target(options(index=1))
        assert (target.snapshot_index, target.max_index) == (0, 1)
        assert target.wal_indexes == (0, 1)

    def test_index_beyond_highest(self, two_replicas):
        with pytest.raises(RestoreError, match="unable to locate index 9 in generation .*, highest index was 3"):
            two_replicas.calc_restore_target(options(index=9))

    def test_timestamp_bounds_index(self, two_replicas):
        target = two_replicas.calc_restore_target(options(timestamp="2021-02-01T02:30:00Z"))
        assert target.replica.name == "new"
        assert (target.snapshot_index, target.max_index) == (0, 1)

    def test_timestamp_never_replays_later_wal(self, two_replicas):
        # Snapshot 2 was taken at 03:00, its WAL segment was written at 04:00.
        opt = options(timestamp="2021-02-01T03:30:00Z")
        target = two_replicas.calc_restore_target(opt)

        assert (target.replica.name, target.snapshot_index) == ("new", 2)
        assert target.wal_indexes == ()
        created = {w.index: w.created_at for w in target.replica.wal_segments(GEN_B)}
        assert all(created[i] <= opt.timestamp for i in target.wal_indexes)

    def test_timestamp_replays_wal_written_before_it(self, two_replicas):
        opt = options(timestamp="2021-02-01T04:30:00Z")
        target = two_replicas.calc_restore_target(opt)
        assert (target.snapshot_index, target.max_index) == (2, 2)
        assert target.wal_indexes == (2,)

    def test_timestamp_before_newer_generation(self, two_replicas):
        target = two_replicas.calc_restore_target(options(timestamp="2021-01-15T00:00:00Z"))
        assert (target.replica.name, target.generation) == ("old", GEN_A)

    def test_timestamp_before_everything(self, two_replicas):
        with pytest.raises(RestoreError, match="no matching backups"):
            two_replicas.calc_restore_target(options(timestamp="2020-01-01T00:00:00Z"))

    def test_wal_gap(self, tmp_path):
        write_backup_file(tmp_path, GEN_A, "snapshots", 0, b"s", ts("2021-01-01T00:00:00"))
        write_backup_file(tmp_path, GEN_A, "wal", 2, b"w", ts("2021-01-01T01:00:00"))
        db = Database(str(tmp_path / "app.db"), [FileReplica("r", tmp_path)])
        with pytest.raises(RestoreError, match="wal segment .*00000001 not found"):
            db.calc_restore_target(options())


class TestRestore:

    def test_index_and_timestamp_rejected(self, two_replicas):
        with pytest.raises(RestoreError, match="cannot specify index & timestamp"):
            two_replicas.restore(options(index=1, timestamp="2021-02-01T00:00:00Z"))

    def test_existing_output_rejected(self, two_replicas, tmp_path):
        existing = tmp_path / "exists.db"
        existing.write_bytes(b"")
        with pytest.raises(RestoreError, match="output path already exists"):
            two_replicas.restore(options(output_path=str(existing)))

    def test_dry_run_writes_nothing_but_narrates(self, two_replicas, tmp_path):
        opt = options(dry_run=True, output_path=str(tmp_path / "out.db"))
        result = two_replicas.restore(opt)

        assert result.dry_run is True
        assert (result.replica, result.generation, result.max_index) == ("new", GEN_B, 3)
        assert not (tmp_path / "out.db").exists()
        assert not (tmp_path / "out.db.tmp").exists()
        narration = "\n".join(opt.logger.lines)
        assert f"restoring snapshot {GEN_B}/00000002" in narration
        assert f"restoring wal {GEN_B}/00000003" in narration
        assert "dry run complete" in narration

    def test_restore_snapshot_and_wal(self, tmp_path):
        snapshot, wal = build_sqlite_backup(tmp_path)
        replica_dir = tmp_path / "replica"
        write_backup_file(replica_dir, GEN_A, "snapshots", 0, snapshot, ts("2021-01-01T00:00:00"))
        write_backup_file(replica_dir, GEN_A, "wal", 0, wal, ts("2021-01-01T00:01:00"))
        db_path = tmp_path / "restored" / "app.db"
        db = Database(str(db_path), [FileReplica("local", replica_dir)])

        result = db.restore(options())

        assert result.output_path == str(db_path)
        conn = sqlite3.connect(str(db_path))
        try:
            assert conn.execute("SELECT x FROM t ORDER BY x").fetchall() == [(1,), (2,)]
        finally:
            conn.close()
        assert not (tmp_path / "restored" / "app.db.tmp").exists()
        assert not (tmp_path / "restored" / "app.db.tmp-wal").exists()

    def test_restore_snapshot_only_up_to_index(self, tmp_path):
        snapshot, wal = build_sqlite_backup(tmp_path)
        replica_dir = tmp_path / "replica"
        write_backup_file(replica_dir, GEN_A, "snapshots", 1, snapshot, ts("2021-01-01T00:00:00"))
        write_backup_file(replica_dir, GEN_A, "wal", 2, wal, ts("2021-01-01T00:01:00"))
        out = tmp_path / "out.db"
        db = Database(str(tmp_path / "app.db"), [FileReplica("local", replica_dir)])

        db.restore(options(index=1, output_path=str(out)))

        conn = sqlite3.connect(str(out))
        try:
            assert conn.execute("SELECT x FROM t").fetchall() == [(1,)]
        finally:
            conn.close()

    def test_point_in_time_excludes_later_wal(self, tmp_path):
        snapshot, wal = build_sqlite_backup(tmp_path)
        replica_dir = tmp_path / "replica"
        write_backup_file(replica_dir, GEN_A, "snapshots", 0, snapshot, ts("2021-01-01T00:00:00"))
        write_backup_file(replica_dir, GEN_A, "wal", 0, wal, ts("2021-01-01T01:00:00"))
        out = tmp_path / "out.db"
        db = Database(str(tmp_path / "app.db"), [FileReplica("local", replica_dir)])

        db.restore(options(timestamp="2021-01-01T00:30:00Z", output_path=str(out)))

        conn = sqlite3.connect(str(out))
        try:
            assert conn.execute("SELECT x FROM t").fetchall() == [(1,)]
        finally:
            conn.close()

    def test_failed_restore_leaves_no_output(self, tmp_path):
        replica_dir = tmp_path / "replica"
        write_backup_file(replica_dir, GEN_A, "snapshots", 0, b"snapshot", ts("2021-01-01T00:00:00"))
        write_backup_file(replica_dir, GEN_A, "wal", 0, b"w", ts("2021-01-01T00:01:00"))
        out = tmp_path / "out.db"
        replica = FileReplica("local", replica_dir)
        db = Database(str(tmp_path / "app.db"), [replica])

        # Segment disappears between planning and applying.
        original = replica.read_wal_segment
        replica.read_wal_segment = lambda generation, index: None
        try:
            with pytest.raises(RestoreError, match="wal segment"):
                db.restore(options(output_path=str(out)))
        finally:
            replica.read_wal_segment = original

        assert not out.exists()
        assert not (tmp_path / "out.db.tmp").exists()
