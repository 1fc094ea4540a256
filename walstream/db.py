"""Database handle: replica lookup, snapshot listing and restore."""

import os
import sqlite3
from dataclasses import dataclass

from walstream.errors import ReplicaNotFoundError, RestoreError
from walstream.options import format_timestamp
from walstream.replica import create_replica


@dataclass(frozen=True)
class RestoreTarget:
    replica: object
    generation: str
    snapshot_index: int
    max_index: int
    wal_indexes: tuple = ()


@dataclass(frozen=True)
class RestoreResult:
    """What a restore did (or, in dry-run mode, would have done)."""

    output_path: str
    replica: str
    generation: str
    snapshot_index: int
    max_index: int
    dry_run: bool


def new_db_from_config(config, db_config):
    """Build a Database from its configuration entry."""
    return Database(db_config.path, [create_replica(rc) for rc in db_config.replicas])


class Database:

    def __init__(self, path, replicas=None):
        self.path = path
        self.replicas = list(replicas or [])

    def replica(self, name):
        for r in self.replicas:
            if r.name == name:
                return r
        return None

    def snapshots(self):
        """Snapshots from every replica, in replica order."""
        infos = []
        for r in self.replicas:
            infos.extend(r.snapshots())
        return infos

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore(self, opt):
        if opt.index is not None and opt.timestamp is not None:
            raise RestoreError("cannot specify index & timestamp to restore")

        output_path = opt.output_path or self.path
        if os.path.exists(output_path):
            raise RestoreError(f"cannot restore, output path already exists: {output_path}")

        target = self.calc_restore_target(opt)
        r = target.replica
        opt.log(f"{r.name}: restoring snapshot {target.generation}/{target.snapshot_index:08x} to {output_path}.tmp")

        result = RestoreResult(
            output_path=output_path,
            replica=r.name,
            generation=target.generation,
            snapshot_index=target.snapshot_index,
            max_index=target.max_index,
            dry_run=opt.dry_run,
        )

        if opt.dry_run:
            for index in target.wal_indexes:
                opt.log(f"{r.name}: restoring wal {target.generation}/{index:08x}")
            opt.log(f"{r.name}: renaming database from temporary location")
            opt.log(f"{r.name}: dry run complete, nothing written to {output_path}")
            return result

        tmp_path = output_path + ".tmp"
        try:
            self._write_snapshot(r, target.generation, target.snapshot_index, tmp_path)
            for index in target.wal_indexes:
                opt.log(f"{r.name}: restoring wal {target.generation}/{index:08x}")
                self._apply_wal(r, target.generation, index, tmp_path)
            opt.log(f"{r.name}: renaming database from temporary location")
            os.replace(tmp_path, output_path)
        except BaseException:
            _remove_quietly(tmp_path)
            raise
        finally:
            _remove_quietly(tmp_path + "-wal")
            _remove_quietly(tmp_path + "-shm")
        return result

    def calc_restore_target(self, opt):
        """Pick replica, generation, snapshot and max WAL index for a restore."""
        if opt.replica_name:
            r = self.replica(opt.replica_name)
            if r is None:
                raise ReplicaNotFoundError(opt.replica_name, self.path)
            candidates = [r]
        else:
            candidates = self.replicas

        best = None
        for r in candidates:
            generation, updated_at = self._latest_generation(r, opt)
            if generation is None:
                continue
            opt.log(f"{r.name}: generation {generation} last updated {format_timestamp(updated_at)}")
            # Ties keep the earlier replica.
            if best is None or updated_at > best[2]:
                best = (r, generation, updated_at)

        if best is None:
            raise RestoreError("no matching backups available")

        r, generation, _ = best
        opt.log(f"using replica {r.name}, generation {generation}")
        max_index = self._max_index(r, generation, opt)
        snapshot_index = self._snapshot_index(r, generation, max_index, opt)
        return RestoreTarget(
            replica=r,
            generation=generation,
            snapshot_index=snapshot_index,
            max_index=max_index,
            wal_indexes=self._wal_indexes(r, generation, snapshot_index, max_index, opt),
        )

    def _wal_indexes(self, r, generation, snapshot_index, max_index, opt):
        """WAL indexes to replay on top of the snapshot.

        The segment at the snapshot index may be absent (nothing was written
        after the snapshot in that index); every later index must be present.
        Segments written after the requested timestamp are never replayed.
        """
        available = {
            w.index for w in r.wal_segments(generation)
            if opt.timestamp is None or w.created_at <= opt.timestamp
        }
        indexes = []
        for index in range(snapshot_index, max_index + 1):
            if index in available:
                indexes.append(index)
            elif index != snapshot_index:
                raise RestoreError(f"wal segment {generation}/{index:08x} not found on replica {r.name}")
        return tuple(indexes)

    def _latest_generation(self, r, opt):
        names = [opt.generation] if opt.generation else r.generations()
        best, best_updated = None, None
        for name in names:
            stats = r.generation_stats(name)
            if stats is None:
                continue
            if opt.timestamp is not None and stats.created_at > opt.timestamp:
                continue
            if best_updated is None or stats.updated_at > best_updated:
                best, best_updated = name, stats.updated_at
        return best, best_updated

    def _max_index(self, r, generation, opt):
        segments = r.wal_segments(generation)
        snapshots = r.generation_snapshots(generation)
        highest = max([w.index for w in segments] + [s.index for s in snapshots])

        if opt.index is not None:
            if opt.index > highest:
                raise RestoreError(
                    f"unable to locate index {opt.index} in generation {generation}, highest index was {highest}"
                )
            return opt.index

        if opt.timestamp is not None:
            eligible = [w.index for w in segments if w.created_at <= opt.timestamp]
            eligible += [s.index for s in snapshots if s.created_at <= opt.timestamp]
            if not eligible:
                raise RestoreError(
                    f"no backups in generation {generation} at or before {format_timestamp(opt.timestamp)}"
                )
            return max(eligible)

        return highest

    def _snapshot_index(self, r, generation, max_index, opt):
        eligible = [
            s.index for s in r.generation_snapshots(generation)
            if s.index <= max_index and (opt.timestamp is None or s.created_at <= opt.timestamp)
        ]
        if not eligible:
            raise RestoreError(f"no snapshot available in generation {generation} at or before index {max_index}")
        return max(eligible)

    def _write_snapshot(self, r, generation, index, tmp_path):
        data = r.read_snapshot(generation, index)
        if data is None:
            raise RestoreError(f"snapshot {generation}/{index:08x} not found on replica {r.name}")
        os.makedirs(os.path.dirname(tmp_path) or ".", exist_ok=True)
        with open(tmp_path, "wb") as f:
            f.write(data)

    def _apply_wal(self, r, generation, index, tmp_path):
        """Copy one WAL segment next to the temp database and checkpoint it in."""
        data = r.read_wal_segment(generation, index)
        if data is None:
            raise RestoreError(f"wal segment {generation}/{index:08x} not found on replica {r.name}")
        with open(tmp_path + "-wal", "wb") as f:
            f.write(data)

        conn = sqlite3.connect(tmp_path)
        try:
            row = conn.execute("PRAGMA wal_checkpoint(TRUNCATE)").fetchone()
            if row and row[0] != 0:
                raise RestoreError(f"checkpoint of wal {generation}/{index:08x} did not complete")
        finally:
            conn.close()

    def __repr__(self):
        return f"<Database {self.path!r}>"


def _remove_quietly(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
