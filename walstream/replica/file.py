from datetime import datetime, timezone
from pathlib import Path

from walstream.replica.base import (
    GENERATIONS_DIR,
    Replica,
    SnapshotInfo,
    WALSegmentInfo,
    is_generation_name,
    parse_snapshot_filename,
    parse_wal_filename,
)


def _mtime(stat):
    return datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)


class FileReplica(Replica):
    """Replica stored in a local (or mounted) directory."""

    def __init__(self, name, path):
        super().__init__(name)
        self.path = Path(path)

    def generation_dir(self, generation):
        return self.path / GENERATIONS_DIR / generation

    def generations(self):
        root = self.path / GENERATIONS_DIR
        if not root.is_dir():
            return []
        return sorted(e.name for e in root.iterdir() if e.is_dir() and is_generation_name(e.name))

    def generation_snapshots(self, generation):
        snap_dir = self.generation_dir(generation) / "snapshots"
        if not snap_dir.is_dir():
            return []

        infos = []
        for entry in snap_dir.iterdir():
            index = parse_snapshot_filename(entry.name)
            if index is None:
                continue
            st = entry.stat()
            infos.append(SnapshotInfo(
                replica=self.name,
                generation=generation,
                index=index,
                size=st.st_size,
                created_at=_mtime(st),
            ))
        return sorted(infos, key=lambda s: s.index)

    def wal_segments(self, generation):
        wal_dir = self.generation_dir(generation) / "wal"
        if not wal_dir.is_dir():
            return []

        infos = []
        for entry in wal_dir.iterdir():
            index = parse_wal_filename(entry.name)
            if index is None:
                continue
            st = entry.stat()
            infos.append(WALSegmentInfo(
                replica=self.name,
                generation=generation,
                index=index,
                size=st.st_size,
                created_at=_mtime(st),
            ))
        return sorted(infos, key=lambda w: w.index)

    def _read(self, generation, kind, filename):
        target = self.generation_dir(generation) / kind / filename
        try:
            return target.read_bytes()
        except FileNotFoundError:
            return None
