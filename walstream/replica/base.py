import gzip
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

GENERATIONS_DIR = "generations"
SNAPSHOT_EXT = ".snapshot.gz"
WAL_EXT = ".wal.gz"

_GENERATION_RE = re.compile(r"^[0-9a-f]{16}$")
_SNAPSHOT_RE = re.compile(r"^([0-9a-f]{8})\.snapshot\.gz$")
_WAL_RE = re.compile(r"^([0-9a-f]{8})\.wal\.gz$")


@dataclass(frozen=True)
class SnapshotInfo:
    replica: str
    generation: str
    index: int
    size: int
    created_at: datetime


@dataclass(frozen=True)
class WALSegmentInfo:
    replica: str
    generation: str
    index: int
    size: int
    created_at: datetime


@dataclass(frozen=True)
class GenerationStats:
    name: str
    created_at: datetime
    updated_at: datetime


def is_generation_name(name):
    return bool(_GENERATION_RE.match(name))


def parse_snapshot_filename(filename):
    """Return the index encoded in a snapshot filename, or None."""
    m = _SNAPSHOT_RE.match(filename)
    return int(m.group(1), 16) if m else None


def parse_wal_filename(filename):
    """Return the index encoded in a WAL segment filename, or None."""
    m = _WAL_RE.match(filename)
    return int(m.group(1), 16) if m else None


def snapshot_filename(index):
    return f"{index:08x}{SNAPSHOT_EXT}"


def wal_filename(index):
    return f"{index:08x}{WAL_EXT}"


class Replica(ABC):
    """Base interface for replica backends.

    Layout, relative to the replica root:
        generations/<generation>/snapshots/<index:08x>.snapshot.gz
        generations/<generation>/wal/<index:08x>.wal.gz

    Implementations: FileReplica, S3Replica.
    """

    def __init__(self, name):
        self.name = name

    @abstractmethod
    def generations(self):
        """List generation names, sorted."""
        pass

    @abstractmethod
    def generation_snapshots(self, generation):
        """List SnapshotInfo for one generation, sorted by index."""
        pass

    @abstractmethod
    def wal_segments(self, generation):
        """List WALSegmentInfo for one generation, sorted by index."""
        pass

    @abstractmethod
    def _read(self, generation, kind, filename):
        """Return raw (compressed) bytes of a stored file, or None if missing."""
        pass

    def snapshots(self, generation=None):
        """List snapshots across all generations (or one), by generation then index."""
        names = [generation] if generation else self.generations()
        infos = []
        for name in names:
            infos.extend(self.generation_snapshots(name))
        return infos

    def read_snapshot(self, generation, index):
        data = self._read(generation, "snapshots", snapshot_filename(index))
        return gzip.decompress(data) if data is not None else None

    def read_wal_segment(self, generation, index):
        data = self._read(generation, "wal", wal_filename(index))
        return gzip.decompress(data) if data is not None else None

    def generation_stats(self, generation):
        """Creation and last-update times of a generation, or None if it is empty."""
        times = [s.created_at for s in self.generation_snapshots(generation)]
        times += [w.created_at for w in self.wal_segments(generation)]
        if not times:
            return None
        return GenerationStats(name=generation, created_at=min(times), updated_at=max(times))

    def __repr__(self):
        return f"<{type(self).__name__} {self.name!r}>"
