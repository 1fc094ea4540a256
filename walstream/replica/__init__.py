import re
from urllib.parse import urlparse

from walstream.errors import ReplicaURLError
from walstream.replica.base import Replica, SnapshotInfo, WALSegmentInfo
from walstream.replica.file import FileReplica

_URL_RE = re.compile(r"^\w+://")


def is_url(value):
    """True if value looks like a replica URL (scheme://...)."""
    return bool(_URL_RE.match(value))


def create_replica(rc):
    """Create a replica from a ReplicaConfig."""
    if rc.type == "s3":
        from walstream.replica.s3 import S3Replica
        return S3Replica(rc.name, rc.bucket, rc.path, region=rc.region, endpoint=rc.endpoint)

    if rc.type == "file":
        return FileReplica(rc.name, rc.path)

    raise ValueError(f"Unknown replica type: {rc.type!r}. Use 'file' or 's3'.")


def replica_from_url(url):
    """Create a standalone replica from a URL.

    Supported:
        file:///path/to/replica
        s3://bucket/optional/prefix
    """
    try:
        u = urlparse(url)
    except ValueError as e:
        raise ReplicaURLError(f"invalid replica url: {url}: {e}") from None

    if u.scheme == "file":
        if not u.path:
            raise ReplicaURLError(f"file replica url requires a path: {url}")
        return FileReplica("file", u.path)

    if u.scheme == "s3":
        if not u.netloc:
            raise ReplicaURLError(f"s3 replica url requires a bucket: {url}")
        from walstream.replica.s3 import S3Replica
        return S3Replica("s3", u.netloc, u.path)

    raise ReplicaURLError(f"unsupported replica url scheme: {u.scheme!r}. Use 'file' or 's3'.")


__all__ = [
    "FileReplica",
    "Replica",
    "SnapshotInfo",
    "WALSegmentInfo",
    "create_replica",
    "is_url",
    "replica_from_url",
]
