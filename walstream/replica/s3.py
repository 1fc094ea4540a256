"""S3-backed replica.

Objects live under an optional key prefix:
    s3://<bucket>/<path>/generations/<generation>/snapshots/<index>.snapshot.gz
    s3://<bucket>/<path>/generations/<generation>/wal/<index>.wal.gz

Object size and LastModified come straight from the listing, so listing
snapshots never downloads one.

Requires boto3: pip install -e ".[aws]"
"""

from datetime import timezone

from walstream.replica.base import (
    GENERATIONS_DIR,
    Replica,
    SnapshotInfo,
    WALSegmentInfo,
    is_generation_name,
    parse_snapshot_filename,
    parse_wal_filename,
)


class S3Replica(Replica):
    """Replica stored in an S3 (or S3-compatible) bucket."""

    def __init__(self, name, bucket, path="", region=None, endpoint=None, client=None):
        super().__init__(name)
        self.bucket = bucket
        self.path = path.strip("/")
        self.region = region or None
        self.endpoint = endpoint or None
        self._client = client

    @property
    def _s3(self):
        if self._client is None:
            try:
                import boto3
            except ImportError:
                raise RuntimeError(
                    "boto3 is required for S3 replicas. "
                    "Install with: pip install -e '.[aws]'"
                )
            self._client = boto3.client("s3", region_name=self.region, endpoint_url=self.endpoint)
        return self._client

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def generations(self):
        prefix = self._key(GENERATIONS_DIR) + "/"
        names = set()
        for page in self._paginate(Prefix=prefix, Delimiter="/"):
            for cp in page.get("CommonPrefixes", []):
                name = cp["Prefix"][len(prefix):].rstrip("/")
                if is_generation_name(name):
                    names.add(name)
        return sorted(names)

    def generation_snapshots(self, generation):
        infos = []
        for obj in self._list(generation, "snapshots"):
            index = parse_snapshot_filename(obj["Key"].rsplit("/", 1)[-1])
            if index is None:
                continue
            infos.append(SnapshotInfo(
                replica=self.name,
                generation=generation,
                index=index,
                size=obj["Size"],
                created_at=_utc(obj["LastModified"]),
            ))
        return sorted(infos, key=lambda s: s.index)

    def wal_segments(self, generation):
        infos = []
        for obj in self._list(generation, "wal"):
            index = parse_wal_filename(obj["Key"].rsplit("/", 1)[-1])
            if index is None:
                continue
            infos.append(WALSegmentInfo(
                replica=self.name,
                generation=generation,
                index=index,
                size=obj["Size"],
                created_at=_utc(obj["LastModified"]),
            ))
        return sorted(infos, key=lambda w: w.index)

    def _read(self, generation, kind, filename):
        key = self._key(GENERATIONS_DIR, generation, kind, filename)
        try:
            response = self._s3.get_object(Bucket=self.bucket, Key=key)
        except Exception as e:
            error_code = (getattr(e, "response", None) or {}).get("Error", {}).get("Code", "")
            if error_code in ("NoSuchKey", "404"):
                return None
            if error_code == "NoSuchBucket":
                raise RuntimeError(f"S3 bucket '{self.bucket}' does not exist.") from e
            raise
        return response["Body"].read()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _key(self, *parts):
        return "/".join(p for p in (self.path, *parts) if p)

    def _paginate(self, **kwargs):
        paginator = self._s3.get_paginator("list_objects_v2")
        return paginator.paginate(Bucket=self.bucket, **kwargs)

    def _list(self, generation, kind):
        prefix = self._key(GENERATIONS_DIR, generation, kind) + "/"
        for page in self._paginate(Prefix=prefix):
            yield from page.get("Contents", [])

    def __repr__(self):
        return f"<S3Replica {self.name!r} s3://{self.bucket}/{self.path}>"


def _utc(value):
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
