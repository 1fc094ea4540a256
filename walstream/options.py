"""Restore options and the timestamp format shared by both commands."""

import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from rich.console import Console

from walstream.errors import TimestampFormatError

TIMESTAMP_EXAMPLE = "2000-01-01T00:00:00Z"

_RFC3339 = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_timestamp(value):
    """Parse an RFC 3339 timestamp into an aware datetime.

    Anything looser than RFC 3339 (a bare date, a missing offset, a space
    instead of ``T``) is rejected.
    """
    m = _RFC3339.match(value.strip()) if value else None
    if not m:
        raise TimestampFormatError(
            f"invalid -timestamp, must specify in ISO 8601 format (e.g. {TIMESTAMP_EXAMPLE})"
        )
    date, clock, fraction, offset = m.groups()
    # datetime only keeps microseconds
    fraction = "." + fraction[1:7].ljust(6, "0") if fraction else ""
    offset = "+00:00" if offset in ("Z", "z") else offset
    try:
        return datetime.fromisoformat(f"{date}T{clock}{fraction}{offset}")
    except ValueError:
        raise TimestampFormatError(
            f"invalid -timestamp, must specify in ISO 8601 format (e.g. {TIMESTAMP_EXAMPLE})"
        ) from None


def format_timestamp(value):
    """Format a datetime as RFC 3339 in UTC, e.g. 2000-01-01T00:00:00Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def narration_console():
    """Console used for restore narration. Writes timestamped lines to stderr."""
    return Console(stderr=True, highlight=False, log_path=False)


@dataclass(frozen=True)
class RestoreOptions:
    """Everything the engine needs to perform one restore.

    ``None`` means "not specified" for every optional field, so an epoch
    timestamp or index 0 are real selections.
    """

    output_path: Optional[str] = None
    replica_name: Optional[str] = None
    generation: Optional[str] = None
    index: Optional[int] = None
    timestamp: Optional[datetime] = None
    dry_run: bool = False
    verbose: bool = False
    logger: Any = None

    @classmethod
    def from_flags(cls, output_path=None, replica_name=None, generation=None,
                   index=None, timestamp=None, dry_run=False, verbose=False,
                   make_logger=narration_console):
        """Build options from raw command-line values.

        ``timestamp`` is the raw string; it is parsed here so a malformed value
        fails before any database is looked up. Dry run always narrates.
        """
        parsed_ts = parse_timestamp(timestamp) if timestamp else None
        if index is not None and index < 0:
            raise ValueError(f"invalid -index {index}, must be zero or greater")

        verbose = bool(verbose or dry_run)
        return cls(
            output_path=os.path.abspath(os.path.expanduser(output_path)) if output_path else None,
            replica_name=replica_name or None,
            generation=generation or None,
            index=index,
            timestamp=parsed_ts,
            dry_run=bool(dry_run),
            verbose=verbose,
            logger=make_logger() if verbose else None,
        )

    def log(self, message):
        """Narrate a restore step when verbose output is enabled."""
        if self.logger is not None:
            self.logger.log(message)
