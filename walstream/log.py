"""Restore audit trail in ~/.walstream/logs.jsonl.

One JSON object per line, one line per restore that actually wrote a
database. ``timestamp`` is when the restore finished; ``target_time`` is the
point in time that was requested, or null for "latest".
"""

import json
from datetime import datetime, timezone
from pathlib import Path

from walstream.options import format_timestamp

LOGS_FILE = Path.home() / ".walstream" / "logs.jsonl"


def restore_entry(database_path, result, target_time=None):
    """Build the audit entry for a finished restore."""
    return {
        "event": "restore",
        "timestamp": format_timestamp(datetime.now(timezone.utc)),
        "database": database_path,
        "output": result.output_path,
        "replica": result.replica,
        "generation": result.generation,
        "snapshot_index": result.snapshot_index,
        "index": result.max_index,
        "target_time": format_timestamp(target_time) if target_time else None,
    }


def log_restore(database_path, result, target_time=None):
    """Record a restore. Dry runs wrote nothing and are not recorded."""
    if result.dry_run:
        return None
    entry = restore_entry(database_path, result, target_time)
    LOGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    with LOGS_FILE.open("a") as f:
        f.write(json.dumps(entry) + "\n")
    return entry
