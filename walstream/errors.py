"""Errors raised by walstream commands.

Usage and format errors are detected before any configuration is read.
Engine errors (RestoreError, backend failures) are never wrapped by the
command layer.
"""


class WalstreamError(Exception):
    """Base class for all walstream errors."""


class UsageError(WalstreamError):
    """Wrong number of positional arguments."""


class ConfigRequiredError(WalstreamError):
    pass


class ConfigError(WalstreamError):
    """Configuration file missing or malformed."""


class TimestampFormatError(WalstreamError, ValueError):
    pass


class DatabaseNotFoundError(WalstreamError, LookupError):
    def __init__(self, path):
        super().__init__(f"database not found in config: {path}")
        self.path = path


class ReplicaNotFoundError(WalstreamError, LookupError):
    def __init__(self, name, db_path):
        super().__init__(f'replica "{name}" not found for database "{db_path}"')
        self.name = name
        self.db_path = db_path


class ReplicaURLError(WalstreamError, ValueError):
    pass


class RestoreError(WalstreamError):
    pass
