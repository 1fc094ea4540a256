import os
from pathlib import Path
from dotenv import dotenv_values, set_key

CREDENTIALS_FILE = Path.home() / ".walstream" / "credentials"


def load_credentials():
    """Load credentials from ~/.walstream/credentials into os.environ.

    Holds replica backend auth (AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, ...)
    so boto3 finds it without exported env vars. Format: KEY=VALUE, one per
    line. Variables already set in the environment win.
    """
    if not CREDENTIALS_FILE.exists():
        return {}

    creds = {k: v for k, v in dotenv_values(CREDENTIALS_FILE).items() if v is not None}
    for key, value in creds.items():
        if key not in os.environ:
            os.environ[key] = value
    return creds


def save_credential(key, value):
    """Save or update a single credential and export it to this process."""
    CREDENTIALS_FILE.parent.mkdir(parents=True, exist_ok=True)
    CREDENTIALS_FILE.parent.chmod(0o700)
    CREDENTIALS_FILE.touch(mode=0o600, exist_ok=True)
    set_key(CREDENTIALS_FILE, key, value, quote_mode="never")
    CREDENTIALS_FILE.chmod(0o600)
    os.environ[key] = value
