import hashlib
import uuid
from datetime import datetime, UTC
from pathlib import Path
from typing import Optional

APP_DIR_NAME = ".mynotes"


def make_id(prefix: str) -> str:
    """Generate a unique ID with a given prefix."""
    return f"{prefix}_{uuid.uuid4()}"


def time_now() -> str:
    """Return the current time in ISO format (UTC, no microseconds)."""
    return datetime.now(UTC).replace(microsecond=0).isoformat()


def hash_password(password: str) -> str:
    """Hash password using SHA-256."""
    return hashlib.sha256(password.encode()).hexdigest()


def resolve_documents_dir(configured: Optional[Path] = None) -> Path:
    """
    Return the directory that holds the application's SQLite files.

    Uses ``configured`` when given, otherwise ``~/.mynotes``. The directory
    is created if missing.

    Raises:
        RuntimeError: If the home directory cannot be determined
        OSError: If the directory cannot be created
    """
    directory = Path(configured) if configured is not None else Path.home() / APP_DIR_NAME
    directory.mkdir(parents=True, exist_ok=True)
    return directory
