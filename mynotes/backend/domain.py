from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

# Local store layout
NOTES_DB_NAME = "notes.db"
USER_TABLE = "user"
NOTE_TABLE = "note"
ID_COLUMN = "id"
EMAIL_COLUMN = "email"
USER_ID_COLUMN = "user_id"
TEXT_COLUMN = "text"
IS_SYNCED_WITH_CLOUD_COLUMN = "is_synced_with_cloud"

CREATE_USER_TABLE = """
CREATE TABLE IF NOT EXISTS "user" (
    "id" INTEGER NOT NULL,
    "email" TEXT NOT NULL UNIQUE,
    PRIMARY KEY("id" AUTOINCREMENT)
)
"""

CREATE_NOTE_TABLE = """
CREATE TABLE IF NOT EXISTS "note" (
    "id" INTEGER NOT NULL,
    "user_id" INTEGER NOT NULL,
    "text" TEXT,
    "is_synced_with_cloud" INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY("id" AUTOINCREMENT),
    FOREIGN KEY("user_id") REFERENCES "user"("id")
)
"""


@dataclass(frozen=True)
class AuthUser:
    """Authenticated identity, independent of the identity backend."""

    email: Optional[str]
    is_email_verified: bool

    @classmethod
    def from_identity(cls, record: Mapping[str, Any]) -> "AuthUser":
        """Build from an identity backend user record."""
        return cls(
            email=record.get("email"),
            is_email_verified=bool(record.get("email_verified")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"email": self.email, "is_email_verified": self.is_email_verified}


@dataclass(frozen=True)
class DatabaseUser:
    """Row of the ``user`` table."""

    id: int
    email: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "DatabaseUser":
        return cls(id=int(row[ID_COLUMN]), email=str(row[EMAIL_COLUMN]))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email}


@dataclass(frozen=True)
class DatabaseNote:
    """Row of the ``note`` table."""

    id: int
    user_id: int
    text: str
    is_synced_with_cloud: bool

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "DatabaseNote":
        return cls(
            id=int(row[ID_COLUMN]),
            user_id=int(row[USER_ID_COLUMN]),
            text=row[TEXT_COLUMN] or "",
            is_synced_with_cloud=row[IS_SYNCED_WITH_CLOUD_COLUMN] == 1,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert note to dictionary representation."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "text": self.text,
            "is_synced_with_cloud": self.is_synced_with_cloud,
        }
