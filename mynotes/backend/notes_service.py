"""
Notes data-access layer.

NotesService is the single authority over the local SQLite store of users
and notes. Next to the connection it keeps an in-memory cache of every note
and a broadcast channel that receives a fresh snapshot of that cache after
each change, so observers never poll.

Consistency protocol for every mutating operation:

1. write to the database,
2. update the in-memory cache (only after the write succeeded),
3. publish the new cache snapshot.

Snapshots are immutable tuples; an observer can never see a cache that is
being modified. Public operations are serialized by an asyncio.Lock, so two
concurrent calls cannot interleave their cache updates. Blocking SQLite calls
run in worker threads; the cache and channel are only touched on the event
loop.

All operations open the store on first use; ``open()`` only needs to be
called explicitly to surface open failures early.
"""

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .broadcast import Broadcast, Subscription
from .domain import (
    CREATE_NOTE_TABLE,
    CREATE_USER_TABLE,
    NOTES_DB_NAME,
    DatabaseNote,
    DatabaseUser,
)
from .exceptions import (
    CouldNotDeleteNoteError,
    CouldNotDeleteUserError,
    CouldNotFindNoteError,
    CouldNotFindUserError,
    CouldNotOpenDatabaseError,
    CouldNotUpdateNoteError,
    DatabaseAlreadyOpenError,
    DatabaseIsNotOpenError,
    UnableToGetDocumentsDirectoryError,
    UserAlreadyExistsError,
)
from .utils import resolve_documents_dir

logger = logging.getLogger(__name__)

NotesSnapshot = Tuple[DatabaseNote, ...]
Statement = Tuple[str, Sequence[Any]]


class NotesService:
    """
    Local store for users and notes with a cache and change notifications.

    Args:
        data_dir: Directory for the database file; None uses the default location
        db_name: Database file name inside ``data_dir``
        cascade_user_delete: Delete a user's notes together with the user
        documents_dir: Resolver turning ``data_dir`` into an existing directory
    """

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        db_name: str = NOTES_DB_NAME,
        cascade_user_delete: bool = True,
        documents_dir: Callable[[Optional[Path]], Path] = resolve_documents_dir,
    ):
        self.data_dir = data_dir
        self.db_name = db_name
        self.cascade_user_delete = cascade_user_delete
        self.db_path: Optional[Path] = None
        self._documents_dir = documents_dir
        self._db: Optional[sqlite3.Connection] = None
        self._notes: List[DatabaseNote] = []
        self._notes_channel: Broadcast[NotesSnapshot] = Broadcast("notes")
        self._lock = asyncio.Lock()

    # -------------------------------
    # Cache and change notifications
    # -------------------------------

    @property
    def is_open(self) -> bool:
        return self._db is not None

    @property
    def subscriber_count(self) -> int:
        return self._notes_channel.subscriber_count

    @property
    def cached_notes(self) -> NotesSnapshot:
        return tuple(self._notes)

    def subscribe(self) -> Subscription[NotesSnapshot]:
        """Observe every cache snapshot published from now on (no replay)."""
        return self._notes_channel.subscribe()

    def _publish(self) -> None:
        self._notes_channel.publish(tuple(self._notes))

    async def _cache_notes(self) -> None:
        self._notes = await self._get_all_notes()
        self._publish()

    # -------------------------------
    # Connection lifecycle
    # -------------------------------

    async def open(self) -> None:
        """
        Open the store, create the schema and load the cache.

        Raises:
            DatabaseAlreadyOpenError: If a connection is already held
            UnableToGetDocumentsDirectoryError: If the storage directory cannot be resolved
            CouldNotOpenDatabaseError: If the file is not a usable SQLite database;
                the service stays closed
        """
        async with self._lock:
            await self._open()

    async def close(self) -> None:
        """
        Close the held connection.

        Raises:
            DatabaseIsNotOpenError: If no connection is held
        """
        async with self._lock:
            db = self._get_database_or_throw()
            await asyncio.to_thread(db.close)
            self._db = None
            logger.info("Notes database closed: %s", self.db_path)

    async def _open(self) -> None:
        if self._db is not None:
            raise DatabaseAlreadyOpenError()
        try:
            directory = await asyncio.to_thread(self._documents_dir, self.data_dir)
        except (OSError, RuntimeError) as e:
            raise UnableToGetDocumentsDirectoryError(str(e)) from e
        db_path = Path(directory) / self.db_name
        try:
            db = await asyncio.to_thread(sqlite3.connect, str(db_path), check_same_thread=False)
        except sqlite3.Error as e:
            raise CouldNotOpenDatabaseError(str(e)) from e
        db.row_factory = sqlite3.Row
        # Only a connection with a schema and a loaded cache counts as open
        self._db = db
        try:
            await self._execute((CREATE_USER_TABLE, ()), (CREATE_NOTE_TABLE, ()))
            await self._cache_notes()
        except sqlite3.Error as e:
            self._db = None
            await asyncio.to_thread(db.close)
            logger.error("Could not open notes database %s: %s", db_path, e)
            raise CouldNotOpenDatabaseError(str(e)) from e
        self.db_path = db_path
        logger.info("Notes database opened: %s (%d notes cached)", db_path, len(self._notes))

    async def _ensure_db_is_open(self) -> None:
        try:
            await self._open()
        except DatabaseAlreadyOpenError:
            pass

    def _get_database_or_throw(self) -> sqlite3.Connection:
        if self._db is None:
            raise DatabaseIsNotOpenError()
        return self._db

    async def _query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        db = self._get_database_or_throw()
        return await asyncio.to_thread(lambda: db.execute(sql, params).fetchall())

    async def _execute(self, *statements: Statement) -> List[Tuple[int, Optional[int]]]:
        """Run ``statements`` in one transaction; return (rowcount, lastrowid) per statement."""
        db = self._get_database_or_throw()

        def run() -> List[Tuple[int, Optional[int]]]:
            results = []
            try:
                for sql, params in statements:
                    cursor = db.execute(sql, params)
                    results.append((cursor.rowcount, cursor.lastrowid))
                db.commit()
            except sqlite3.Error:
                db.rollback()
                raise
            return results

        return await asyncio.to_thread(run)

    # -------------------------------
    # Users
    # -------------------------------

    async def get_user(self, email: str) -> DatabaseUser:
        """
        Raises:
            CouldNotFindUserError: If no user has this email
        """
        async with self._lock:
            await self._ensure_db_is_open()
            return await self._get_user(email)

    async def create_user(self, email: str) -> DatabaseUser:
        """
        Raises:
            UserAlreadyExistsError: If a user with this email exists
        """
        async with self._lock:
            await self._ensure_db_is_open()
            return await self._create_user(email)

    async def get_or_create_user(self, email: str) -> DatabaseUser:
        async with self._lock:
            await self._ensure_db_is_open()
            try:
                return await self._get_user(email)
            except CouldNotFindUserError:
                return await self._create_user(email)

    async def delete_user(self, email: str) -> None:
        """
        Delete the user with this email, and their notes when cascading.

        Raises:
            CouldNotDeleteUserError: Unless exactly one user row was deleted
        """
        async with self._lock:
            await self._ensure_db_is_open()
            email = email.lower()
            rows = await self._query("SELECT id FROM user WHERE email = ? LIMIT 1", (email,))
            user_id = rows[0]["id"] if rows else None

            statements: List[Statement] = []
            if self.cascade_user_delete and user_id is not None:
                statements.append(("DELETE FROM note WHERE user_id = ?", (user_id,)))
            statements.append(("DELETE FROM user WHERE email = ?", (email,)))
            results = await self._execute(*statements)

            if results[-1][0] != 1:
                raise CouldNotDeleteUserError()
            logger.info("User %s deleted", user_id)
            if self.cascade_user_delete:
                self._notes = [note for note in self._notes if note.user_id != user_id]
                self._publish()

    async def _get_user(self, email: str) -> DatabaseUser:
        rows = await self._query(
            "SELECT id, email FROM user WHERE email = ? LIMIT 1", (email.lower(),)
        )
        if not rows:
            raise CouldNotFindUserError()
        return DatabaseUser.from_row(rows[0])

    async def _create_user(self, email: str) -> DatabaseUser:
        email = email.lower()
        rows = await self._query("SELECT id FROM user WHERE email = ? LIMIT 1", (email,))
        if rows:
            raise UserAlreadyExistsError()
        try:
            [(_, user_id)] = await self._execute(("INSERT INTO user (email) VALUES (?)", (email,)))
        except sqlite3.IntegrityError as e:
            raise UserAlreadyExistsError() from e
        logger.info("User %s created", user_id)
        return DatabaseUser(id=user_id, email=email)

    # -------------------------------
    # Notes
    # -------------------------------

    async def create_note(self, owner: DatabaseUser) -> DatabaseNote:
        """
        Create an empty note owned by ``owner``.

        Raises:
            CouldNotFindUserError: If ``owner`` does not match the stored user
        """
        async with self._lock:
            await self._ensure_db_is_open()
            db_user = await self._get_user(owner.email)
            if db_user != owner:
                raise CouldNotFindUserError()

            text = ""
            [(_, note_id)] = await self._execute((
                "INSERT INTO note (user_id, text, is_synced_with_cloud) VALUES (?, ?, 0)",
                (owner.id, text),
            ))
            note = DatabaseNote(id=note_id, user_id=owner.id, text=text, is_synced_with_cloud=False)
            self._notes.append(note)
            self._publish()
            return note

    async def get_note(self, note_id: int) -> DatabaseNote:
        """
        Raises:
            CouldNotFindNoteError: If no note has this id
        """
        async with self._lock:
            await self._ensure_db_is_open()
            return await self._get_note(note_id)

    async def get_all_notes(self) -> List[DatabaseNote]:
        """Read every note from the store. The cache is left alone."""
        async with self._lock:
            await self._ensure_db_is_open()
            return await self._get_all_notes()

    async def update_note(self, note: DatabaseNote, text: str) -> DatabaseNote:
        """
        Replace the text of ``note`` and mark it as not synced.

        Raises:
            CouldNotFindNoteError: If the note no longer exists
            CouldNotUpdateNoteError: If no row was updated
        """
        async with self._lock:
            await self._ensure_db_is_open()
            await self._get_note(note.id)
            [(updated_count, _)] = await self._execute((
                "UPDATE note SET text = ?, is_synced_with_cloud = 0 WHERE id = ?",
                (text, note.id),
            ))
            if updated_count == 0:
                raise CouldNotUpdateNoteError()

            updated_note = await self._get_note(note.id)
            self._notes = [cached for cached in self._notes if cached.id != updated_note.id]
            self._notes.append(updated_note)
            self._publish()
            return updated_note

    async def delete_note(self, note_id: int) -> None:
        """
        Raises:
            CouldNotDeleteNoteError: If no note has this id
        """
        async with self._lock:
            await self._ensure_db_is_open()
            [(deleted_count, _)] = await self._execute(("DELETE FROM note WHERE id = ?", (note_id,)))
            if deleted_count == 0:
                raise CouldNotDeleteNoteError()
            self._notes = [note for note in self._notes if note.id != note_id]
            self._publish()

    async def delete_all_notes(self) -> int:
        """Delete every note and return how many were removed."""
        async with self._lock:
            await self._ensure_db_is_open()
            [(deleted_count, _)] = await self._execute(("DELETE FROM note", ()))
            self._notes = []
            self._publish()
            logger.info("Deleted all %d notes", deleted_count)
            return deleted_count

    async def _get_note(self, note_id: int) -> DatabaseNote:
        rows = await self._query("SELECT * FROM note WHERE id = ? LIMIT 1", (note_id,))
        if not rows:
            raise CouldNotFindNoteError()
        return DatabaseNote.from_row(rows[0])

    async def _get_all_notes(self) -> List[DatabaseNote]:
        rows = await self._query("SELECT * FROM note ORDER BY id")
        return [DatabaseNote.from_row(row) for row in rows]
