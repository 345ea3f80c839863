"""
Error taxonomy for the notes application.

Three families live here:

- AuthError and its subclasses: the closed set of authentication failures
  the state machine understands. Only the identity adapter creates them.
- NotesStoreError and its subclasses: lifecycle and entity failures raised
  by the notes data-access layer straight to the caller.
- IdentityError: the identity backend's own error, identified by a
  string code. It never travels past the adapter.

Every class exposes a stable ``kind`` used for logging, HTTP error bodies and
user-facing message lookup.
"""


class MyNotesError(Exception):
    """Base class for every error raised by the application."""

    kind = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind.replace("-", " "))


# -------------------------------
# Authentication errors
# -------------------------------

class AuthError(MyNotesError):
    """Base class for authentication failures."""

    kind = "auth-error"


class InvalidEmailAuthError(AuthError):
    kind = "invalid-email"


class WeakPasswordAuthError(AuthError):
    kind = "weak-password"


class EmailAlreadyInUseAuthError(AuthError):
    kind = "email-already-in-use"


class UserNotFoundAuthError(AuthError):
    kind = "user-not-found"


class WrongPasswordAuthError(AuthError):
    kind = "wrong-password"


class RequiresRecentLoginAuthError(AuthError):
    kind = "requires-recent-login"


class GenericAuthError(AuthError):
    """Any authentication failure without a dedicated class."""

    kind = "generic-auth-error"


# -------------------------------
# Notes store errors
# -------------------------------

class NotesStoreError(MyNotesError):
    """Base class for local store failures."""

    kind = "store-error"


class DatabaseAlreadyOpenError(NotesStoreError):
    kind = "database-already-open"


class DatabaseIsNotOpenError(NotesStoreError):
    kind = "database-not-open"


class UnableToGetDocumentsDirectoryError(NotesStoreError):
    kind = "unable-to-get-documents-directory"


class CouldNotOpenDatabaseError(NotesStoreError):
    kind = "could-not-open-database"


class CouldNotFindUserError(NotesStoreError):
    kind = "could-not-find-user"


class UserAlreadyExistsError(NotesStoreError):
    kind = "user-already-exists"


class CouldNotDeleteUserError(NotesStoreError):
    kind = "could-not-delete-user"


class CouldNotFindNoteError(NotesStoreError):
    kind = "could-not-find-note"


class CouldNotUpdateNoteError(NotesStoreError):
    kind = "could-not-update-note"


class CouldNotDeleteNoteError(NotesStoreError):
    kind = "could-not-delete-note"


# -------------------------------
# Identity backend errors
# -------------------------------

class IdentityError(MyNotesError):
    """
    Error raised by the identity backend.

    The ``code`` attribute mirrors the backend's wire-level error codes
    (``"user-not-found"``, ``"wrong-password"`` ...). Callers outside the
    adapter never see this type.
    """

    kind = "identity-error"

    def __init__(self, code: str, message: str = ""):
        self.code = code
        super().__init__(message or code)
