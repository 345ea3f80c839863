"""Human-readable text for errors shown to the user."""

from typing import Dict

from .exceptions import MyNotesError

GENERIC_MESSAGE = "An error occurred. Please try again."

ERROR_MESSAGES: Dict[str, str] = {
    # Authentication
    "invalid-email": "Invalid email",
    "weak-password": "Weak password",
    "email-already-in-use": "Email already in use",
    "user-not-found": "User not found",
    "wrong-password": "Wrong credentials",
    "requires-recent-login": "Please log in again to continue",
    "generic-auth-error": "Authentication error",
    # Local store
    "database-already-open": "The notes database is already open",
    "database-not-open": "The notes database is not open",
    "unable-to-get-documents-directory": "Could not find a place to store your notes",
    "could-not-open-database": "Could not open the notes database",
    "could-not-find-user": "User not found",
    "user-already-exists": "User already exists",
    "could-not-delete-user": "Could not delete user",
    "could-not-find-note": "Note not found",
    "could-not-update-note": "Could not update note",
    "could-not-delete-note": "Could not delete note",
}

PASSWORD_RESET_SENT_MESSAGE = "We have sent you an email with instructions to reset your password."
PASSWORD_RESET_FAILED_MESSAGE = "We could not process your request. Please try again."


def error_message(error: BaseException) -> str:
    """Message for ``error``, falling back to a generic one."""
    if isinstance(error, MyNotesError):
        return ERROR_MESSAGES.get(error.kind, GENERIC_MESSAGE)
    return GENERIC_MESSAGE
