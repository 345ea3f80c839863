"""Tests for user-facing error messages."""

import pytest

from mynotes.backend.exceptions import (
    CouldNotFindNoteError,
    EmailAlreadyInUseAuthError,
    GenericAuthError,
    IdentityError,
    UserNotFoundAuthError,
)
from mynotes.backend.messages import GENERIC_MESSAGE, error_message


@pytest.mark.parametrize("error, message", [
    (UserNotFoundAuthError(), "User not found"),
    (EmailAlreadyInUseAuthError(), "Email already in use"),
    (GenericAuthError(), "Authentication error"),
    (CouldNotFindNoteError(), "Note not found"),
])
def test_tailored_messages(error, message):
    assert error_message(error) == message


def test_fallback_message():
    assert error_message(IdentityError("quota-exceeded")) == GENERIC_MESSAGE
    assert error_message(ValueError("boom")) == GENERIC_MESSAGE
