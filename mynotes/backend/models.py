from typing import List, Optional

from pydantic import BaseModel, EmailStr

from .auth_state import (
    AuthState,
    AuthStateForgotPassword,
    AuthStateLoading,
    AuthStateLoggedIn,
    AuthStateLoggedOut,
    AuthStateLogoutFailure,
    AuthStateNeedsVerification,
    AuthStateRegistering,
    state_name,
)
from .domain import DatabaseNote, DatabaseUser
from .exceptions import MyNotesError
from .messages import PASSWORD_RESET_FAILED_MESSAGE, PASSWORD_RESET_SENT_MESSAGE, error_message


class UserCreds(BaseModel):
    email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class UserEmail(BaseModel):
    email: EmailStr


class NoteText(BaseModel):
    text: str


class ErrorInfo(BaseModel):
    kind: str
    message: str

    @classmethod
    def from_exception(
        cls, exception: Optional[MyNotesError], message: Optional[str] = None
    ) -> Optional["ErrorInfo"]:
        """Describe ``exception`` for the UI; ``message`` overrides the default text."""
        if exception is None:
            return None
        return cls(kind=exception.kind, message=message or error_message(exception))


class AuthStateResponse(BaseModel):
    state: str
    email: Optional[str] = None
    is_email_verified: Optional[bool] = None
    is_loading: bool = False
    has_sent_email: bool = False
    message: Optional[str] = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def from_state(cls, state: AuthState) -> "AuthStateResponse":
        response = cls(state=state_name(state))
        match state:
            case AuthStateLoading():
                pass
            case AuthStateLoggedIn(user=user):
                response.email = user.email
                response.is_email_verified = user.is_email_verified
            case AuthStateLoggedOut(exception=exception, is_loading=is_loading):
                response.is_loading = is_loading
                response.error = ErrorInfo.from_exception(exception)
            case AuthStateNeedsVerification(exception=exception):
                response.error = ErrorInfo.from_exception(exception)
            case AuthStateForgotPassword(
                exception=exception, has_sent_email=has_sent_email, is_loading=is_loading
            ):
                response.has_sent_email = has_sent_email
                response.is_loading = is_loading
                if has_sent_email:
                    response.message = PASSWORD_RESET_SENT_MESSAGE
                response.error = ErrorInfo.from_exception(exception, PASSWORD_RESET_FAILED_MESSAGE)
            case AuthStateLogoutFailure(exception=exception):
                response.error = ErrorInfo.from_exception(exception)
            case AuthStateRegistering(exception=exception, is_loading=is_loading):
                response.is_loading = is_loading
                response.error = ErrorInfo.from_exception(exception)
            case _:
                raise TypeError(f"Unknown auth state: {state!r}")
        return response


class UserResponse(BaseModel):
    success: bool
    id: int
    email: str

    @classmethod
    def from_user(cls, user: DatabaseUser) -> "UserResponse":
        return cls(success=True, id=user.id, email=user.email)


class NoteBody(BaseModel):
    id: int
    user_id: int
    text: str
    is_synced_with_cloud: bool

    @classmethod
    def from_note(cls, note: DatabaseNote) -> "NoteBody":
        return cls(**note.to_dict())


class NoteResponse(BaseModel):
    success: bool
    note: NoteBody


class NotesListResponse(BaseModel):
    success: bool
    notes: List[NoteBody]
    count: int


class MessageResponse(BaseModel):
    success: bool
    message: str


class DeleteAllResponse(BaseModel):
    success: bool
    deleted: int


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    detail: str
