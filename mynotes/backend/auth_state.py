"""
Authentication events and states.

Both sets are closed: AuthEvent and AuthState are Union aliases over frozen
dataclasses, so consumers dispatch with ``match`` or ``isinstance`` over a
known list of variants.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .domain import AuthUser
from .exceptions import AuthError


# -------------------------------
# Events
# -------------------------------

@dataclass(frozen=True)
class AuthEventInitialize:
    pass


@dataclass(frozen=True)
class AuthEventLogIn:
    email: str
    password: str

    def __repr__(self) -> str:
        return f"AuthEventLogIn(email={self.email!r})"


@dataclass(frozen=True)
class AuthEventLogOut:
    pass


@dataclass(frozen=True)
class AuthEventShouldRegister:
    pass


@dataclass(frozen=True)
class AuthEventRegister:
    email: str
    password: str

    def __repr__(self) -> str:
        return f"AuthEventRegister(email={self.email!r})"


@dataclass(frozen=True)
class AuthEventForgotPassword:
    email: Optional[str] = None


@dataclass(frozen=True)
class AuthEventSendEmailVerification:
    pass


AuthEvent = Union[
    AuthEventInitialize,
    AuthEventLogIn,
    AuthEventLogOut,
    AuthEventShouldRegister,
    AuthEventRegister,
    AuthEventForgotPassword,
    AuthEventSendEmailVerification,
]


# -------------------------------
# States
# -------------------------------

@dataclass(frozen=True)
class AuthStateLoading:
    pass


@dataclass(frozen=True)
class AuthStateLoggedOut:
    exception: Optional[AuthError] = None
    is_loading: bool = False


@dataclass(frozen=True)
class AuthStateNeedsVerification:
    exception: Optional[AuthError] = None


@dataclass(frozen=True)
class AuthStateLoggedIn:
    user: AuthUser


@dataclass(frozen=True)
class AuthStateForgotPassword:
    exception: Optional[AuthError] = None
    has_sent_email: bool = False
    is_loading: bool = False


@dataclass(frozen=True)
class AuthStateLogoutFailure:
    exception: AuthError


@dataclass(frozen=True)
class AuthStateRegistering:
    exception: Optional[AuthError] = None
    is_loading: bool = False


AuthState = Union[
    AuthStateLoading,
    AuthStateLoggedOut,
    AuthStateNeedsVerification,
    AuthStateLoggedIn,
    AuthStateForgotPassword,
    AuthStateLogoutFailure,
    AuthStateRegistering,
]


def state_name(state: AuthState) -> str:
    """Short snake_case name of a state variant."""
    match state:
        case AuthStateLoading():
            return "loading"
        case AuthStateLoggedOut():
            return "logged_out"
        case AuthStateNeedsVerification():
            return "needs_verification"
        case AuthStateLoggedIn():
            return "logged_in"
        case AuthStateForgotPassword():
            return "forgot_password"
        case AuthStateLogoutFailure():
            return "logout_failure"
        case AuthStateRegistering():
            return "registering"
    raise TypeError(f"Unknown auth state: {state!r}")
