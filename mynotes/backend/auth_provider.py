"""
Authentication provider contract.

Any identity backend used by the state machine must be wrapped in a class
implementing AuthProvider. Implementations translate backend users into
AuthUser and backend failures into AuthError subclasses; the state machine
relies on nothing else.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .domain import AuthUser


class AuthProvider(ABC):
    """Capabilities the authentication state machine needs from a backend."""

    @abstractmethod
    async def initialize(self) -> None:
        """
        Prepare the backend and restore any persisted session.

        Must be safe to call more than once.
        """

    @property
    @abstractmethod
    def current_user(self) -> Optional[AuthUser]:
        """The signed-in user, or None. Reads cached state only."""

    @abstractmethod
    async def log_in(self, email: str, password: str) -> AuthUser:
        """
        Sign in with email and password.

        Raises:
            AuthError: On any failure, mapped to the closed taxonomy
        """

    @abstractmethod
    async def create_user(self, email: str, password: str) -> AuthUser:
        """
        Register a new account and sign it in.

        Raises:
            AuthError: On any failure, mapped to the closed taxonomy
        """

    @abstractmethod
    async def log_out(self) -> None:
        """Sign the current user out."""

    @abstractmethod
    async def send_email_verification(self) -> None:
        """Send a verification email to the current user."""

    @abstractmethod
    async def send_password_reset_email(self, email: str) -> None:
        """Send a password reset email to ``email``."""
