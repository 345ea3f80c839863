"""Test doubles shared by the test modules."""

import asyncio
from typing import Dict, List, Optional

from mynotes.backend.auth_machine import AuthStateMachine
from mynotes.backend.auth_provider import AuthProvider
from mynotes.backend.domain import AuthUser
from mynotes.backend.exceptions import (
    GenericAuthError,
    UserNotFoundAuthError,
    WrongPasswordAuthError,
)


class FakeAuthProvider(AuthProvider):
    """
    In-memory provider for state machine tests.

    ``foo@bar.com`` is an unknown account and ``foobar`` a wrong password;
    any other credentials sign in. ``failures`` maps a method name to the
    exception that method raises next.
    """

    def __init__(self, restored_user: Optional[AuthUser] = None, delay: float = 0.0):
        self.is_initialized = False
        self.delay = delay
        self.failures: Dict[str, Exception] = {}
        self.calls: List[str] = []
        self.verified_emails = set()
        self.drop_user_on_login = False
        self.verification_emails = 0
        self.reset_emails: List[str] = []
        self._user = restored_user

    async def _step(self, name: str):
        self.calls.append(name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.failures:
            raise self.failures.pop(name)

    async def initialize(self) -> None:
        await self._step("initialize")
        self.is_initialized = True

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._user

    async def log_in(self, email: str, password: str) -> AuthUser:
        await self._step("log_in")
        if not self.is_initialized:
            raise GenericAuthError("not initialized")
        if email == "foo@bar.com":
            raise UserNotFoundAuthError()
        if password == "foobar":
            raise WrongPasswordAuthError()
        user = AuthUser(email=email, is_email_verified=email in self.verified_emails)
        self._user = None if self.drop_user_on_login else user
        return user

    async def create_user(self, email: str, password: str) -> AuthUser:
        await self._step("create_user")
        return await self.log_in(email, password)

    async def log_out(self) -> None:
        await self._step("log_out")
        if self._user is None:
            raise UserNotFoundAuthError()
        self._user = None

    async def send_email_verification(self) -> None:
        await self._step("send_email_verification")
        if self._user is None:
            raise UserNotFoundAuthError()
        self.verification_emails += 1

    async def send_password_reset_email(self, email: str) -> None:
        await self._step("send_password_reset_email")
        if email == "foo@bar.com":
            raise UserNotFoundAuthError()
        self.reset_emails.append(email)


async def run_events(machine: AuthStateMachine, *events):
    """Dispatch ``events`` and return every state emitted while handling them."""
    subscription = machine.subscribe()
    for event in events:
        machine.dispatch(event)
    await machine.join()
    states = subscription.drain()
    subscription.close()
    return states

