"""
Authentication state machine.

AuthStateMachine turns a stream of AuthEvents into a stream of AuthStates.
Events are queued by ``dispatch`` and handled one at a time, in arrival
order, by a single worker task; a handler runs to completion (including its
awaits on the provider) before the next event starts, so state emissions of
two events never interleave.

Each emission replaces the current state and is published to every
subscriber. Authentication failures arrive as AuthError from the provider
and are stored on the emitted state; they never escape ``dispatch``.
"""

import asyncio
import contextlib
import logging
from typing import Optional

from .auth_provider import AuthProvider
from .auth_state import (
    AuthEvent,
    AuthEventForgotPassword,
    AuthEventInitialize,
    AuthEventLogIn,
    AuthEventLogOut,
    AuthEventRegister,
    AuthEventSendEmailVerification,
    AuthEventShouldRegister,
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
from .broadcast import Broadcast, Subscription
from .domain import AuthUser
from .exceptions import AuthError, GenericAuthError

logger = logging.getLogger(__name__)


class AuthStateMachine:
    """Serializes auth events and publishes the resulting states."""

    def __init__(self, provider: AuthProvider):
        self._provider = provider
        self._state: AuthState = AuthStateLoading()
        self._states: Broadcast[AuthState] = Broadcast("auth-state")
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    @property
    def state(self) -> AuthState:
        return self._state

    def subscribe(self) -> Subscription[AuthState]:
        """Observe every state emitted from now on."""
        return self._states.subscribe()

    def start(self) -> None:
        """Launch the worker task on the running event loop."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="auth-state-machine")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

    def dispatch(self, event: AuthEvent) -> None:
        """Queue ``event``; the worker handles it after every earlier event."""
        logger.debug("Dispatching %r", event)
        self._queue.put_nowait(event)
        self.start()

    async def join(self) -> None:
        """Wait until every dispatched event has been handled."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.handle(event)
            except Exception as e:
                logger.exception("Unexpected failure while handling %r", event)
                self._emit(AuthStateLoggedOut(exception=GenericAuthError(str(e))))
            finally:
                self._queue.task_done()

    def _emit(self, state: AuthState) -> None:
        logger.debug("Auth state -> %s", state_name(state))
        self._state = state
        self._states.publish(state)

    def _emit_for_user(self, user: Optional[AuthUser], missing: Optional[AuthError] = None) -> None:
        if user is None:
            self._emit(AuthStateLoggedOut(exception=missing))
        elif not user.is_email_verified:
            self._emit(AuthStateNeedsVerification())
        else:
            self._emit(AuthStateLoggedIn(user=user))

    async def handle(self, event: AuthEvent) -> None:
        """Run the transition for one event. Not serialized; use ``dispatch``."""
        match event:
            case AuthEventInitialize():
                await self._on_initialize()
            case AuthEventLogIn():
                await self._on_log_in(event)
            case AuthEventLogOut():
                await self._on_log_out()
            case AuthEventShouldRegister():
                self._emit(AuthStateRegistering())
            case AuthEventRegister():
                await self._on_register(event)
            case AuthEventForgotPassword():
                await self._on_forgot_password(event)
            case AuthEventSendEmailVerification():
                await self._on_send_email_verification()
            case _:
                raise TypeError(f"Unknown auth event: {event!r}")

    async def _on_initialize(self) -> None:
        try:
            await self._provider.initialize()
        except AuthError as e:
            self._emit(AuthStateLoggedOut(exception=e))
            return
        self._emit_for_user(self._provider.current_user)

    async def _on_log_in(self, event: AuthEventLogIn) -> None:
        self._emit(AuthStateLoggedOut(exception=None, is_loading=True))
        try:
            await self._provider.log_in(email=event.email, password=event.password)
        except AuthError as e:
            self._emit(AuthStateLoggedOut(exception=e))
            return
        self._emit_for_user(
            self._provider.current_user,
            missing=GenericAuthError("Signed in but no current user was reported"),
        )

    async def _on_log_out(self) -> None:
        self._emit(AuthStateLoading())
        try:
            await self._provider.log_out()
        except AuthError as e:
            self._emit(AuthStateLogoutFailure(exception=e))
            return
        self._emit(AuthStateLoggedOut())

    async def _on_register(self, event: AuthEventRegister) -> None:
        self._emit(AuthStateRegistering(is_loading=True))
        try:
            await self._provider.create_user(email=event.email, password=event.password)
            await self._provider.send_email_verification()
        except AuthError as e:
            self._emit(AuthStateRegistering(exception=e, is_loading=False))
            return
        self._emit(AuthStateRegistering(is_loading=False))
        self._emit(AuthStateNeedsVerification())

    async def _on_forgot_password(self, event: AuthEventForgotPassword) -> None:
        self._emit(AuthStateForgotPassword(is_loading=True))
        if event.email is None:
            self._emit(AuthStateForgotPassword(has_sent_email=False, is_loading=False))
            return
        try:
            await self._provider.send_password_reset_email(event.email)
        except AuthError as e:
            self._emit(AuthStateForgotPassword(exception=e, has_sent_email=False, is_loading=False))
            return
        self._emit(AuthStateForgotPassword(has_sent_email=True, is_loading=False))

    async def _on_send_email_verification(self) -> None:
        try:
            await self._provider.send_email_verification()
        except AuthError as e:
            self._emit(AuthStateNeedsVerification(exception=e))
            return
        match self._state:
            case AuthStateNeedsVerification():
                # Drop the error left by an earlier failed send
                self._emit(AuthStateNeedsVerification())
            case _:
                self._emit(self._state)
