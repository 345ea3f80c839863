"""
FastAPI bridge between a user interface and the application core.

``create_app`` is the composition root: it builds exactly one NotesService
and one AuthStateMachine (unless they are passed in) and shares them with
every route. Auth routes only dispatch events and report the resulting
state; note routes call the data-access layer directly; ``/notes/stream``
forwards cache snapshots as server-sent events.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Type

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from .auth_machine import AuthStateMachine
from .auth_state import (
    AuthEvent,
    AuthEventForgotPassword,
    AuthEventInitialize,
    AuthEventLogIn,
    AuthEventLogOut,
    AuthEventRegister,
    AuthEventSendEmailVerification,
    AuthEventShouldRegister,
    state_name,
)
from .broadcast import Subscription
from .config import Settings, get_settings
from .exceptions import (
    CouldNotDeleteNoteError,
    CouldNotDeleteUserError,
    CouldNotFindNoteError,
    CouldNotFindUserError,
    CouldNotUpdateNoteError,
    NotesStoreError,
    UnableToGetDocumentsDirectoryError,
    UserAlreadyExistsError,
)
from .identity import IdentityAuthProvider, IdentityService
from .logging_config import setup_logging
from .messages import error_message
from .models import (
    AuthStateResponse,
    DeleteAllResponse,
    ErrorResponse,
    ForgotPasswordRequest,
    MessageResponse,
    NoteBody,
    NoteResponse,
    NotesListResponse,
    NoteText,
    UserCreds,
    UserEmail,
    UserResponse,
)
from .notes_service import NotesService, NotesSnapshot
from .utils import resolve_documents_dir, time_now

logger = logging.getLogger(__name__)

STATUS_CODES: Dict[Type[NotesStoreError], int] = {
    CouldNotFindUserError: 404,
    CouldNotFindNoteError: 404,
    UserAlreadyExistsError: 409,
    CouldNotUpdateNoteError: 400,
    CouldNotDeleteNoteError: 400,
    CouldNotDeleteUserError: 400,
}


async def note_stream_events(
    subscription: Subscription[NotesSnapshot],
    is_disconnected: Callable[[], Awaitable[bool]],
) -> AsyncIterator[str]:
    """
    Format each cache snapshot as one server-sent ``data:`` frame.

    The subscription is closed when the client disconnects or the response
    is torn down.
    """
    try:
        async for snapshot in subscription:
            if await is_disconnected():
                break
            yield f"data: {json.dumps([note.to_dict() for note in snapshot])}\n\n"
    finally:
        subscription.close()


def build_auth_machine(settings: Settings) -> AuthStateMachine:
    """
    State machine over an IdentityService stored next to the notes database.

    Raises:
        UnableToGetDocumentsDirectoryError: If the storage directory cannot be resolved
    """
    try:
        data_dir = resolve_documents_dir(settings.data_dir)
    except (OSError, RuntimeError) as e:
        raise UnableToGetDocumentsDirectoryError(str(e)) from e
    backend = IdentityService(
        db_path=str(data_dir / settings.identity_db_name),
        min_password_length=settings.min_password_length,
    )
    return AuthStateMachine(IdentityAuthProvider(backend))


def build_notes_service(settings: Settings) -> NotesService:
    return NotesService(
        data_dir=settings.data_dir,
        db_name=settings.notes_db_name,
        cascade_user_delete=settings.cascade_user_delete,
    )


def create_app(
    settings: Optional[Settings] = None,
    notes_service: Optional[NotesService] = None,
    auth_machine: Optional[AuthStateMachine] = None,
) -> FastAPI:
    settings = settings or get_settings()
    notes = notes_service or build_notes_service(settings)
    auth = auth_machine or build_auth_machine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("%s starting up...", settings.app_name)
        auth.start()
        yield
        logger.info("%s shutting down...", settings.app_name)
        await auth.stop()
        if notes.is_open:
            await notes.close()

    app = FastAPI(
        title=settings.app_name,
        description="Notes with authentication, backed by a local store",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.notes_service = notes
    app.state.auth_machine = auth

    @app.exception_handler(NotesStoreError)
    async def store_error_handler(request: Request, exc: NotesStoreError):
        status_code = STATUS_CODES.get(type(exc), 500)
        if status_code == 500:
            logger.error("Store failure on %s: %s", request.url.path, exc.kind)
        body = ErrorResponse(error=exc.kind, detail=error_message(exc))
        return JSONResponse(status_code=status_code, content=body.model_dump())

    # -------------------------------
    # Authentication
    # -------------------------------

    async def dispatch(event: AuthEvent, wait: bool) -> AuthStateResponse:
        auth.dispatch(event)
        if wait:
            await auth.join()
        return AuthStateResponse.from_state(auth.state)

    @app.get("/auth/state", response_model=AuthStateResponse)
    async def read_auth_state():
        return AuthStateResponse.from_state(auth.state)

    @app.post("/auth/initialize", response_model=AuthStateResponse)
    async def initialize(wait: bool = False):
        return await dispatch(AuthEventInitialize(), wait)

    @app.post("/auth/login", response_model=AuthStateResponse)
    async def login(creds: UserCreds, wait: bool = False):
        return await dispatch(AuthEventLogIn(email=creds.email, password=creds.password), wait)

    @app.post("/auth/logout", response_model=AuthStateResponse)
    async def logout(wait: bool = False):
        return await dispatch(AuthEventLogOut(), wait)

    @app.post("/auth/should-register", response_model=AuthStateResponse)
    async def should_register(wait: bool = False):
        return await dispatch(AuthEventShouldRegister(), wait)

    @app.post("/auth/register", response_model=AuthStateResponse)
    async def register(creds: UserCreds, wait: bool = False):
        return await dispatch(AuthEventRegister(email=creds.email, password=creds.password), wait)

    @app.post("/auth/forgot-password", response_model=AuthStateResponse)
    async def forgot_password(request: ForgotPasswordRequest, wait: bool = False):
        return await dispatch(AuthEventForgotPassword(email=request.email), wait)

    @app.post("/auth/send-email-verification", response_model=AuthStateResponse)
    async def send_email_verification(wait: bool = False):
        return await dispatch(AuthEventSendEmailVerification(), wait)

    # -------------------------------
    # Users
    # -------------------------------

    @app.post("/users", response_model=UserResponse)
    async def get_or_create_user(body: UserEmail):
        user = await notes.get_or_create_user(body.email)
        return UserResponse.from_user(user)

    @app.get("/users/{email}", response_model=UserResponse)
    async def get_user(email: str):
        return UserResponse.from_user(await notes.get_user(email))

    @app.delete("/users/{email}", response_model=MessageResponse)
    async def delete_user(email: str):
        await notes.delete_user(email)
        return MessageResponse(success=True, message="User deleted successfully")

    # -------------------------------
    # Notes
    # -------------------------------

    @app.post("/notes", response_model=NoteResponse)
    async def create_note(body: UserEmail):
        owner = await notes.get_user(body.email)
        note = await notes.create_note(owner)
        return NoteResponse(success=True, note=NoteBody.from_note(note))

    @app.get("/notes", response_model=NotesListResponse)
    async def list_notes():
        all_notes = [NoteBody.from_note(n) for n in await notes.get_all_notes()]
        return NotesListResponse(success=True, notes=all_notes, count=len(all_notes))

    @app.get("/notes/cache", response_model=NotesListResponse)
    async def cached_notes():
        cached = [NoteBody.from_note(n) for n in notes.cached_notes]
        return NotesListResponse(success=True, notes=cached, count=len(cached))

    @app.get("/notes/stream")
    async def stream_notes(request: Request):
        events = note_stream_events(notes.subscribe(), request.is_disconnected)
        return StreamingResponse(events, media_type="text/event-stream")

    @app.get("/notes/{note_id}", response_model=NoteResponse)
    async def get_note(note_id: int):
        note = await notes.get_note(note_id)
        return NoteResponse(success=True, note=NoteBody.from_note(note))

    @app.put("/notes/{note_id}", response_model=NoteResponse)
    async def update_note(note_id: int, body: NoteText):
        note = await notes.get_note(note_id)
        updated = await notes.update_note(note, body.text)
        return NoteResponse(success=True, note=NoteBody.from_note(updated))

    @app.delete("/notes/{note_id}", response_model=MessageResponse)
    async def delete_note(note_id: int):
        await notes.delete_note(note_id)
        return MessageResponse(success=True, message="Note deleted successfully")

    @app.delete("/notes", response_model=DeleteAllResponse)
    async def delete_all_notes():
        deleted = await notes.delete_all_notes()
        return DeleteAllResponse(success=True, deleted=deleted)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "timestamp": time_now(),
            "database_open": notes.is_open,
            "cached_notes": len(notes.cached_notes),
            "stream_subscribers": notes.subscriber_count,
            "auth_state": state_name(auth.state),
        }

    return app


def main():
    """Run the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
