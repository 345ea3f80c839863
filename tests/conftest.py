"""Pytest configuration and fixtures for mynotes tests."""

import pytest
import pytest_asyncio

from mynotes.backend.auth_machine import AuthStateMachine
from mynotes.backend.identity import IdentityAuthProvider, IdentityService
from mynotes.backend.notes_service import NotesService

from .fakes import FakeAuthProvider


@pytest.fixture
def provider():
    return FakeAuthProvider()


@pytest_asyncio.fixture
async def machine(provider):
    state_machine = AuthStateMachine(provider)
    yield state_machine
    await state_machine.stop()


@pytest_asyncio.fixture
async def notes_service(tmp_path):
    service = NotesService(data_dir=tmp_path)
    yield service
    if service.is_open:
        await service.close()


@pytest.fixture
def identity_backend(tmp_path):
    return IdentityService(db_path=str(tmp_path / "users.db"))


@pytest.fixture
def identity_provider(identity_backend):
    return IdentityAuthProvider(identity_backend)
