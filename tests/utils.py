from contextlib import asynccontextmanager

import httpx

from journal_service.errors import CommitError, StorageError
from journal_service.main import app, get_coordinator
from journal_service.saga import SagaState


def build_mock_transport(handler):
    return httpx.MockTransport(handler)


def failing(exc: Exception):
    """An async callable that always raises ``exc``."""

    async def _fail(*args, **kwargs):
        raise exc

    return _fail


def storage_failure(message: str = "object store unavailable") -> StorageError:
    return StorageError(message)


def commit_failure(message: str = "repository unavailable") -> CommitError:
    return CommitError(message)


@asynccontextmanager
async def app_client(coordinator, user_sub: str | None = "user-1"):
    async def override_get_coordinator():
        return coordinator

    app.dependency_overrides[get_coordinator] = override_get_coordinator
    headers = {"X-User-Sub": user_sub} if user_sub else {}
    asgi_transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(
            transport=asgi_transport, base_url="http://test", headers=headers
        ) as client:
            yield client
    finally:
        app.dependency_overrides.clear()


def saga_states(records) -> list[SagaState]:
    """Saga transitions found in captured log records, in order."""
    return [SagaState(record.saga_state) for record in records if hasattr(record, "saga_state")]
