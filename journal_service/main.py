import logging

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from .content_store import get_content_store, shutdown_content_store, startup_content_store
from .database import get_session, shutdown_db, startup_db
from .errors import JournalError
from .locks import get_user_locks
from .schemas import (
    Entry,
    EntryContent,
    EntryCreate,
    EntryUpdate,
    Journal,
    JournalCreate,
    JournalUpdate,
    Version,
    VersionContent,
)
from .services import WriteCoordinator
from .version_repository import (
    get_version_repository,
    shutdown_version_repository,
    startup_version_repository,
)

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="LL Journal API")


@app.on_event("startup")
async def startup() -> None:
    await startup_content_store()
    await startup_version_repository()
    await startup_db()


@app.on_event("shutdown")
async def shutdown() -> None:
    await shutdown_content_store()
    await shutdown_version_repository()
    await shutdown_db()


@app.exception_handler(JournalError)
async def journal_error_handler(request: Request, exc: JournalError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def get_user_sub(x_user_sub: str | None = Header(default=None)) -> str:
    """Caller identity, set by the upstream auth proxy."""
    if not x_user_sub:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_sub


def get_coordinator(session: AsyncSession = Depends(get_session)) -> WriteCoordinator:
    return WriteCoordinator(
        session,
        content_store=get_content_store(),
        versions=get_version_repository(),
        locks=get_user_locks(),
    )


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/journals", response_model=Journal, status_code=201)
async def create_journal(
    request: JournalCreate,
    user_sub: str = Depends(get_user_sub),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    return await coordinator.create_journal(user_sub, request.title, request.description)


@app.get("/api/journals", response_model=list[Journal])
async def list_journals(
    user_sub: str = Depends(get_user_sub),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    return await coordinator.list_journals(user_sub)


@app.get("/api/journals/{journal_id}", response_model=Journal)
async def get_journal(
    journal_id: str,
    user_sub: str = Depends(get_user_sub),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    return await coordinator.get_journal(user_sub, journal_id)


@app.put("/api/journals/{journal_id}", response_model=Journal)
async def update_journal(
    journal_id: str,
    request: JournalUpdate,
    user_sub: str = Depends(get_user_sub),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    return await coordinator.update_journal(
        user_sub, journal_id, title=request.title, description=request.description
    )


@app.delete("/api/journals/{journal_id}", status_code=204)
async def delete_journal(
    journal_id: str,
    user_sub: str = Depends(get_user_sub),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    await coordinator.delete_journal(user_sub, journal_id)


@app.post("/api/journals/{journal_id}/entries", response_model=Entry, status_code=201)
async def create_entry(
    journal_id: str,
    request: EntryCreate,
    user_sub: str = Depends(get_user_sub),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    return await coordinator.create_entry(
        user_sub, journal_id, request.entry_date, request.content
    )


@app.get("/api/journals/{journal_id}/entries", response_model=list[Entry])
async def list_entries(
    journal_id: str,
    user_sub: str = Depends(get_user_sub),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    return await coordinator.list_entries(user_sub, journal_id)


@app.get("/api/journals/{journal_id}/entries/{entry_date}", response_model=EntryContent)
async def get_entry(
    journal_id: str,
    entry_date: str,
    user_sub: str = Depends(get_user_sub),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    return await coordinator.get_entry(user_sub, journal_id, entry_date)


@app.put("/api/journals/{journal_id}/entries/{entry_date}", response_model=Entry)
async def update_entry(
    journal_id: str,
    entry_date: str,
    request: EntryUpdate,
    user_sub: str = Depends(get_user_sub),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    return await coordinator.update_entry(user_sub, journal_id, entry_date, request.content)


@app.delete("/api/journals/{journal_id}/entries/{entry_date}", status_code=204)
async def delete_entry(
    journal_id: str,
    entry_date: str,
    user_sub: str = Depends(get_user_sub),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    await coordinator.delete_entry(user_sub, journal_id, entry_date)


@app.get(
    "/api/journals/{journal_id}/entries/{entry_date}/versions",
    response_model=list[Version],
)
async def list_versions(
    journal_id: str,
    entry_date: str,
    user_sub: str = Depends(get_user_sub),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    return await coordinator.list_versions(user_sub, journal_id, entry_date)


@app.get(
    "/api/journals/{journal_id}/entries/{entry_date}/versions/{commit_hash}",
    response_model=VersionContent,
)
async def get_version(
    journal_id: str,
    entry_date: str,
    commit_hash: str,
    user_sub: str = Depends(get_user_sub),
    coordinator: WriteCoordinator = Depends(get_coordinator),
):
    return await coordinator.get_version(user_sub, journal_id, entry_date, commit_hash)
