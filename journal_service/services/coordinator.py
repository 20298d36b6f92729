from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ..content_store import ContentStore
from ..entry_text import (
    build_blob_key,
    build_entry_path,
    count_words,
    normalize_content,
    parse_entry_date,
)
from ..errors import ConflictError, NotFoundError, StorageError, ValidationError
from ..locks import UserLocks
from ..repositories import JournalRepository
from ..saga import EntrySaga, SagaState
from ..version_repository import CommitInfo, GitVersionRepository

LOGGER = logging.getLogger(__name__)


def _version_to_dict(commit: CommitInfo) -> dict[str, Any]:
    return {
        "commit_hash": commit.commit_hash,
        "message": commit.message,
        "author_name": commit.author_name,
        "author_email": commit.author_email,
        "created_at": commit.created_at,
    }


def _require_content(content: str | None) -> str:
    if content is None or content == "":
        raise ValidationError("content is required")
    return normalize_content(content)


class WriteCoordinator:
    """Keeps blob store, version repository and metadata rows in step.

    Writes run blob → commit → entry row → version row. There is no shared
    transaction; earlier steps are compensated when a later fatal step fails.
    Every mutation for a user runs inside that user's critical section.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        content_store: ContentStore,
        versions: GitVersionRepository,
        locks: UserLocks,
        repo: JournalRepository | None = None,
    ):
        self._session = session
        self._content = content_store
        self._versions = versions
        self._locks = locks
        self._repo = repo or JournalRepository()

    # -------------------------------------------------------------------------
    # Journals
    # -------------------------------------------------------------------------

    async def create_journal(
        self, user_sub: str, title: str, description: str | None = None
    ) -> dict[str, Any]:
        title = (title or "").strip()
        if not title:
            raise ValidationError("title is required")
        return await self._repo.create_journal(
            self._session, user_sub=user_sub, title=title, description=description
        )

    async def get_journal(self, user_sub: str, journal_id: str) -> dict[str, Any]:
        journal = await self._repo.get_journal(self._session, journal_id, user_sub)
        if journal is None:
            raise NotFoundError("journal not found")
        return journal

    async def list_journals(self, user_sub: str) -> list[dict[str, Any]]:
        return await self._repo.list_journals(self._session, user_sub)

    async def update_journal(
        self,
        user_sub: str,
        journal_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
    ) -> dict[str, Any]:
        existing = await self.get_journal(user_sub, journal_id)
        title = (title or "").strip() or existing["title"]
        updated = await self._repo.update_journal(
            self._session, journal_id, user_sub, title=title, description=description
        )
        if updated is None:
            raise NotFoundError("journal not found")
        return updated

    async def delete_journal(self, user_sub: str, journal_id: str) -> None:
        """Delete a journal with its entries; repository history is kept."""
        async with self._locks.hold(user_sub):
            await self.get_journal(user_sub, journal_id)
            entries = await self._repo.list_entries(self._session, journal_id)
            for entry in entries:
                await self._delete_blob_quietly(entry["s3_key"])
            deleted = await self._repo.delete_journal(self._session, journal_id, user_sub)
            if not deleted:
                raise NotFoundError("journal not found")
        LOGGER.info("Deleted journal %s with %s entries", journal_id, len(entries))

    # -------------------------------------------------------------------------
    # Entries
    # -------------------------------------------------------------------------

    async def list_entries(self, user_sub: str, journal_id: str) -> list[dict[str, Any]]:
        await self.get_journal(user_sub, journal_id)
        return await self._repo.list_entries(self._session, journal_id)

    async def create_entry(
        self, user_sub: str, journal_id: str, entry_date: str, content: str
    ) -> dict[str, Any]:
        day = parse_entry_date(entry_date)
        content = _require_content(content)
        self._versions.validate_user(user_sub)
        async with self._locks.hold(user_sub):
            await self.get_journal(user_sub, journal_id)
            existing = await self._repo.get_entry_by_date(self._session, journal_id, day)
            if existing is not None:
                raise ConflictError(f"entry for date {day.isoformat()} already exists")

            word_count = count_words(content)
            key = build_blob_key(user_sub, journal_id, day)
            message = f"Entry for {day.isoformat()}"

            saga = EntrySaga(f"create {key}")
            async with saga:
                await self._content.put(key, content.encode("utf-8"))
                saga.advance(SagaState.BLOB_WRITTEN)
                saga.on_failure("delete blob", lambda: self._content.delete(key))

                commit_hash = await self._versions.commit_file(
                    user_sub, build_entry_path(journal_id, day), content, message
                )
                saga.advance(SagaState.COMMITTED)

                entry = await self._repo.create_entry(
                    self._session,
                    journal_id=journal_id,
                    entry_date=day,
                    s3_key=key,
                    commit_hash=commit_hash,
                    word_count=word_count,
                )
                saga.advance(SagaState.METADATA_WRITTEN)

            await self._record_version(saga, entry["id"], commit_hash, message)
        return entry

    async def update_entry(
        self, user_sub: str, journal_id: str, entry_date: str, content: str
    ) -> dict[str, Any]:
        day = parse_entry_date(entry_date)
        content = _require_content(content)
        self._versions.validate_user(user_sub)
        async with self._locks.hold(user_sub):
            await self.get_journal(user_sub, journal_id)
            entry = await self._require_entry(journal_id, day)

            word_count = count_words(content)
            message = f"Update entry for {day.isoformat()}"

            saga = EntrySaga(f"update {entry['s3_key']}")
            async with saga:
                await self._content.put(entry["s3_key"], content.encode("utf-8"))
                saga.advance(SagaState.BLOB_WRITTEN)

                commit_hash = await self._versions.commit_file(
                    user_sub, build_entry_path(journal_id, day), content, message
                )
                saga.advance(SagaState.COMMITTED)

                unchanged = commit_hash == entry["commit_hash"]
                if not unchanged or entry["word_count"] != word_count:
                    updated = await self._repo.update_entry(
                        self._session,
                        entry["id"],
                        commit_hash=commit_hash,
                        word_count=word_count,
                    )
                    if updated is None:
                        raise NotFoundError("entry not found")
                    entry = updated
                saga.advance(SagaState.METADATA_WRITTEN)

            if unchanged:
                LOGGER.info("Entry %s unchanged at %s", entry["id"], commit_hash)
            else:
                await self._record_version(saga, entry["id"], commit_hash, message)
        return entry

    async def delete_entry(self, user_sub: str, journal_id: str, entry_date: str) -> None:
        day = parse_entry_date(entry_date)
        async with self._locks.hold(user_sub):
            await self.get_journal(user_sub, journal_id)
            entry = await self._require_entry(journal_id, day)
            await self._delete_blob_quietly(entry["s3_key"])
            if not await self._repo.delete_entry(self._session, entry["id"]):
                raise NotFoundError("entry not found")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_entry(self, user_sub: str, journal_id: str, entry_date: str) -> dict[str, Any]:
        """Entry metadata plus its current text, read from the blob store."""
        day = parse_entry_date(entry_date)
        await self.get_journal(user_sub, journal_id)
        entry = await self._require_entry(journal_id, day)
        body = await self._content.get(entry["s3_key"])
        return {"entry": entry, "content": body.decode("utf-8")}

    async def list_versions(
        self, user_sub: str, journal_id: str, entry_date: str
    ) -> list[dict[str, Any]]:
        day = parse_entry_date(entry_date)
        await self.get_journal(user_sub, journal_id)
        await self._require_entry(journal_id, day)
        commits = await self._versions.list_commits_touching(
            user_sub, build_entry_path(journal_id, day)
        )
        return [_version_to_dict(commit) for commit in commits]

    async def get_version(
        self, user_sub: str, journal_id: str, entry_date: str, commit_hash: str
    ) -> dict[str, Any]:
        """Entry text as of ``commit_hash``, read from the version repository."""
        day = parse_entry_date(entry_date)
        await self.get_journal(user_sub, journal_id)
        await self._require_entry(journal_id, day)
        body = await self._versions.read_file_at(
            user_sub, build_entry_path(journal_id, day), commit_hash
        )
        return {"commit_hash": commit_hash, "content": body.decode("utf-8")}

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _require_entry(self, journal_id: str, day: date) -> dict[str, Any]:
        entry = await self._repo.get_entry_by_date(self._session, journal_id, day)
        if entry is None:
            raise NotFoundError("entry not found")
        return entry

    async def _delete_blob_quietly(self, key: str) -> None:
        try:
            await self._content.delete(key)
        except StorageError:
            LOGGER.warning("Failed to delete blob %s", key, exc_info=True)

    async def _record_version(
        self, saga: EntrySaga, entry_id: str, commit_hash: str, message: str
    ) -> None:
        try:
            await self._repo.add_version(
                self._session,
                entry_id=entry_id,
                commit_hash=commit_hash,
                message=message,
                author_name=self._versions.author_name,
                author_email=self._versions.author_email,
            )
        except Exception:
            LOGGER.warning(
                "Failed to record version %s for entry %s", commit_hash, entry_id, exc_info=True
            )
            return
        saga.advance(SagaState.VERSION_RECORDED)
