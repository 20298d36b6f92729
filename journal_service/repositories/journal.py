from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ConflictError, StorageError
from ..models import Journal, JournalEntry, JournalVersion


def _journal_to_dict(journal: Journal) -> dict[str, Any]:
    return {
        "id": journal.id,
        "user_sub": journal.user_sub,
        "title": journal.title,
        "description": journal.description,
        "created_at": journal.created_at,
        "updated_at": journal.updated_at,
    }


def _entry_to_dict(entry: JournalEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "journal_id": entry.journal_id,
        "entry_date": entry.entry_date,
        "s3_key": entry.s3_key,
        "commit_hash": entry.git_commit_hash,
        "word_count": entry.word_count,
        "created_at": entry.created_at,
        "updated_at": entry.updated_at,
    }


def _version_to_dict(version: JournalVersion) -> dict[str, Any]:
    return {
        "id": version.id,
        "entry_id": version.entry_id,
        "commit_hash": version.commit_hash,
        "message": version.commit_message,
        "author_name": version.author_name,
        "author_email": version.author_email,
        "created_at": version.created_at,
    }


async def _commit(session: AsyncSession, what: str) -> None:
    """Commit the pending unit of work, rolling back on failure."""
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError(f"{what} conflicts with an existing record") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StorageError(f"failed to save {what}") from exc


class JournalRepository:
    """Relational metadata for journals, entries and version rows.

    Every write is its own transaction. Deleting a journal removes its entries
    and their version rows through ``ON DELETE CASCADE``.
    """

    # -------------------------------------------------------------------------
    # Journals
    # -------------------------------------------------------------------------

    async def create_journal(
        self,
        session: AsyncSession,
        *,
        user_sub: str,
        title: str,
        description: str | None,
    ) -> dict[str, Any]:
        journal = Journal(
            id=str(uuid4()),
            user_sub=user_sub,
            title=title,
            description=description or None,
        )
        session.add(journal)
        await _commit(session, "journal")
        await session.refresh(journal)
        return _journal_to_dict(journal)

    async def get_journal(
        self,
        session: AsyncSession,
        journal_id: str,
        user_sub: str,
    ) -> dict[str, Any] | None:
        """Get a journal only when it belongs to ``user_sub``."""
        result = await session.execute(
            select(Journal).where(Journal.id == journal_id, Journal.user_sub == user_sub)
        )
        journal = result.scalar_one_or_none()
        return _journal_to_dict(journal) if journal else None

    async def list_journals(
        self,
        session: AsyncSession,
        user_sub: str,
    ) -> list[dict[str, Any]]:
        result = await session.execute(
            select(Journal)
            .where(Journal.user_sub == user_sub)
            .order_by(Journal.created_at.desc())
        )
        return [_journal_to_dict(item) for item in result.scalars().all()]

    async def update_journal(
        self,
        session: AsyncSession,
        journal_id: str,
        user_sub: str,
        *,
        title: str,
        description: str | None,
    ) -> dict[str, Any] | None:
        result = await session.execute(
            select(Journal).where(Journal.id == journal_id, Journal.user_sub == user_sub)
        )
        journal = result.scalar_one_or_none()
        if journal is None:
            return None
        journal.title = title
        journal.description = description or None
        await _commit(session, "journal")
        await session.refresh(journal)
        return _journal_to_dict(journal)

    async def delete_journal(
        self,
        session: AsyncSession,
        journal_id: str,
        user_sub: str,
    ) -> bool:
        try:
            result = await session.execute(
                delete(Journal).where(Journal.id == journal_id, Journal.user_sub == user_sub)
            )
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageError("failed to delete journal") from exc
        await _commit(session, "journal")
        return result.rowcount > 0

    # -------------------------------------------------------------------------
    # Entries
    # -------------------------------------------------------------------------

    async def create_entry(
        self,
        session: AsyncSession,
        *,
        journal_id: str,
        entry_date: date,
        s3_key: str,
        commit_hash: str | None,
        word_count: int | None,
    ) -> dict[str, Any]:
        """Insert an entry row; a second row for the same day raises ConflictError."""
        entry = JournalEntry(
            id=str(uuid4()),
            journal_id=journal_id,
            entry_date=entry_date,
            s3_key=s3_key,
            git_commit_hash=commit_hash,
            word_count=word_count,
        )
        session.add(entry)
        await _commit(session, f"entry for {entry_date.isoformat()}")
        await session.refresh(entry)
        return _entry_to_dict(entry)

    async def get_entry_by_date(
        self,
        session: AsyncSession,
        journal_id: str,
        entry_date: date,
    ) -> dict[str, Any] | None:
        result = await session.execute(
            select(JournalEntry).where(
                JournalEntry.journal_id == journal_id,
                JournalEntry.entry_date == entry_date,
            )
        )
        entry = result.scalar_one_or_none()
        return _entry_to_dict(entry) if entry else None

    async def list_entries(
        self,
        session: AsyncSession,
        journal_id: str,
    ) -> list[dict[str, Any]]:
        result = await session.execute(
            select(JournalEntry)
            .where(JournalEntry.journal_id == journal_id)
            .order_by(JournalEntry.entry_date.desc())
        )
        return [_entry_to_dict(item) for item in result.scalars().all()]

    async def update_entry(
        self,
        session: AsyncSession,
        entry_id: str,
        *,
        commit_hash: str | None,
        word_count: int | None,
    ) -> dict[str, Any] | None:
        result = await session.execute(
            select(JournalEntry).where(JournalEntry.id == entry_id)
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            return None
        entry.git_commit_hash = commit_hash
        entry.word_count = word_count
        await _commit(session, "entry")
        await session.refresh(entry)
        return _entry_to_dict(entry)

    async def delete_entry(self, session: AsyncSession, entry_id: str) -> bool:
        try:
            result = await session.execute(
                delete(JournalEntry).where(JournalEntry.id == entry_id)
            )
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageError("failed to delete entry") from exc
        await _commit(session, "entry")
        return result.rowcount > 0

    # -------------------------------------------------------------------------
    # Versions
    # -------------------------------------------------------------------------

    async def add_version(
        self,
        session: AsyncSession,
        *,
        entry_id: str,
        commit_hash: str,
        message: str | None,
        author_name: str | None,
        author_email: str | None,
        created_at: datetime | None = None,
    ) -> dict[str, Any]:
        version = JournalVersion(
            id=str(uuid4()),
            entry_id=entry_id,
            commit_hash=commit_hash,
            commit_message=message,
            author_name=author_name,
            author_email=author_email,
            created_at=created_at or datetime.now(timezone.utc),
        )
        session.add(version)
        await _commit(session, "version")
        return _version_to_dict(version)

    async def list_versions(
        self,
        session: AsyncSession,
        entry_id: str,
    ) -> list[dict[str, Any]]:
        result = await session.execute(
            select(JournalVersion)
            .where(JournalVersion.entry_id == entry_id)
            .order_by(JournalVersion.created_at.asc())
        )
        return [_version_to_dict(item) for item in result.scalars().all()]
