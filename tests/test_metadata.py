from datetime import date

import pytest

from journal_service.errors import ConflictError

DAY = date(2025, 12, 1)


async def _make_entry(session, repo, journal_id, day=DAY):
    return await repo.create_entry(
        session,
        journal_id=journal_id,
        entry_date=day,
        s3_key=f"user-1/{journal_id}/{day.isoformat()}.md",
        commit_hash="a" * 40,
        word_count=2,
    )


@pytest.mark.asyncio
async def test_journal_is_scoped_to_owner(session, repo):
    journal = await repo.create_journal(session, user_sub="user-1", title="J", description=None)

    assert (await repo.get_journal(session, journal["id"], "user-1"))["title"] == "J"
    assert await repo.get_journal(session, journal["id"], "user-2") is None
    assert [item["id"] for item in await repo.list_journals(session, "user-1")] == [journal["id"]]
    assert await repo.list_journals(session, "user-2") == []


@pytest.mark.asyncio
async def test_update_journal(session, repo):
    journal = await repo.create_journal(session, user_sub="user-1", title="J", description="d")

    updated = await repo.update_journal(
        session, journal["id"], "user-1", title="Renamed", description=None
    )

    assert updated["title"] == "Renamed"
    assert updated["description"] is None
    assert await repo.update_journal(session, journal["id"], "user-2", title="x", description=None) is None


@pytest.mark.asyncio
async def test_duplicate_entry_date_conflicts(session, repo):
    journal = await repo.create_journal(session, user_sub="user-1", title="J", description=None)
    await _make_entry(session, repo, journal["id"])

    with pytest.raises(ConflictError):
        await _make_entry(session, repo, journal["id"])

    entries = await repo.list_entries(session, journal["id"])
    assert len(entries) == 1


@pytest.mark.asyncio
async def test_journal_delete_cascades_to_entries_and_versions(session, repo):
    journal = await repo.create_journal(session, user_sub="user-1", title="J", description=None)
    entry = await _make_entry(session, repo, journal["id"])
    await repo.add_version(
        session,
        entry_id=entry["id"],
        commit_hash="a" * 40,
        message="Entry for 2025-12-01",
        author_name="System",
        author_email="system@example.com",
    )

    assert await repo.delete_journal(session, journal["id"], "user-1") is True

    assert await repo.get_entry_by_date(session, journal["id"], DAY) is None
    assert await repo.list_versions(session, entry["id"]) == []
    assert await repo.delete_journal(session, journal["id"], "user-1") is False


@pytest.mark.asyncio
async def test_entry_delete_cascades_to_versions(session, repo):
    journal = await repo.create_journal(session, user_sub="user-1", title="J", description=None)
    entry = await _make_entry(session, repo, journal["id"])
    await repo.add_version(
        session,
        entry_id=entry["id"],
        commit_hash="a" * 40,
        message=None,
        author_name=None,
        author_email=None,
    )

    assert await repo.delete_entry(session, entry["id"]) is True
    assert await repo.list_versions(session, entry["id"]) == []


@pytest.mark.asyncio
async def test_version_commit_is_unique_per_entry(session, repo):
    journal = await repo.create_journal(session, user_sub="user-1", title="J", description=None)
    entry = await _make_entry(session, repo, journal["id"])
    kwargs = dict(entry_id=entry["id"], commit_hash="b" * 40, message=None, author_name=None, author_email=None)
    await repo.add_version(session, **kwargs)

    with pytest.raises(ConflictError):
        await repo.add_version(session, **kwargs)
    assert len(await repo.list_versions(session, entry["id"])) == 1


@pytest.mark.asyncio
async def test_update_entry_replaces_commit_and_word_count(session, repo):
    journal = await repo.create_journal(session, user_sub="user-1", title="J", description=None)
    entry = await _make_entry(session, repo, journal["id"])

    updated = await repo.update_entry(session, entry["id"], commit_hash="c" * 40, word_count=7)

    assert updated["commit_hash"] == "c" * 40
    assert updated["word_count"] == 7
    assert updated["s3_key"] == entry["s3_key"]
    assert await repo.update_entry(session, "missing", commit_hash=None, word_count=None) is None
