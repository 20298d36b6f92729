import pytest

from journal_service.errors import NotFoundError, ValidationError
from journal_service.version_repository import GitVersionRepository

PATH = "journal-1/2025-12-01.md"


@pytest.mark.asyncio
async def test_first_access_creates_repository_with_root_commit(versions, tmp_path):
    assert await versions.list_commits_touching("user-1", PATH) == []
    assert (tmp_path / "git" / "user-1" / ".git").is_dir()
    assert await versions.read_file_at("user-1", ".gitkeep") == b""


@pytest.mark.asyncio
async def test_commit_and_read_back(versions):
    commit = await versions.commit_file("user-1", PATH, "Version 1", "Entry for 2025-12-01")

    assert len(commit) == 40
    assert await versions.read_file_at("user-1", PATH, commit) == b"Version 1"
    assert await versions.read_file_at("user-1", PATH) == b"Version 1"
    assert await versions.read_file_at("user-1", PATH, "latest") == b"Version 1"


@pytest.mark.asyncio
async def test_identical_content_does_not_create_a_commit(versions):
    first = await versions.commit_file("user-1", PATH, "same", "Entry for 2025-12-01")
    again = await versions.commit_file("user-1", PATH, "same", "Update entry for 2025-12-01")

    assert again == first
    assert len(await versions.list_commits_touching("user-1", PATH)) == 1


@pytest.mark.asyncio
async def test_unchanged_file_keeps_its_own_commit_after_other_writes(versions):
    first = await versions.commit_file("user-1", PATH, "same", "Entry for 2025-12-01")
    await versions.commit_file("user-1", "journal-1/2025-12-02.md", "other", "Entry for 2025-12-02")

    assert await versions.commit_file("user-1", PATH, "same", "Update") == first


@pytest.mark.asyncio
async def test_history_is_oldest_first_and_scoped_to_path(versions):
    c1 = await versions.commit_file("user-1", PATH, "Version 1", "Entry for 2025-12-01")
    await versions.commit_file("user-1", "journal-1/2025-12-02.md", "other", "Entry for 2025-12-02")
    c2 = await versions.commit_file("user-1", PATH, "Version 2", "Update entry for 2025-12-01")

    history = await versions.list_commits_touching("user-1", PATH)

    assert [item.commit_hash for item in history] == [c1, c2]
    assert [item.message for item in history] == [
        "Entry for 2025-12-01",
        "Update entry for 2025-12-01",
    ]
    assert history[0].author_name == versions.author_name
    assert history[0].author_email == versions.author_email
    assert history[0].created_at <= history[1].created_at
    assert await versions.read_file_at("user-1", PATH, c1) == b"Version 1"


@pytest.mark.asyncio
async def test_users_have_isolated_histories(versions):
    commit = await versions.commit_file("user-1", PATH, "mine", "Entry")

    assert await versions.list_commits_touching("user-2", PATH) == []
    with pytest.raises(NotFoundError):
        await versions.read_file_at("user-2", PATH, commit)


@pytest.mark.asyncio
async def test_unknown_commit_or_path_is_not_found(versions):
    commit = await versions.commit_file("user-1", PATH, "text", "Entry")

    with pytest.raises(NotFoundError):
        await versions.read_file_at("user-1", PATH, "0" * 40)
    with pytest.raises(NotFoundError):
        await versions.read_file_at("user-1", PATH, "--upload-pack=evil")
    with pytest.raises(NotFoundError):
        await versions.read_file_at("user-1", "journal-1/2030-01-01.md", commit)


@pytest.mark.asyncio
async def test_rejects_paths_and_users_outside_the_tree(versions):
    with pytest.raises(ValidationError):
        await versions.commit_file("user-1", "../escape.md", "x", "m")
    with pytest.raises(ValidationError):
        await versions.commit_file("../other", PATH, "x", "m")


@pytest.mark.parametrize("user_sub", ["bad user", "..", "a/b", ""])
def test_validate_user_rejects_unusable_identities(user_sub):
    with pytest.raises(ValidationError):
        GitVersionRepository.validate_user(user_sub)


def test_validate_user_accepts_provider_subjects():
    GitVersionRepository.validate_user("auth0|64f1c2")
