"""Per-user commit history for entry files, backed by one git repository per user.

Every user gets an isolated repository under ``GIT_ROOT/<user_sub>``. It is
created lazily with an initial ``.gitkeep`` commit so that ``HEAD`` always
resolves before the first real write. Entry files live at
``<journal_id>/<YYYY-MM-DD>.md`` inside that tree.

The working tree is shared mutable state: callers must serialize writes for a
user (see :mod:`journal_service.locks`).
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath

from .errors import CommitError, NotFoundError, ValidationError

LOGGER = logging.getLogger(__name__)

GIT_ROOT = os.getenv("GIT_ROOT", "/var/lib/ll-journal/git")
GIT_BINARY = os.getenv("GIT_BINARY", "git")
SYSTEM_AUTHOR_NAME = os.getenv("JOURNAL_AUTHOR_NAME", "LifeLogger System")
SYSTEM_AUTHOR_EMAIL = os.getenv("JOURNAL_AUTHOR_EMAIL", "system@lifelogger.life")
INITIAL_COMMIT_MESSAGE = "Initial commit"

COMMIT_ID_PATTERN = re.compile(r"^[0-9a-f]{4,64}$")
USER_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9@._|:+-]+$")

# Unit and record separators keep multi-line commit messages parseable.
_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"
_LOG_FORMAT = _FIELD_SEP.join(["%H", "%an", "%ae", "%aI", "%B"]) + _RECORD_SEP

_repo_root: GitVersionRepository | None = None


@dataclass(frozen=True)
class CommitInfo:
    commit_hash: str
    message: str
    author_name: str
    author_email: str
    created_at: datetime


class _GitFailure(Exception):
    def __init__(self, args: tuple[str, ...], returncode: int, stderr: str):
        super().__init__(f"git {' '.join(args)} exited {returncode}: {stderr.strip()}")
        self.returncode = returncode
        self.stderr = stderr


class GitVersionRepository:
    def __init__(
        self,
        root_dir: str | Path,
        *,
        git_binary: str = GIT_BINARY,
        author_name: str = SYSTEM_AUTHOR_NAME,
        author_email: str = SYSTEM_AUTHOR_EMAIL,
    ):
        self._root = Path(root_dir)
        self._git = git_binary
        self.author_name = author_name
        self.author_email = author_email

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update(
            {
                "GIT_AUTHOR_NAME": self.author_name,
                "GIT_AUTHOR_EMAIL": self.author_email,
                "GIT_COMMITTER_NAME": self.author_name,
                "GIT_COMMITTER_EMAIL": self.author_email,
                "GIT_TERMINAL_PROMPT": "0",
                "GIT_CONFIG_NOSYSTEM": "1",
            }
        )
        return env

    async def _run(self, repo: Path, *args: str) -> bytes:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._git,
                "-c",
                "commit.gpgsign=false",
                "-c",
                "core.autocrlf=false",
                *args,
                cwd=str(repo),
                env=self._env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise CommitError(f"failed to run git: {exc}") from exc
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise _GitFailure(args, proc.returncode, stderr.decode("utf-8", "replace"))
        return stdout

    async def _succeeds(self, repo: Path, *args: str) -> bool:
        try:
            await self._run(repo, *args)
        except _GitFailure:
            return False
        return True

    @staticmethod
    def validate_user(user_sub: str) -> None:
        """Reject identities that cannot name a repository directory."""
        if not USER_SEGMENT_PATTERN.match(user_sub) or user_sub in {".", ".."}:
            raise ValidationError(f"unsupported user identity: {user_sub!r}")

    def _repo_path(self, user_sub: str) -> Path:
        self.validate_user(user_sub)
        return self._root / user_sub

    @staticmethod
    def _check_path(path: str) -> str:
        parts = PurePosixPath(path).parts
        if not parts or path.startswith("/") or ".." in parts or parts[0] == ".git":
            raise ValidationError(f"unsupported entry path: {path!r}")
        return path

    async def _ensure_repo(self, user_sub: str) -> Path:
        repo = self._repo_path(user_sub)
        if (repo / ".git").is_dir():
            return repo
        try:
            await asyncio.to_thread(repo.mkdir, parents=True, exist_ok=True)
            await self._run(repo, "init", "-q")
            await asyncio.to_thread((repo / ".gitkeep").write_bytes, b"")
            await self._run(repo, "add", "--", ".gitkeep")
            await self._run(repo, "commit", "-q", "-m", INITIAL_COMMIT_MESSAGE)
        except (OSError, _GitFailure) as exc:
            raise CommitError(f"failed to initialize repository for {user_sub}: {exc}") from exc
        LOGGER.info("Initialized version repository for user=%s", user_sub)
        return repo

    async def _last_commit_for(self, repo: Path, path: str) -> str:
        out = await self._run(repo, "log", "-1", "--format=%H", "--", path)
        commit = out.decode().strip()
        if commit:
            return commit
        out = await self._run(repo, "rev-parse", "HEAD")
        return out.decode().strip()

    async def commit_file(self, user_sub: str, path: str, content: str, message: str) -> str:
        """Record ``content`` at ``path`` and return the commit that holds it.

        Content identical to what is already recorded produces no new commit;
        the commit that last recorded ``path`` is returned instead.
        """
        path = self._check_path(path)
        repo = await self._ensure_repo(user_sub)
        target = repo / path
        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(target.write_bytes, content.encode("utf-8"))
            await self._run(repo, "add", "--", path)
            if await self._succeeds(repo, "diff", "--cached", "--quiet", "--", path):
                return await self._last_commit_for(repo, path)
            await self._run(repo, "commit", "-q", "-m", message, "--", path)
            out = await self._run(repo, "rev-parse", "HEAD")
        except (OSError, _GitFailure) as exc:
            raise CommitError(f"failed to commit {path}: {exc}") from exc
        return out.decode().strip()

    async def read_file_at(self, user_sub: str, path: str, commit_id: str | None = None) -> bytes:
        """Content of ``path`` as of ``commit_id`` (``HEAD`` when omitted)."""
        path = self._check_path(path)
        if commit_id in (None, "", "latest"):
            revision = "HEAD"
        elif COMMIT_ID_PATTERN.match(commit_id):
            revision = commit_id
        else:
            raise NotFoundError(f"version {commit_id!r} not found")
        repo = await self._ensure_repo(user_sub)
        try:
            if not await self._succeeds(repo, "cat-file", "-e", f"{revision}^{{commit}}"):
                raise NotFoundError(f"version {commit_id} not found")
            if not await self._succeeds(repo, "cat-file", "-e", f"{revision}:{path}"):
                raise NotFoundError(f"{path} not found at version {revision}")
            return await self._run(repo, "cat-file", "blob", f"{revision}:{path}")
        except _GitFailure as exc:
            raise CommitError(f"failed to read {path}: {exc}") from exc

    async def list_commits_touching(self, user_sub: str, path: str) -> list[CommitInfo]:
        """Commits that changed ``path``, oldest first."""
        path = self._check_path(path)
        repo = await self._ensure_repo(user_sub)
        try:
            out = await self._run(repo, "log", "--topo-order", f"--format={_LOG_FORMAT}", "HEAD", "--", path)
        except _GitFailure as exc:
            raise CommitError(f"failed to list history of {path}: {exc}") from exc
        commits = []
        for record in out.decode("utf-8", "replace").split(_RECORD_SEP):
            record = record.strip("\n")
            if not record:
                continue
            commit_hash, author_name, author_email, authored, message = record.split(_FIELD_SEP, 4)
            commits.append(
                CommitInfo(
                    commit_hash=commit_hash,
                    message=message.strip(),
                    author_name=author_name,
                    author_email=author_email,
                    created_at=datetime.fromisoformat(authored),
                )
            )
        commits.reverse()
        return commits


async def startup_version_repository() -> None:
    global _repo_root
    if _repo_root is None:
        await asyncio.to_thread(Path(GIT_ROOT).mkdir, parents=True, exist_ok=True)
        _repo_root = GitVersionRepository(GIT_ROOT)


async def shutdown_version_repository() -> None:
    global _repo_root
    _repo_root = None


def get_version_repository() -> GitVersionRepository:
    if _repo_root is None:
        raise RuntimeError("Version repository is not initialized")
    return _repo_root
