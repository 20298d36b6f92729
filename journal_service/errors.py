from __future__ import annotations


class JournalError(Exception):
    """Base class for coordinator failures surfaced to callers."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(JournalError):
    status_code = 400


class NotFoundError(JournalError):
    status_code = 404


class ConflictError(JournalError):
    status_code = 409


class StorageError(JournalError):
    status_code = 502


class CommitError(JournalError):
    status_code = 500
