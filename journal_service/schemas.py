from datetime import date, datetime

from pydantic import BaseModel, Field


class JournalCreate(BaseModel):
    title: str = Field(max_length=255)
    description: str | None = None


class JournalUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    description: str | None = None


class Journal(BaseModel):
    id: str
    title: str
    description: str | None = None
    created_at: datetime
    updated_at: datetime


class EntryCreate(BaseModel):
    entry_date: str = Field(description="YYYY-MM-DD")
    content: str


class EntryUpdate(BaseModel):
    content: str


class Entry(BaseModel):
    id: str
    journal_id: str
    entry_date: date
    word_count: int | None = None
    commit_hash: str | None = None
    created_at: datetime
    updated_at: datetime


class EntryContent(BaseModel):
    entry: Entry
    content: str


class Version(BaseModel):
    commit_hash: str
    message: str | None = None
    author_name: str | None = None
    author_email: str | None = None
    created_at: datetime


class VersionContent(BaseModel):
    commit_hash: str
    content: str
