from .journal import JournalRepository

__all__ = ["JournalRepository"]
