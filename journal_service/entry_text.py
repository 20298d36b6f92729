import re
from datetime import date, datetime

from .errors import ValidationError

ENTRY_DATE_FORMAT = "%Y-%m-%d"
ENTRY_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_entry_date(value: str) -> date:
    if not isinstance(value, str) or not ENTRY_DATE_PATTERN.match(value):
        raise ValidationError(f"invalid date format: {value!r}")
    try:
        return datetime.strptime(value, ENTRY_DATE_FORMAT).date()
    except ValueError as exc:
        raise ValidationError(f"invalid date format: {value!r}") from exc


def normalize_content(content: str) -> str:
    """Drop NUL bytes and fold CRLF / CR line endings into LF."""
    content = content.replace("\x00", "")
    content = content.replace("\r\n", "\n")
    return content.replace("\r", "\n")


def count_words(content: str) -> int:
    return len(content.split())


def build_blob_key(user_sub: str, journal_id: str, entry_date: date) -> str:
    return f"{user_sub}/{journal_id}/{entry_date.isoformat()}.md"


def build_entry_path(journal_id: str, entry_date: date) -> str:
    return f"{journal_id}/{entry_date.isoformat()}.md"
