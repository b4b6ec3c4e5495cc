import json
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import Text
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """Ordered set: strip blanks, drop duplicates, keep first occurrence order."""
    seen: set[str] = set()
    ordered: list[str] = []
    for tag in tags or []:
        text = str(tag).strip()
        if not text or text in seen:
            continue
        seen.add(text)
        ordered.append(text)
    return ordered


class TagSet(TypeDecorator):
    """Stores a tag list as JSON text and only ever hands back ``list[str]``."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return json.dumps(normalize_tags(value))

    def process_result_value(self, value, dialect):
        if not value:
            return []
        try:
            decoded = json.loads(value)
        except ValueError:
            return []
        if not isinstance(decoded, list):
            return []
        return normalize_tags(decoded)
