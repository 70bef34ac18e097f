# backend/utils/timeutils.py
from datetime import datetime, timezone
from typing import Optional

# Timestamps are compared as naive UTC: SQLite hands back naive values even for
# timezone-aware columns, PostgreSQL hands back aware ones.

def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
