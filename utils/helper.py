from typing import List
from datetime import datetime, timezone

from models.schema import RawPunch

# In-memory punch store, rows shaped like the "pontos" table
mock_punches = []


class PunchStoreError(Exception):
    pass


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def insert_punch(punch: dict) -> None:
    mock_punches.append(punch)


def fetch_punches(employee_id: str, start: datetime, end: datetime) -> List[RawPunch]:
    """Return every punch of ``employee_id`` with ``start <= timestamp < end``.

    Unordered, unpaginated. Naive timestamps in the store are UTC.
    """
    start_utc = _as_utc(start)
    end_utc = _as_utc(end)
    return [
        RawPunch(**p) for p in mock_punches
        if p["employee_id"] == employee_id and start_utc <= _as_utc(p["timestamp"]) < end_utc
    ]
