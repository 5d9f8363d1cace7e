"""
Daily health records: one per user per calendar date.
"""

from __future__ import annotations

from dataclasses import fields, replace
from datetime import date

from echo_backend.db import HEALTH, EchoStore, WriteBatch, require_user
from echo_backend.errors import InvalidInput
from echo_backend.locks import UserLockProvider
from echo_backend.records import HealthRecord, utcnow

METRIC_FIELDS = tuple(
    f.name for f in fields(HealthRecord) if f.name not in ("user_id", "date", "updated_at")
)


def parse_day(value) -> date:
    if isinstance(value, date):
        return value
    try:
        if len(value) != 10:
            raise ValueError(value)
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise InvalidInput("Invalid date format. Use YYYY-MM-DD") from e


class HealthService:
    def __init__(self, store: EchoStore, locks: UserLockProvider):
        self.store = store
        self.locks = locks

    def get(self, user_id: str, day) -> HealthRecord:
        day = parse_day(day)
        record = self.store.get_health(user_id, day)
        return record or HealthRecord(user_id=user_id, date=day)

    def update(self, user_id: str, day, values: dict) -> HealthRecord:
        day = parse_day(day)
        unknown = set(values) - set(METRIC_FIELDS)
        if unknown:
            raise InvalidInput(f"Unknown health fields: {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in values.items() if v is not None}
        with self.locks.hold(user_id):
            require_user(self.store, user_id)
            current = self.store.get_health(user_id, day) or HealthRecord(
                user_id=user_id, date=day
            )
            record = replace(current, updated_at=utcnow(), **changes)
            batch = WriteBatch(user_id)
            batch.put(HEALTH, record)
            self.store.commit(batch)
        return record

    def list(self, user_id: str) -> list[HealthRecord]:
        return self.store.list_health(user_id)
