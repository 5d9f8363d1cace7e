"""
Store-agnostic records for the Echo user aggregate.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

from shared.constants import DEFAULT_THEME, THEME_ITEM_TYPE
from shared.json_utils import convert_keys, to_jsonable


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Calendar date used for every due-date comparison."""
    return utcnow().date()


def _wire(record) -> dict:
    return to_jsonable(convert_keys(asdict(record), "snake_to_camel"))


@dataclass
class UserRecord:
    user_id: str
    email: str
    name: str
    goals: list[str] = field(default_factory=list)
    user_theme: str = DEFAULT_THEME
    user_coins: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_active_at: Optional[datetime] = None
    last_logout_at: Optional[datetime] = None
    last_purchase_at: Optional[datetime] = None
    theme_changed_at: Optional[datetime] = None
    # Bumped on every write to the user document; guards read-check-write commits.
    version: int = 0

    def summary(self) -> dict:
        return {
            "uid": self.user_id,
            "email": self.email,
            "name": self.name,
            "userTheme": self.user_theme,
            "userCoins": self.user_coins,
            "goals": list(self.goals),
        }

    def as_dict(self) -> dict:
        return _wire(self)


@dataclass
class TaskRecord:
    id: str
    user_id: str
    text: str
    completed: bool = False
    priority: str = "medium"
    category: str = ""
    due_date: Optional[date] = None
    recurring: str = "none"
    is_starter_task: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return _wire(self)


@dataclass
class PlantRecord:
    id: str
    user_id: str
    name: str
    tasks_completed: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return _wire(self)


@dataclass
class InventoryItemRecord:
    id: str
    user_id: str
    item_id: str
    item_type: str
    item_name: str
    price: int
    acquired_at: datetime = field(default_factory=utcnow)
    is_active: bool = False
    last_activated_at: Optional[datetime] = None

    @property
    def is_theme(self) -> bool:
        return self.item_type == THEME_ITEM_TYPE

    def as_dict(self) -> dict:
        return _wire(self)


@dataclass
class HealthRecord:
    user_id: str
    date: date
    calories_consumed: int = 0
    calories_goal: int = 2000
    water_glasses: int = 0
    water_goal: int = 8
    exercise_minutes: int = 0
    exercise_goal: int = 30
    sleep_hours: float = 0.0
    sleep_goal: float = 8.0
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> str:
        return self.date.isoformat()

    def as_dict(self) -> dict:
        return _wire(self)


@dataclass
class ProgressSnapshot:
    """
    Last known session shape for one user.

    ``state`` is the free-form telemetry bag supplied by the client (coins,
    theme, level, counters, ...) and is kept with the client's own keys.
    """

    user_id: str
    state: dict = field(default_factory=dict)
    session_active: bool = True
    last_sync_at: Optional[datetime] = None
    session_ended_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        payload = dict(self.state)
        payload.update(
            {
                "sessionActive": self.session_active,
                "lastSyncAt": self.last_sync_at,
                "sessionEndedAt": self.session_ended_at,
            }
        )
        return to_jsonable(payload)


@dataclass
class CredentialRecord:
    email: str
    user_id: str
    password_hash: str
    created_at: datetime = field(default_factory=utcnow)
    last_login_at: Optional[datetime] = None


@dataclass
class SessionRecord:
    token_hash: str
    user_id: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)
