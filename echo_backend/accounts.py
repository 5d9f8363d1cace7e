"""
Account lifecycle: registration, login/logout, profile, stats and export.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from echo_backend.auth import Authenticator
from echo_backend.db import (
    CREDENTIALS,
    PLANTS,
    TASKS,
    USERS,
    EchoStore,
    WriteBatch,
    require_user,
    retry_on_conflict,
)
from echo_backend.errors import AlreadyExists, EchoError, InvalidInput, NotFound
from echo_backend.growth import GrowthTracker
from echo_backend.locks import UserLockProvider
from echo_backend.progress import CompleteProgress, ProgressManager
from echo_backend.records import UserRecord, utc_today, utcnow
from echo_backend.tasks import TaskTracker
from shared.constants import (
    DEFAULT_THEME,
    EXPORT_HEALTH_DAYS,
    EXPORT_VERSION,
    FIRST_PLANT_NAME,
    STARTER_TASKS,
    STARTING_COINS,
)
from shared.json_utils import to_jsonable

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass
class LoginResult:
    user: UserRecord
    token: Optional[str] = None
    progress: Optional[CompleteProgress] = None

    def as_dict(self) -> dict:
        payload = {"user": self.user.summary(), "token": self.token}
        if self.progress is not None:
            payload["progress"] = self.progress.as_dict()
        return payload


class AccountService:
    def __init__(
        self,
        store: EchoStore,
        locks: UserLockProvider,
        authenticator: Authenticator,
        tasks: TaskTracker,
        growth: GrowthTracker,
        progress: ProgressManager,
        starting_coins: int = STARTING_COINS,
    ):
        self.store = store
        self.locks = locks
        self.authenticator = authenticator
        self.tasks = tasks
        self.growth = growth
        self.progress = progress
        self.starting_coins = starting_coins

    def register(
        self,
        email: str,
        password: str,
        name: str,
        goals: Optional[list[str]] = None,
    ) -> LoginResult:
        email = normalize_email(email)
        if self.store.get_credential(email) or self.store.find_user_by_email(email):
            raise AlreadyExists("User already exists with this email")

        user_id = self.authenticator.create_identity(email, password, name)
        now = utcnow()
        user = UserRecord(
            user_id=user_id,
            email=email,
            name=name.strip(),
            goals=list(goals or []),
            user_theme=DEFAULT_THEME,
            user_coins=self.starting_coins,
            created_at=now,
            updated_at=now,
            last_active_at=now,
        )

        with self.locks.hold(user_id):
            batch = WriteBatch(user_id)
            batch.put(USERS, user)
            batch.put(CREDENTIALS, self.authenticator.new_credential(email, password, user_id))
            batch.put(PLANTS, self.growth.new_plant(user_id, FIRST_PLANT_NAME))
            for draft in STARTER_TASKS:
                batch.put(
                    TASKS, self.tasks.new_task(user_id, is_starter_task=True, **draft)
                )
            try:
                self.store.commit(batch)
            except EchoError:
                self.authenticator.delete_identity(user_id)
                raise

        logger.info(f"User registered successfully: {email}")
        return LoginResult(user=user, token=self.authenticator.issue_token(user_id, email))

    def login(self, email: str, password: str, load_progress: bool = True) -> LoginResult:
        email = normalize_email(email)
        credential = self.authenticator.authenticate(email, password)
        user = self.store.get_user(credential.user_id)
        if user is None:
            raise NotFound("User profile not found")

        progress = self.progress.load_complete(user.user_id) if load_progress else None
        token = self.authenticator.issue_token(user.user_id, email)
        logger.info(f"User logged in: {email} (progress loaded: {load_progress})")
        return LoginResult(user=user, token=token, progress=progress)

    def logout(self, user_id: str, token: str) -> None:
        self.authenticator.revoke(token, user_id)
        self.progress.end_session(user_id)
        logger.info(f"User logged out: {user_id}")

    def get_profile(self, user_id: str) -> UserRecord:
        return require_user(self.store, user_id)

    @retry_on_conflict
    def update_profile(
        self,
        user_id: str,
        name: Optional[str] = None,
        goals: Optional[list[str]] = None,
    ) -> UserRecord:
        changes = {}
        if name is not None:
            changes["name"] = name.strip()
        if goals is not None:
            changes["goals"] = list(goals)
        if not changes:
            raise InvalidInput("No valid fields to update")

        with self.locks.hold(user_id):
            user = require_user(self.store, user_id)
            batch = WriteBatch(user_id)
            batch.expect(user)
            batch.update_user(updated_at=utcnow(), **changes)
            self.store.commit(batch)
        return require_user(self.store, user_id)

    def delete_account(self, user_id: str) -> None:
        with self.locks.hold(user_id):
            require_user(self.store, user_id)
            self.store.delete_user(user_id)
        self.authenticator.delete_identity(user_id)
        logger.info(f"Account deleted: {user_id}")

    def user_stats(self, user_id: str) -> dict:
        user = require_user(self.store, user_id)
        plants = self.store.list_plants(user_id)
        items = self.store.list_inventory(user_id)
        return {
            "tasks": self.tasks.stats(user_id).as_dict(),
            "plants": {
                "total": len(plants),
                "totalTasksCompleted": sum(p.tasks_completed for p in plants),
            },
            "inventory": {
                "totalItems": len(items),
                "themes": sum(1 for i in items if i.item_type == "theme"),
                "decorations": sum(1 for i in items if i.item_type == "decoration"),
                "plantSkins": sum(1 for i in items if i.item_type == "plant-skin"),
            },
            "user": {
                "coins": user.user_coins,
                "theme": user.user_theme,
                "goalsCount": len(user.goals),
            },
        }

    def export(self, user_id: str) -> dict:
        user = require_user(self.store, user_id)
        since = utc_today() - timedelta(days=EXPORT_HEALTH_DAYS)
        health = [r for r in self.store.list_health(user_id) if r.date >= since]
        return to_jsonable(
            {
                "user": user.as_dict(),
                "tasks": [t.as_dict() for t in self.store.list_tasks(user_id)],
                "plants": [p.as_dict() for p in self.store.list_plants(user_id)],
                "inventory": [i.as_dict() for i in self.store.list_inventory(user_id)],
                "healthData": [r.as_dict() for r in health],
                "exportDate": utcnow(),
                "exportVersion": EXPORT_VERSION,
            }
        )
