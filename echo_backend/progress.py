"""
Session snapshots: save, restore-on-login and end-of-session.

The snapshot is a cache of the client's last known session shape. The user
record and inventory stay authoritative; ``save`` mirrors ``userCoins`` and
``userTheme`` into them in the same batch so the two never disagree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from echo_backend.db import (
    PROGRESS,
    EchoStore,
    WriteBatch,
    require_user,
    retry_on_conflict,
)
from echo_backend.inventory import ActiveTheme, InventoryService
from echo_backend.ledger import Ledger, check_amount
from echo_backend.locks import UserLockProvider
from echo_backend.records import (
    InventoryItemRecord,
    PlantRecord,
    ProgressSnapshot,
    TaskRecord,
    UserRecord,
    utcnow,
)
from shared.json_utils import to_jsonable

logger = logging.getLogger(__name__)

COINS_KEY = "userCoins"
THEME_KEY = "userTheme"
# Keys the server owns on the snapshot; clients cannot overwrite them.
RESERVED_KEYS = ("sessionActive", "lastSyncAt", "sessionEndedAt")


@dataclass
class CompleteProgress:
    """Everything a client needs to rebuild its UI after login."""

    user: UserRecord
    tasks: list[TaskRecord] = field(default_factory=list)
    plants: list[PlantRecord] = field(default_factory=list)
    inventory: list[InventoryItemRecord] = field(default_factory=list)
    active_theme: Optional[ActiveTheme] = None
    progress_snapshot: Optional[ProgressSnapshot] = None
    loaded_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        user = self.user.summary()
        user.update(
            {
                "lastActiveAt": self.user.last_active_at,
                "lastLogoutAt": self.user.last_logout_at,
                "createdAt": self.user.created_at,
            }
        )
        return to_jsonable(
            {
                "user": user,
                "tasks": [t.as_dict() for t in self.tasks],
                "plants": [p.as_dict() for p in self.plants],
                "inventory": [i.as_dict() for i in self.inventory],
                "activeTheme": self.active_theme.as_dict() if self.active_theme else None,
                "progressSnapshot": (
                    self.progress_snapshot.as_dict() if self.progress_snapshot else None
                ),
                "loadedAt": self.loaded_at,
            }
        )


class ProgressManager:
    def __init__(
        self,
        store: EchoStore,
        locks: UserLockProvider,
        ledger: Ledger,
        inventory: InventoryService,
    ):
        self.store = store
        self.locks = locks
        self.ledger = ledger
        self.inventory = inventory

    @retry_on_conflict
    def save(self, user_id: str, state: dict) -> datetime:
        state = {k: v for k, v in (state or {}).items() if k not in RESERVED_KEYS}
        if COINS_KEY in state:
            check_amount(state[COINS_KEY])

        with self.locks.hold(user_id):
            user = require_user(self.store, user_id)
            existing = self.store.get_progress(user_id)
            now = utcnow()

            merged = dict(existing.state) if existing else {}
            merged.update(state)
            snapshot = ProgressSnapshot(
                user_id=user_id,
                state=merged,
                session_active=True,
                last_sync_at=now,
                session_ended_at=existing.session_ended_at if existing else None,
            )

            batch = WriteBatch(user_id)
            batch.expect(user)
            batch.put(PROGRESS, snapshot)
            if COINS_KEY in state:
                self.ledger.stage_set(batch, user, state[COINS_KEY])
            if state.get(THEME_KEY):
                self.inventory.stage_activation(
                    batch,
                    user,
                    state[THEME_KEY],
                    self.store.list_inventory(user_id),
                    require_owned=False,
                )
            batch.update_user(last_active_at=now, updated_at=now)
            self.store.commit(batch)
        return now

    def load_complete(self, user_id: str) -> CompleteProgress:
        with self.locks.hold(user_id):
            user = require_user(self.store, user_id)
            inventory = self.store.list_inventory(user_id)
            progress = CompleteProgress(
                user=user,
                tasks=self.store.list_tasks(user_id),
                plants=self.store.list_plants(user_id),
                inventory=inventory,
                active_theme=self.inventory.active_theme(user, inventory),
                progress_snapshot=self.store.get_progress(user_id),
            )
        logger.info(f"Complete progress loaded for user {user_id}")
        return progress

    @retry_on_conflict
    def end_session(self, user_id: str) -> datetime:
        with self.locks.hold(user_id):
            user = require_user(self.store, user_id)
            existing = self.store.get_progress(user_id)
            now = utcnow()
            snapshot = ProgressSnapshot(
                user_id=user_id,
                state=dict(existing.state) if existing else {},
                session_active=False,
                last_sync_at=existing.last_sync_at if existing else None,
                session_ended_at=now,
            )
            batch = WriteBatch(user_id)
            batch.expect(user)
            batch.put(PROGRESS, snapshot)
            batch.update_user(last_logout_at=now, updated_at=now)
            self.store.commit(batch)
        logger.info(f"Session ended for user {user_id}")
        return now
