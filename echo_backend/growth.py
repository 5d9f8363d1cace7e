"""
Plants: per-user growth aggregates driven by task completions.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from echo_backend.db import (
    PLANTS,
    EchoStore,
    WriteBatch,
    require_user,
    retry_on_conflict,
)
from echo_backend.errors import InvalidInput
from echo_backend.locks import UserLockProvider
from echo_backend.records import PlantRecord, utcnow
from shared.constants import PLANT_NAME_MAX_LENGTH

logger = logging.getLogger(__name__)


class GrowthTracker:
    """
    The primary plant is whichever was created first; it is the only one that
    grows when tasks are completed.
    """

    def __init__(self, store: EchoStore, locks: UserLockProvider):
        self.store = store
        self.locks = locks

    def new_plant(self, user_id: str, name: str) -> PlantRecord:
        name = (name or "").strip()
        if not name or len(name) > PLANT_NAME_MAX_LENGTH:
            raise InvalidInput(
                f"Plant name must be between 1 and {PLANT_NAME_MAX_LENGTH} characters"
            )
        now = utcnow()
        return PlantRecord(
            id=self.store.new_id(),
            user_id=user_id,
            name=name,
            tasks_completed=0,
            created_at=now,
            updated_at=now,
        )

    def create(self, user_id: str, name: str) -> PlantRecord:
        plant = self.new_plant(user_id, name)
        with self.locks.hold(user_id):
            require_user(self.store, user_id)
            batch = WriteBatch(user_id)
            batch.put(PLANTS, plant)
            self.store.commit(batch)
        return plant

    def list(self, user_id: str) -> list[PlantRecord]:
        return self.store.list_plants(user_id)

    def primary(self, user_id: str) -> Optional[PlantRecord]:
        plants = self.store.list_plants(user_id)
        return plants[0] if plants else None

    @retry_on_conflict
    def increment_primary(self, user_id: str) -> Optional[PlantRecord]:
        with self.locks.hold(user_id):
            user = require_user(self.store, user_id)
            batch = WriteBatch(user_id)
            plant = self.stage_increment(batch, user_id)
            if plant is not None:
                # Counter writes are absolute; tie them to the user version.
                batch.expect(user)
                batch.update_user(updated_at=plant.updated_at)
                self.store.commit(batch)
        return plant

    def stage_increment(self, batch: WriteBatch, user_id: str) -> Optional[PlantRecord]:
        plant = self.primary(user_id)
        if plant is None:
            logger.warning(f"User {user_id} has no plant to grow; skipping increment")
            return None
        grown = replace(
            plant, tasks_completed=plant.tasks_completed + 1, updated_at=utcnow()
        )
        batch.put(PLANTS, grown)
        return grown
