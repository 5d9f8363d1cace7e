"""
Task CRUD and the completion reward.

A task moving from not completed to completed pays out once: the reward
policy prices it, the ledger credits it and the primary plant grows, all in
the same batch as the task write. Un-completing a task keeps what was paid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Iterable, Optional

from echo_backend.db import (
    TASKS,
    EchoStore,
    WriteBatch,
    require_user,
    retry_on_conflict,
)
from echo_backend.errors import EchoError, InvalidInput, NotFound
from echo_backend.growth import GrowthTracker
from echo_backend.ledger import Ledger
from echo_backend.locks import UserLockProvider
from echo_backend.records import (
    PlantRecord,
    TaskRecord,
    UserRecord,
    utc_today,
    utcnow,
)
from echo_backend.rewards import reward_for
from shared.constants import PRIORITIES, RECURRENCES, SEARCH_DEFAULT_LIMIT

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("text", "completed", "priority", "category", "due_date", "recurring")

BULK_COMPLETE = "complete"
BULK_DELETE = "delete"
BULK_UPDATE = "update"
BULK_OPERATIONS = (BULK_COMPLETE, BULK_DELETE, BULK_UPDATE)


@dataclass
class RewardEvent:
    coins: int
    balance: int
    plant: Optional[PlantRecord] = None

    def as_dict(self) -> dict:
        return {
            "coinsAwarded": self.coins,
            "userCoins": self.balance,
            "plant": self.plant.as_dict() if self.plant else None,
        }


@dataclass
class TaskChange:
    task: TaskRecord
    reward: Optional[RewardEvent] = None

    def as_dict(self) -> dict:
        return {
            "task": self.task.as_dict(),
            "reward": self.reward.as_dict() if self.reward else None,
        }


@dataclass
class TaskStats:
    total: int = 0
    completed: int = 0
    overdue: int = 0
    due_today: int = 0

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "completed": self.completed,
            "overdue": self.overdue,
            "dueToday": self.due_today,
        }


@dataclass
class BulkItemResult:
    task_id: str
    success: bool
    error: Optional[str] = None

    def as_dict(self) -> dict:
        payload = {"taskId": self.task_id, "success": self.success}
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class BulkResult:
    operation: str
    results: list[BulkItemResult] = field(default_factory=list)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def as_dict(self) -> dict:
        return {
            "message": f"Bulk {self.operation} operation completed",
            "results": [r.as_dict() for r in self.results],
            "successful": self.successful,
            "failed": self.failed,
        }


def _clean_fields(values: dict) -> dict:
    unknown = set(values) - set(EDITABLE_FIELDS)
    if unknown:
        raise InvalidInput(f"Unknown task fields: {', '.join(sorted(unknown))}")
    cleaned = {k: v for k, v in values.items() if v is not None}
    if "priority" in cleaned and cleaned["priority"] not in PRIORITIES:
        raise InvalidInput("Priority must be low, medium, or high")
    if "recurring" in cleaned and cleaned["recurring"] not in RECURRENCES:
        raise InvalidInput("Recurring must be none, daily, weekly, or monthly")
    if "due_date" in cleaned and not isinstance(cleaned["due_date"], date):
        try:
            cleaned["due_date"] = date.fromisoformat(str(cleaned["due_date"])[:10])
        except ValueError as e:
            raise InvalidInput("Due date must be a valid date") from e
    if "completed" in cleaned:
        cleaned["completed"] = bool(cleaned["completed"])
    return cleaned


class TaskTracker:
    def __init__(
        self,
        store: EchoStore,
        locks: UserLockProvider,
        ledger: Ledger,
        growth: GrowthTracker,
    ):
        self.store = store
        self.locks = locks
        self.ledger = ledger
        self.growth = growth

    def new_task(
        self,
        user_id: str,
        text: str,
        priority: Optional[str] = None,
        category: Optional[str] = None,
        due_date=None,
        recurring: Optional[str] = None,
        is_starter_task: bool = False,
    ) -> TaskRecord:
        values = _clean_fields(
            {
                "text": text,
                "priority": priority,
                "category": category,
                "due_date": due_date or None,
                "recurring": recurring,
            }
        )
        now = utcnow()
        return TaskRecord(
            id=self.store.new_id(),
            user_id=user_id,
            completed=False,
            is_starter_task=is_starter_task,
            created_at=now,
            updated_at=now,
            **values,
        )

    def create(self, user_id: str, text: str, **draft) -> TaskRecord:
        task = self.new_task(user_id, text, **draft)
        with self.locks.hold(user_id):
            require_user(self.store, user_id)
            batch = WriteBatch(user_id)
            batch.put(TASKS, task)
            self.store.commit(batch)
        return task

    def list(self, user_id: str) -> list[TaskRecord]:
        return self.store.list_tasks(user_id)

    def get(self, user_id: str, task_id: str) -> TaskRecord:
        task = self.store.get_task(user_id, task_id)
        if task is None:
            raise NotFound("Task not found")
        return task

    @retry_on_conflict
    def update(self, user_id: str, task_id: str, patch: dict) -> TaskChange:
        changes = _clean_fields(patch)
        with self.locks.hold(user_id):
            user = require_user(self.store, user_id)
            task = self.get(user_id, task_id)
            return self._apply(user, task, changes)

    @retry_on_conflict
    def toggle(self, user_id: str, task_id: str) -> TaskChange:
        with self.locks.hold(user_id):
            user = require_user(self.store, user_id)
            task = self.get(user_id, task_id)
            return self._apply(user, task, {"completed": not task.completed})

    def delete(self, user_id: str, task_id: str) -> None:
        with self.locks.hold(user_id):
            self.get(user_id, task_id)
            batch = WriteBatch(user_id)
            batch.delete(TASKS, task_id)
            self.store.commit(batch)

    def _apply(self, user: UserRecord, task: TaskRecord, changes: dict) -> TaskChange:
        """
        Write ``changes`` and pay out on a false->true completion.

        ``user`` must be read before ``task``: the batch only commits if the
        user is unchanged since, so a completion that raced this one forces a
        retry instead of paying twice.
        """
        now = utcnow()
        updated = replace(task, updated_at=now, **changes)
        batch = WriteBatch(user.user_id)
        batch.expect(user)
        batch.put(TASKS, updated)
        batch.update_user(updated_at=now)
        reward = None
        if updated.completed and not task.completed:
            reward = self._stage_reward(batch, user, updated)
        self.store.commit(batch)
        if reward:
            logger.info(
                f"Task {task.id} completed by user {user.user_id}: +{reward.coins} coins"
            )
        return TaskChange(task=updated, reward=reward)

    def _stage_reward(
        self, batch: WriteBatch, user: UserRecord, task: TaskRecord
    ) -> RewardEvent:
        coins = reward_for(task.priority)
        balance = self.ledger.stage_credit(batch, user, coins)
        plant = self.growth.stage_increment(batch, user.user_id)
        return RewardEvent(coins=coins, balance=balance, plant=plant)

    def stats(self, user_id: str, today: Optional[date] = None) -> TaskStats:
        today = today or utc_today()
        stats = TaskStats()
        for task in self.store.list_tasks(user_id):
            stats.total += 1
            if task.completed:
                stats.completed += 1
            if task.due_date == today:
                stats.due_today += 1
            if task.due_date and task.due_date < today and not task.completed:
                stats.overdue += 1
        return stats

    def search(
        self,
        user_id: str,
        query: Optional[str] = None,
        category: Optional[str] = None,
        priority: Optional[str] = None,
        completed: Optional[bool] = None,
        limit: int = SEARCH_DEFAULT_LIMIT,
    ) -> list[TaskRecord]:
        tasks: Iterable[TaskRecord] = self.store.list_tasks(user_id)
        if query:
            needle = query.lower()
            tasks = [
                t
                for t in tasks
                if needle in t.text.lower() or needle in (t.category or "").lower()
            ]
        if category:
            tasks = [t for t in tasks if t.category == category]
        if priority:
            tasks = [t for t in tasks if t.priority == priority]
        if completed is not None:
            tasks = [t for t in tasks if t.completed == completed]
        tasks = list(tasks)
        if limit and limit > 0:
            tasks = tasks[:limit]
        return tasks

    def bulk(
        self,
        user_id: str,
        operation: str,
        task_ids: list[str],
        patch: Optional[dict] = None,
    ) -> BulkResult:
        if operation not in BULK_OPERATIONS:
            raise InvalidInput("Invalid bulk operation")
        if operation == BULK_UPDATE and not patch:
            raise InvalidInput("Updates object required for bulk update")

        result = BulkResult(operation=operation)
        for task_id in task_ids:
            try:
                if operation == BULK_COMPLETE:
                    self.update(user_id, task_id, {"completed": True})
                elif operation == BULK_DELETE:
                    self.delete(user_id, task_id)
                else:
                    self.update(user_id, task_id, patch)
            except EchoError as e:
                result.results.append(BulkItemResult(task_id, False, e.message))
                continue
            result.results.append(BulkItemResult(task_id, True))
        return result
