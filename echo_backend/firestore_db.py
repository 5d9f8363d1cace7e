"""
Firestore implementation of ``EchoStore``.

Layout:
    users/{userId}
    users/{userId}/tasks/{taskId}
    users/{userId}/plants/{plantId}
    users/{userId}/inventory/{id}
    users/{userId}/healthData/{YYYY-MM-DD}
    users/{userId}/progress/current
    UserLOGININFORMATION/{email}

Documents use camelCase field names. Calendar dates are stored as ISO strings
since Firestore only has a timestamp type.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import asdict
from datetime import date
from typing import Any, Iterator, Optional

from dacite import Config, from_dict
from firebase_admin import firestore
from google.api_core import exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from echo_backend.db import (
    CREDENTIALS,
    HEALTH,
    INVENTORY,
    PLANTS,
    PROGRESS,
    TASKS,
    USERS,
    WriteBatch,
    check_version,
)
from echo_backend.errors import NotFound, StorageUnavailable
from echo_backend.records import (
    CredentialRecord,
    HealthRecord,
    InventoryItemRecord,
    PlantRecord,
    ProgressSnapshot,
    TaskRecord,
    UserRecord,
)
from shared.firebase_constants import (
    HEALTH_COLLECTION,
    INVENTORY_COLLECTION,
    LOGIN_INFORMATION_COLLECTION,
    PLANTS_COLLECTION,
    PROGRESS_COLLECTION,
    PROGRESS_DOCUMENT,
    TASKS_COLLECTION,
    USERS_COLLECTION,
)
from shared.json_utils import convert_keys

logger = logging.getLogger(__name__)

SUBCOLLECTIONS = {
    TASKS: TASKS_COLLECTION,
    PLANTS: PLANTS_COLLECTION,
    INVENTORY: INVENTORY_COLLECTION,
    HEALTH: HEALTH_COLLECTION,
    PROGRESS: PROGRESS_COLLECTION,
}

# Server-owned snapshot fields; everything else in the document is client state.
SNAPSHOT_FIELDS = {
    "sessionActive": "session_active",
    "lastSyncAt": "last_sync_at",
    "sessionEndedAt": "session_ended_at",
}

DACITE_CONFIG = Config(check_types=False)


def _iso_or_none(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_date(value) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def encode_record(kind: str, record: Any) -> dict:
    if kind == PROGRESS:
        data = dict(record.state)
        for field_name, attr in SNAPSHOT_FIELDS.items():
            data[field_name] = getattr(record, attr)
        return data
    data = asdict(record)
    if kind == TASKS:
        data["due_date"] = _iso_or_none(record.due_date)
    elif kind == HEALTH:
        data["date"] = record.date.isoformat()
    return convert_keys(data, "snake_to_camel")


def decode_record(kind: str, data: dict, user_id: Optional[str] = None) -> Any:
    if kind == PROGRESS:
        state = dict(data)
        values = {attr: state.pop(name, None) for name, attr in SNAPSHOT_FIELDS.items()}
        if values["session_active"] is None:
            values["session_active"] = True
        return ProgressSnapshot(user_id=user_id, state=state, **values)

    values = convert_keys(data, "camel_to_snake")
    if user_id is not None and kind != USERS:
        values.setdefault("user_id", user_id)
    if kind == TASKS:
        values["due_date"] = _parse_date(values.get("due_date"))
    elif kind == HEALTH:
        values["date"] = _parse_date(values.get("date"))
    return from_dict(data_class=RECORDS_BY_KIND[kind], data=values, config=DACITE_CONFIG)


RECORDS_BY_KIND = {
    USERS: UserRecord,
    TASKS: TaskRecord,
    PLANTS: PlantRecord,
    INVENTORY: InventoryItemRecord,
    HEALTH: HealthRecord,
    CREDENTIALS: CredentialRecord,
}


@contextmanager
def _firestore_errors() -> Iterator[None]:
    try:
        yield
    except exceptions.NotFound as e:
        raise NotFound("User not found") from e
    except exceptions.GoogleAPICallError as e:
        logger.exception("Firestore call failed")
        raise StorageUnavailable(f"Firestore error: {e.message}") from e


class FirestoreStore:
    """
    Per-user document with nested collections.

    A commit is one Firestore batch, or one transaction when it changes the
    user document.
    """

    def __init__(self, client=None):
        self.db = client or firestore.client()

    def new_id(self) -> str:
        return uuid.uuid4().hex

    def _user_ref(self, user_id: str):
        return self.db.collection(USERS_COLLECTION).document(user_id)

    def _ref(self, kind: str, user_id: str, key: str):
        if kind == USERS:
            return self._user_ref(key)
        if kind == CREDENTIALS:
            return self.db.collection(LOGIN_INFORMATION_COLLECTION).document(key)
        return self._user_ref(user_id).collection(SUBCOLLECTIONS[kind]).document(key)

    def _get(self, kind: str, user_id: str, key: str):
        with _firestore_errors():
            snapshot = self._ref(kind, user_id, key).get()
        if not snapshot.exists:
            return None
        return decode_record(kind, snapshot.to_dict(), user_id)

    def _list(self, kind: str, user_id: str, order_field: str, descending: bool) -> list:
        direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
        query = (
            self._user_ref(user_id)
            .collection(SUBCOLLECTIONS[kind])
            .order_by(order_field, direction=direction)
        )
        with _firestore_errors():
            return [decode_record(kind, doc.to_dict(), user_id) for doc in query.stream()]

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self._get(USERS, user_id, user_id)

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        query = (
            self.db.collection(USERS_COLLECTION)
            .where(filter=FieldFilter("email", "==", email))
            .limit(1)
        )
        with _firestore_errors():
            for doc in query.stream():
                return decode_record(USERS, doc.to_dict(), doc.id)
        return None

    def list_tasks(self, user_id: str) -> list[TaskRecord]:
        return self._list(TASKS, user_id, "createdAt", descending=True)

    def get_task(self, user_id: str, task_id: str) -> Optional[TaskRecord]:
        return self._get(TASKS, user_id, task_id)

    def list_plants(self, user_id: str) -> list[PlantRecord]:
        return self._list(PLANTS, user_id, "createdAt", descending=False)

    def list_inventory(self, user_id: str) -> list[InventoryItemRecord]:
        return self._list(INVENTORY, user_id, "acquiredAt", descending=True)

    def get_health(self, user_id: str, day: date) -> Optional[HealthRecord]:
        return self._get(HEALTH, user_id, day.isoformat())

    def list_health(self, user_id: str) -> list[HealthRecord]:
        return self._list(HEALTH, user_id, "date", descending=True)

    def get_progress(self, user_id: str) -> Optional[ProgressSnapshot]:
        return self._get(PROGRESS, user_id, PROGRESS_DOCUMENT)

    def get_credential(self, email: str) -> Optional[CredentialRecord]:
        return self._get(CREDENTIALS, None, email)

    def _stage_ops(self, write, batch: WriteBatch) -> None:
        for op in batch.ops:
            ref = self._ref(op.kind, batch.user_id, op.key)
            if op.action == "put":
                write.set(ref, encode_record(op.kind, op.record))
            else:
                write.delete(ref)

    def commit(self, batch: WriteBatch) -> None:
        if batch.user_fields:
            self._commit_transaction(batch)
            return
        write = self.db.batch()
        self._stage_ops(write, batch)
        with _firestore_errors():
            write.commit()

    def _commit_transaction(self, batch: WriteBatch) -> None:
        """
        Re-read the user document inside a transaction and write only if its
        version still matches what the caller read.
        """
        transaction = self.db.transaction()
        user_ref = self._user_ref(batch.user_id)

        @firestore.transactional
        def _update_user_transaction(transaction, user_ref):
            snapshot = user_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFound("User not found")
            version = (snapshot.to_dict() or {}).get("version", 0)
            check_version(batch, version)

            self._stage_ops(transaction, batch)
            user_fields = convert_keys(dict(batch.user_fields), "snake_to_camel")
            user_fields["version"] = version + 1
            transaction.update(user_ref, user_fields)

        with _firestore_errors():
            _update_user_transaction(transaction, user_ref)

    def delete_user(self, user_id: str) -> None:
        credentials = self.db.collection(LOGIN_INFORMATION_COLLECTION).where(
            filter=FieldFilter("userId", "==", user_id)
        )
        with _firestore_errors():
            for doc in credentials.stream():
                doc.reference.delete()
            self.db.recursive_delete(self._user_ref(user_id))
        logger.info(f"Deleted Firestore data for user {user_id}")
