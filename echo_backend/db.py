"""
Storage abstraction for the Echo user aggregate.

The core never talks to a database directly: it reads through ``EchoStore``
and stages every mutation into a ``WriteBatch`` that the adapter applies
atomically. Adapters here cover SQL (any SQLAlchemy URL) and an in-memory
implementation for development and tests; Firestore lives in
``echo_backend.firestore_db``.
"""

from __future__ import annotations

import copy
import functools
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterator, Optional, Protocol

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    delete,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from echo_backend.errors import (
    AlreadyExists,
    AlreadyOwned,
    Conflict,
    NotFound,
    StorageUnavailable,
)
from echo_backend.records import (
    CredentialRecord,
    HealthRecord,
    InventoryItemRecord,
    PlantRecord,
    ProgressSnapshot,
    SessionRecord,
    TaskRecord,
    UserRecord,
)

logger = logging.getLogger(__name__)

USERS = "users"
TASKS = "tasks"
PLANTS = "plants"
INVENTORY = "inventory"
HEALTH = "healthData"
PROGRESS = "progress"
CREDENTIALS = "credentials"

CHILD_KINDS = (TASKS, PLANTS, INVENTORY, HEALTH, PROGRESS)
PROGRESS_KEY = "current"
COMMIT_ATTEMPTS = 5


def record_key(kind: str, record: Any) -> str:
    if kind == USERS:
        return record.user_id
    if kind == HEALTH:
        return record.key
    if kind == PROGRESS:
        return PROGRESS_KEY
    if kind == CREDENTIALS:
        return record.email
    return record.id


@dataclass
class WriteOp:
    action: str  # "put" | "delete"
    kind: str
    key: str
    record: Any = None


@dataclass
class WriteBatch:
    """Mutations for one user, applied together or not at all."""

    user_id: str
    user_fields: dict = field(default_factory=dict)
    ops: list[WriteOp] = field(default_factory=list)
    expected_version: Optional[int] = None

    def update_user(self, **values) -> None:
        self.user_fields.update(values)

    def expect(self, user: UserRecord) -> None:
        """Apply the user changes only if the stored user is still at ``user.version``."""
        if self.expected_version is None:
            self.expected_version = user.version

    def put(self, kind: str, record: Any) -> None:
        self.ops.append(WriteOp("put", kind, record_key(kind, record), record))

    def delete(self, kind: str, key: str) -> None:
        self.ops.append(WriteOp("delete", kind, key))

    def puts(self, kind: str) -> list[Any]:
        return [op.record for op in self.ops if op.action == "put" and op.kind == kind]

    def is_empty(self) -> bool:
        return not self.user_fields and not self.ops


class EchoStore(Protocol):
    """Interface every persistence backend satisfies."""

    def new_id(self) -> str:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    def list_tasks(self, user_id: str) -> list[TaskRecord]:
        ...

    def get_task(self, user_id: str, task_id: str) -> Optional[TaskRecord]:
        ...

    def list_plants(self, user_id: str) -> list[PlantRecord]:
        ...

    def list_inventory(self, user_id: str) -> list[InventoryItemRecord]:
        ...

    def get_health(self, user_id: str, day: date) -> Optional[HealthRecord]:
        ...

    def list_health(self, user_id: str) -> list[HealthRecord]:
        ...

    def get_progress(self, user_id: str) -> Optional[ProgressSnapshot]:
        ...

    def get_credential(self, email: str) -> Optional[CredentialRecord]:
        ...

    def commit(self, batch: WriteBatch) -> None:
        ...

    def delete_user(self, user_id: str) -> None:
        ...


class SessionStore(Protocol):
    """Token sessions; only the relational deployment issues its own tokens."""

    def create_session(self, session: SessionRecord) -> None:
        ...

    def get_session(self, token_hash: str) -> Optional[SessionRecord]:
        ...

    def delete_session(self, token_hash: str) -> None:
        ...

    def purge_expired_sessions(self, now: datetime) -> int:
        ...


def require_user(store: EchoStore, user_id: str) -> UserRecord:
    user = store.get_user(user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def retry_on_conflict(func):
    """
    Re-run a read-validate-commit operation when its commit lost a race.

    Each attempt re-reads the user, so the retry sees the winning write.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        for attempt in range(1, COMMIT_ATTEMPTS + 1):
            try:
                return func(*args, **kwargs)
            except Conflict:
                if attempt == COMMIT_ATTEMPTS:
                    raise
                logger.info(f"{func.__qualname__} lost a commit race, retrying ({attempt})")

    return wrapper


def check_version(batch: WriteBatch, stored_version: int) -> None:
    if batch.expected_version is not None and batch.expected_version != stored_version:
        raise Conflict()


def _aware(value):
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class InMemoryStore:
    """Simple in-memory store for development and tests."""

    def __init__(self):
        self._lock = threading.RLock()
        self.users: Dict[str, UserRecord] = {}
        self.children: Dict[str, Dict[str, Dict[str, Any]]] = {
            kind: {} for kind in CHILD_KINDS
        }
        self.credentials: Dict[str, CredentialRecord] = {}
        self.sessions: Dict[str, SessionRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.users.clear()
            for records in self.children.values():
                records.clear()
            self.credentials.clear()
            self.sessions.clear()

    def new_id(self) -> str:
        return uuid.uuid4().hex

    def _child_values(self, kind: str, user_id: str) -> list[Any]:
        with self._lock:
            return copy.deepcopy(list(self.children[kind].get(user_id, {}).values()))

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            return copy.deepcopy(self.users.get(user_id))

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self._lock:
            for user in self.users.values():
                if user.email == email:
                    return copy.deepcopy(user)
        return None

    def list_tasks(self, user_id: str) -> list[TaskRecord]:
        tasks = self._child_values(TASKS, user_id)
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)

    def get_task(self, user_id: str, task_id: str) -> Optional[TaskRecord]:
        with self._lock:
            return copy.deepcopy(self.children[TASKS].get(user_id, {}).get(task_id))

    def list_plants(self, user_id: str) -> list[PlantRecord]:
        plants = self._child_values(PLANTS, user_id)
        return sorted(plants, key=lambda p: p.created_at)

    def list_inventory(self, user_id: str) -> list[InventoryItemRecord]:
        items = self._child_values(INVENTORY, user_id)
        return sorted(items, key=lambda i: i.acquired_at, reverse=True)

    def get_health(self, user_id: str, day: date) -> Optional[HealthRecord]:
        with self._lock:
            return copy.deepcopy(
                self.children[HEALTH].get(user_id, {}).get(day.isoformat())
            )

    def list_health(self, user_id: str) -> list[HealthRecord]:
        records = self._child_values(HEALTH, user_id)
        return sorted(records, key=lambda r: r.date, reverse=True)

    def get_progress(self, user_id: str) -> Optional[ProgressSnapshot]:
        with self._lock:
            return copy.deepcopy(
                self.children[PROGRESS].get(user_id, {}).get(PROGRESS_KEY)
            )

    def get_credential(self, email: str) -> Optional[CredentialRecord]:
        with self._lock:
            return copy.deepcopy(self.credentials.get(email))

    def _validate(self, batch: WriteBatch) -> None:
        creating_user = any(
            op.action == "put" and op.kind == USERS for op in batch.ops
        )
        if batch.user_fields and not creating_user and batch.user_id not in self.users:
            raise NotFound("User not found")
        if batch.user_fields and not creating_user:
            check_version(batch, self.users[batch.user_id].version)

        owned = {
            item.item_id: item.id
            for item in self.children[INVENTORY].get(batch.user_id, {}).values()
        }
        for item in batch.puts(INVENTORY):
            existing = owned.get(item.item_id)
            if existing is not None and existing != item.id:
                raise AlreadyOwned()
            owned[item.item_id] = item.id

        for user in batch.puts(USERS):
            for other in self.users.values():
                if other.email == user.email and other.user_id != user.user_id:
                    raise AlreadyExists("User already exists with this email")

    def commit(self, batch: WriteBatch) -> None:
        with self._lock:
            self._validate(batch)
            for op in batch.ops:
                record = copy.deepcopy(op.record)
                if op.kind == USERS:
                    if op.action == "put":
                        self.users[op.key] = record
                    else:
                        self.users.pop(op.key, None)
                elif op.kind == CREDENTIALS:
                    if op.action == "put":
                        self.credentials[op.key] = record
                    else:
                        self.credentials.pop(op.key, None)
                else:
                    records = self.children[op.kind].setdefault(batch.user_id, {})
                    if op.action == "put":
                        records[op.key] = record
                    else:
                        records.pop(op.key, None)
            if batch.user_fields:
                user = self.users[batch.user_id]
                for name, value in batch.user_fields.items():
                    setattr(user, name, copy.deepcopy(value))
                user.version += 1

    def delete_user(self, user_id: str) -> None:
        with self._lock:
            self.users.pop(user_id, None)
            for records in self.children.values():
                records.pop(user_id, None)
            for email in [e for e, c in self.credentials.items() if c.user_id == user_id]:
                del self.credentials[email]
            for token_hash in [
                h for h, s in self.sessions.items() if s.user_id == user_id
            ]:
                del self.sessions[token_hash]

    def create_session(self, session: SessionRecord) -> None:
        with self._lock:
            self.sessions[session.token_hash] = copy.deepcopy(session)

    def get_session(self, token_hash: str) -> Optional[SessionRecord]:
        with self._lock:
            return copy.deepcopy(self.sessions.get(token_hash))

    def delete_session(self, token_hash: str) -> None:
        with self._lock:
            self.sessions.pop(token_hash, None)

    def purge_expired_sessions(self, now: datetime) -> int:
        with self._lock:
            expired = [h for h, s in self.sessions.items() if s.expires_at < now]
            for token_hash in expired:
                del self.sessions[token_hash]
            return len(expired)


class SqlStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.Session() as session:
                yield session
        except OperationalError as e:
            raise StorageUnavailable(f"Database error: {e.orig}") from e

    def new_id(self) -> str:
        return uuid.uuid4().hex

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._session() as session:
            row = session.get(UserRow, user_id)
            return _to_record(UserRecord, row) if row else None

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self._session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.email == email)
            ).scalar_one_or_none()
            return _to_record(UserRecord, row) if row else None

    def list_tasks(self, user_id: str) -> list[TaskRecord]:
        with self._session() as session:
            rows = session.execute(
                select(TaskRow)
                .where(TaskRow.user_id == user_id)
                .order_by(TaskRow.created_at.desc())
            ).scalars()
            return [_to_record(TaskRecord, row) for row in rows]

    def get_task(self, user_id: str, task_id: str) -> Optional[TaskRecord]:
        with self._session() as session:
            row = session.get(TaskRow, task_id)
            if not row or row.user_id != user_id:
                return None
            return _to_record(TaskRecord, row)

    def list_plants(self, user_id: str) -> list[PlantRecord]:
        with self._session() as session:
            rows = session.execute(
                select(PlantRow)
                .where(PlantRow.user_id == user_id)
                .order_by(PlantRow.created_at.asc())
            ).scalars()
            return [_to_record(PlantRecord, row) for row in rows]

    def list_inventory(self, user_id: str) -> list[InventoryItemRecord]:
        with self._session() as session:
            rows = session.execute(
                select(InventoryRow)
                .where(InventoryRow.user_id == user_id)
                .order_by(InventoryRow.acquired_at.desc())
            ).scalars()
            return [_to_record(InventoryItemRecord, row) for row in rows]

    def get_health(self, user_id: str, day: date) -> Optional[HealthRecord]:
        with self._session() as session:
            row = session.get(HealthRow, (user_id, day))
            return _to_record(HealthRecord, row) if row else None

    def list_health(self, user_id: str) -> list[HealthRecord]:
        with self._session() as session:
            rows = session.execute(
                select(HealthRow)
                .where(HealthRow.user_id == user_id)
                .order_by(HealthRow.date.desc())
            ).scalars()
            return [_to_record(HealthRecord, row) for row in rows]

    def get_progress(self, user_id: str) -> Optional[ProgressSnapshot]:
        with self._session() as session:
            row = session.get(ProgressRow, user_id)
            return _to_record(ProgressSnapshot, row) if row else None

    def get_credential(self, email: str) -> Optional[CredentialRecord]:
        with self._session() as session:
            row = session.get(CredentialRow, email)
            return _to_record(CredentialRecord, row) if row else None

    def commit(self, batch: WriteBatch) -> None:
        with self._session() as session:
            try:
                # The user row goes first so a competing writer blocks on its lock.
                if batch.user_fields:
                    self._update_user(session, batch)
                for op in batch.ops:
                    row_cls = ROWS_BY_KIND[op.kind]
                    if op.action == "put":
                        session.merge(row_cls(**_row_values(op.record)))
                        # Constraint violations surface here rather than at commit.
                        session.flush()
                    else:
                        row = session.get(row_cls, _row_key(op.kind, batch.user_id, op.key))
                        if row is not None:
                            session.delete(row)
                session.commit()
            except IntegrityError as e:
                session.rollback()
                if batch.puts(INVENTORY):
                    raise AlreadyOwned() from e
                raise AlreadyExists("User already exists with this email") from e
            except (NotFound, Conflict):
                session.rollback()
                raise

    @staticmethod
    def _update_user(session: Session, batch: WriteBatch) -> None:
        """Conditional update: matches no row if another writer got there first."""
        stmt = update(UserRow).where(UserRow.user_id == batch.user_id)
        if batch.expected_version is not None:
            stmt = stmt.where(UserRow.version == batch.expected_version)
        result = session.execute(
            stmt.values(version=UserRow.version + 1, **batch.user_fields)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return
        if session.get(UserRow, batch.user_id) is None:
            raise NotFound("User not found")
        raise Conflict()

    def delete_user(self, user_id: str) -> None:
        with self._session() as session:
            for row_cls in (
                TaskRow,
                PlantRow,
                InventoryRow,
                HealthRow,
                ProgressRow,
                CredentialRow,
                SessionRow,
                UserRow,
            ):
                session.execute(delete(row_cls).where(row_cls.user_id == user_id))
            session.commit()

    def create_session(self, record: SessionRecord) -> None:
        with self._session() as session:
            session.add(SessionRow(**_row_values(record)))
            session.commit()

    def get_session(self, token_hash: str) -> Optional[SessionRecord]:
        with self._session() as session:
            row = session.get(SessionRow, token_hash)
            return _to_record(SessionRecord, row) if row else None

    def delete_session(self, token_hash: str) -> None:
        with self._session() as session:
            session.execute(delete(SessionRow).where(SessionRow.token_hash == token_hash))
            session.commit()

    def purge_expired_sessions(self, now: datetime) -> int:
        with self._session() as session:
            result = session.execute(
                delete(SessionRow).where(SessionRow.expires_at < now)
            )
            session.commit()
            return result.rowcount or 0


def _row_values(record: Any) -> dict:
    return asdict(record)


def _row_key(kind: str, user_id: str, key: str):
    if kind == HEALTH:
        return (user_id, date.fromisoformat(key))
    if kind == PROGRESS:
        return user_id
    return key


def _to_record(record_cls, row):
    return record_cls(
        **{f.name: _aware(getattr(row, f.name)) for f in fields(record_cls)}
    )


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    goals = Column(JSON, nullable=False, default=list)
    user_theme = Column(String, nullable=False, default="default")
    user_coins = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    last_active_at = Column(DateTime(timezone=True), nullable=True)
    last_logout_at = Column(DateTime(timezone=True), nullable=True)
    last_purchase_at = Column(DateTime(timezone=True), nullable=True)
    theme_changed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=0)


class TaskRow(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    text = Column(String(500), nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    priority = Column(String, nullable=False, default="medium")
    category = Column(String, nullable=False, default="")
    due_date = Column(Date, nullable=True, index=True)
    recurring = Column(String, nullable=False, default="none")
    is_starter_task = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class PlantRow(Base):
    __tablename__ = "plants"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    tasks_completed = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class InventoryRow(Base):
    __tablename__ = "user_inventory"
    __table_args__ = (UniqueConstraint("user_id", "item_id"),)

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    item_id = Column(String, nullable=False)
    item_type = Column(String, nullable=False)
    item_name = Column(String, nullable=False)
    price = Column(Integer, nullable=False)
    acquired_at = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    last_activated_at = Column(DateTime(timezone=True), nullable=True)


class HealthRow(Base):
    __tablename__ = "health_data"

    user_id = Column(String, primary_key=True)
    date = Column(Date, primary_key=True)
    calories_consumed = Column(Integer, nullable=False, default=0)
    calories_goal = Column(Integer, nullable=False, default=2000)
    water_glasses = Column(Integer, nullable=False, default=0)
    water_goal = Column(Integer, nullable=False, default=8)
    exercise_minutes = Column(Integer, nullable=False, default=0)
    exercise_goal = Column(Integer, nullable=False, default=30)
    sleep_hours = Column(Float, nullable=False, default=0.0)
    sleep_goal = Column(Float, nullable=False, default=8.0)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class ProgressRow(Base):
    __tablename__ = "progress_snapshots"

    user_id = Column(String, primary_key=True)
    state = Column(JSON, nullable=False, default=dict)
    session_active = Column(Boolean, nullable=False, default=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    session_ended_at = Column(DateTime(timezone=True), nullable=True)


class CredentialRow(Base):
    __tablename__ = "user_credentials"

    email = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)


class SessionRow(Base):
    __tablename__ = "user_sessions"

    token_hash = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


ROWS_BY_KIND = {
    USERS: UserRow,
    TASKS: TaskRow,
    PLANTS: PlantRow,
    INVENTORY: InventoryRow,
    HEALTH: HealthRow,
    PROGRESS: ProgressRow,
    CREDENTIALS: CredentialRow,
}
