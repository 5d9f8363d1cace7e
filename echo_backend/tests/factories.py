"""Builders shared by the test modules."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from echo_backend.auth import JwtAuthenticator
from echo_backend.db import PLANTS, USERS, InMemoryStore, WriteBatch
from echo_backend.locks import InMemoryUserLocks
from echo_backend.records import PlantRecord, UserRecord, utcnow
from echo_backend.services import EchoServices, build_services

TEST_SECRET = "test-secret"


def make_services(store=None, starting_coins: int = 10) -> EchoServices:
    store = store if store is not None else InMemoryStore()
    authenticator = JwtAuthenticator(store, store, secret=TEST_SECRET, bcrypt_rounds=4)
    return build_services(
        store, InMemoryUserLocks(), authenticator, starting_coins=starting_coins
    )


def make_user(
    services: EchoServices,
    user_id: str = "user-1",
    coins: int = 10,
    theme: str = "default",
    plant_name: Optional[str] = "My First Plant",
    created_at: Optional[datetime] = None,
) -> UserRecord:
    """Store a user (and optionally a plant) without going through registration."""
    now = created_at or utcnow()
    user = UserRecord(
        user_id=user_id,
        email=f"{user_id}@example.com",
        name="Test User",
        user_theme=theme,
        user_coins=coins,
        created_at=now,
        updated_at=now,
    )
    batch = WriteBatch(user_id)
    batch.put(USERS, user)
    if plant_name:
        batch.put(
            PLANTS,
            PlantRecord(
                id=f"{user_id}-plant",
                user_id=user_id,
                name=plant_name,
                created_at=now - timedelta(days=1),
                updated_at=now,
            ),
        )
    services.store.commit(batch)
    return user
