"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from typing import Optional

import firebase_admin
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import credentials, firestore

from echo_backend.auth import Authenticator, FirebaseAuthenticator, JwtAuthenticator
from echo_backend.config import get_settings
from echo_backend.db import EchoStore, InMemoryStore, SqlStore
from echo_backend.errors import Unauthorized
from echo_backend.firestore_db import FirestoreStore
from echo_backend.locks import InMemoryUserLocks, RedisUserLocks, UserLockProvider
from echo_backend.services import EchoServices, build_services

logger = logging.getLogger(__name__)

_store: EchoStore | None = None
_locks: UserLockProvider | None = None
_authenticator: Authenticator | None = None
_services: EchoServices | None = None

bearer_scheme = HTTPBearer(auto_error=False)


def get_firebase_app() -> firebase_admin.App:
    try:
        return firebase_admin.get_app()
    except ValueError:
        settings = get_settings()
        cred = (
            credentials.Certificate(settings.firebase_credentials_path)
            if settings.firebase_credentials_path
            else credentials.ApplicationDefault()
        )
        options = (
            {"projectId": settings.firebase_project_id}
            if settings.firebase_project_id
            else None
        )
        return firebase_admin.initialize_app(cred, options)


def get_store() -> EchoStore:
    """
    Return a singleton store so user state persists across requests.
    """
    global _store
    if _store:
        return _store

    settings = get_settings()
    if settings.use_in_memory_backends or settings.store_backend == "memory":
        _store = InMemoryStore()
    elif settings.store_backend == "firestore":
        _store = FirestoreStore(firestore.client(get_firebase_app()))
    elif settings.database_url:
        _store = SqlStore(settings.database_url)
    else:
        logger.warning("DATABASE_URL is not set; using the in-memory store")
        _store = InMemoryStore()
    return _store


def get_locks() -> UserLockProvider:
    global _locks
    if _locks:
        return _locks

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _locks = RedisUserLocks(
            url=settings.redis_url,
            key_prefix=settings.lock_key_prefix,
            timeout_seconds=settings.lock_timeout_seconds,
            blocking_timeout_seconds=settings.lock_blocking_timeout_seconds,
        )
    else:
        # Only orders requests within this process; across processes the
        # stores reject commits made from a stale user version.
        _locks = InMemoryUserLocks()
    return _locks


def get_authenticator() -> Authenticator:
    global _authenticator
    if _authenticator:
        return _authenticator

    settings = get_settings()
    store = get_store()
    if settings.auth_mode == "firebase":
        _authenticator = FirebaseAuthenticator(
            store, app=get_firebase_app(), bcrypt_rounds=settings.bcrypt_rounds
        )
    else:
        if isinstance(store, FirestoreStore):
            raise ValueError("JWT auth needs a store with session support (sql or memory)")
        _authenticator = JwtAuthenticator(
            store,
            store,
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expires_days=settings.jwt_expires_days,
            bcrypt_rounds=settings.bcrypt_rounds,
        )
    return _authenticator


def get_services() -> EchoServices:
    global _services
    if _services:
        return _services

    _services = build_services(
        get_store(),
        get_locks(),
        get_authenticator(),
        starting_coins=get_settings().starting_coins,
    )
    return _services


def get_bearer_token(
    auth: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    if auth is None or not auth.credentials:
        raise Unauthorized("Access token required")
    return auth.credentials


def get_current_user_id(
    token: str = Depends(get_bearer_token),
    services: EchoServices = Depends(get_services),
) -> str:
    return services.authenticator.resolve(token)
