"""
Credential checking and bearer-token handling.

Two authenticators share one password store (bcrypt hashes kept alongside
the user aggregate):

* ``JwtAuthenticator`` signs its own tokens and keeps a session row per token,
  so logout and expiry sweeps can invalidate them.
* ``FirebaseAuthenticator`` delegates identities and tokens to Firebase Auth.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import replace
from datetime import timedelta
from typing import Optional, Protocol

import bcrypt
from firebase_admin import auth as firebase_auth
from jose import JWTError, jwt

from echo_backend.db import CREDENTIALS, EchoStore, SessionStore, WriteBatch
from echo_backend.errors import AlreadyExists, Unauthorized
from echo_backend.records import CredentialRecord, SessionRecord, utcnow

logger = logging.getLogger(__name__)


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


def token_hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class Authenticator(Protocol):
    """Resolves credentials and bearer tokens to user ids."""

    def create_identity(self, email: str, password: str, name: str) -> str:
        ...

    def new_credential(self, email: str, password: str, user_id: str) -> CredentialRecord:
        ...

    def authenticate(self, email: str, password: str) -> CredentialRecord:
        ...

    def issue_token(self, user_id: str, email: str) -> Optional[str]:
        ...

    def resolve(self, token: str) -> str:
        ...

    def revoke(self, token: str, user_id: str) -> None:
        ...

    def delete_identity(self, user_id: str) -> None:
        ...

    def sweep_expired(self) -> int:
        ...


class PasswordAuthenticator:
    """Email/password checks against the stored bcrypt hashes."""

    def __init__(self, store: EchoStore, bcrypt_rounds: int = 12):
        self.store = store
        self.bcrypt_rounds = bcrypt_rounds

    def new_credential(self, email: str, password: str, user_id: str) -> CredentialRecord:
        return CredentialRecord(
            email=email,
            user_id=user_id,
            password_hash=hash_password(password, self.bcrypt_rounds),
        )

    def authenticate(self, email: str, password: str) -> CredentialRecord:
        credential = self.store.get_credential(email)
        if credential is None or not verify_password(password, credential.password_hash):
            raise Unauthorized()
        credential = replace(credential, last_login_at=utcnow())
        batch = WriteBatch(credential.user_id)
        batch.put(CREDENTIALS, credential)
        self.store.commit(batch)
        logger.info(f"User authenticated successfully: {email}")
        return credential


class JwtAuthenticator(PasswordAuthenticator):
    def __init__(
        self,
        store: EchoStore,
        sessions: SessionStore,
        secret: str,
        algorithm: str = "HS256",
        expires_days: int = 7,
        bcrypt_rounds: int = 12,
    ):
        super().__init__(store, bcrypt_rounds)
        self.sessions = sessions
        self.secret = secret
        self.algorithm = algorithm
        self.expires_days = expires_days

    def create_identity(self, email: str, password: str, name: str) -> str:
        return self.store.new_id()

    def issue_token(self, user_id: str, email: str) -> str:
        now = utcnow()
        expires_at = now + timedelta(days=self.expires_days)
        token = jwt.encode(
            {
                "sub": user_id,
                "email": email,
                "iat": now,
                "exp": expires_at,
                "jti": uuid.uuid4().hex,
            },
            self.secret,
            algorithm=self.algorithm,
        )
        self.sessions.create_session(
            SessionRecord(
                token_hash=token_hash(token),
                user_id=user_id,
                expires_at=expires_at,
                created_at=now,
            )
        )
        return token

    def resolve(self, token: str) -> str:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise Unauthorized("Invalid token.") from e
        user_id = payload.get("sub")
        if not user_id:
            raise Unauthorized("Invalid token.")
        session = self.sessions.get_session(token_hash(token))
        if session is None or session.expires_at <= utcnow() or session.user_id != user_id:
            raise Unauthorized("Token expired or invalid.")
        return user_id

    def revoke(self, token: str, user_id: str) -> None:
        self.sessions.delete_session(token_hash(token))

    def delete_identity(self, user_id: str) -> None:
        # Sessions and credentials go with the user's data.
        return None

    def sweep_expired(self) -> int:
        deleted = self.sessions.purge_expired_sessions(utcnow())
        logger.info(f"Session cleanup removed {deleted} expired sessions")
        return deleted


class FirebaseAuthenticator(PasswordAuthenticator):
    def __init__(self, store: EchoStore, app=None, bcrypt_rounds: int = 12):
        super().__init__(store, bcrypt_rounds)
        self.app = app

    def create_identity(self, email: str, password: str, name: str) -> str:
        try:
            record = firebase_auth.create_user(
                email=email,
                password=password,
                display_name=name,
                email_verified=False,
                app=self.app,
            )
        except firebase_auth.EmailAlreadyExistsError as e:
            raise AlreadyExists("User already exists with this email") from e
        return record.uid

    def issue_token(self, user_id: str, email: str) -> str:
        token = firebase_auth.create_custom_token(user_id, app=self.app)
        return token.decode("utf-8") if isinstance(token, bytes) else token

    def resolve(self, token: str) -> str:
        try:
            decoded = firebase_auth.verify_id_token(token, app=self.app)
        except (firebase_auth.InvalidIdTokenError, ValueError) as e:
            raise Unauthorized("Invalid token.") from e
        return decoded["uid"]

    def revoke(self, token: str, user_id: str) -> None:
        firebase_auth.revoke_refresh_tokens(user_id, app=self.app)

    def delete_identity(self, user_id: str) -> None:
        try:
            firebase_auth.delete_user(user_id, app=self.app)
        except firebase_auth.UserNotFoundError:
            logger.warning(f"Firebase user {user_id} was already deleted")

    def sweep_expired(self) -> int:
        # Firebase expires its own tokens.
        return 0
