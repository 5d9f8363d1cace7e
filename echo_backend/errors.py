"""
Typed failures raised by the Echo core and translated at the HTTP boundary.
"""

from __future__ import annotations


class EchoError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    @classmethod
    def default_message(cls) -> str:
        return cls.__name__

    def as_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class NotFound(EchoError):
    code = "not_found"
    status_code = 404


class InsufficientFunds(EchoError):
    code = "insufficient_funds"
    status_code = 400

    @classmethod
    def default_message(cls) -> str:
        return "Insufficient coins"


class AlreadyOwned(EchoError):
    code = "already_owned"
    status_code = 400

    @classmethod
    def default_message(cls) -> str:
        return "Item already owned"


class NotOwned(EchoError):
    code = "not_owned"
    status_code = 403

    @classmethod
    def default_message(cls) -> str:
        return "Theme not owned. Purchase it first."


class InvalidInput(EchoError):
    code = "invalid_input"
    status_code = 400


class AlreadyExists(EchoError):
    code = "already_exists"
    status_code = 400


class Conflict(EchoError):
    code = "conflict"
    status_code = 409

    @classmethod
    def default_message(cls) -> str:
        return "The account was changed by another request. Try again."


class Unauthorized(EchoError):
    code = "unauthorized"
    status_code = 401

    @classmethod
    def default_message(cls) -> str:
        return "Invalid credentials"


class StorageUnavailable(EchoError):
    code = "storage_unavailable"
    status_code = 503

    @classmethod
    def default_message(cls) -> str:
        return "Storage is temporarily unavailable"
