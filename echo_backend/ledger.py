"""
Coin balance arithmetic.

Every balance change goes through the Ledger so the balance can never drop
below zero. The ``stage_*`` helpers let other components put a balance change
into the same ``WriteBatch`` as their own writes while they already hold the
user's lock.
"""

from __future__ import annotations

import logging

from echo_backend.db import EchoStore, WriteBatch, require_user, retry_on_conflict
from echo_backend.errors import InsufficientFunds, InvalidInput
from echo_backend.locks import UserLockProvider
from echo_backend.records import UserRecord, utcnow

logger = logging.getLogger(__name__)

ADD = "add"
SUBTRACT = "subtract"
DEDUCT = "deduct"
SET = "set"
OPERATIONS = (ADD, SUBTRACT, DEDUCT, SET)


def check_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidInput("Amount must be a non-negative integer")
    return amount


class Ledger:
    def __init__(self, store: EchoStore, locks: UserLockProvider):
        self.store = store
        self.locks = locks

    def balance(self, user_id: str) -> int:
        return require_user(self.store, user_id).user_coins

    def credit(self, user_id: str, amount: int) -> int:
        return self._apply(user_id, self.stage_credit, amount)

    def debit(self, user_id: str, amount: int) -> int:
        return self._apply(user_id, self.stage_debit, amount)

    def set_balance(self, user_id: str, amount: int) -> int:
        return self._apply(user_id, self.stage_set, amount)

    def adjust(self, user_id: str, amount: int, operation: str = ADD) -> int:
        """
        Apply an externally requested correction.

        ``subtract``/``deduct`` clamp at zero instead of failing; purchases
        never come through here and use ``stage_debit`` instead.
        """
        if operation == ADD:
            return self.credit(user_id, amount)
        if operation == SET:
            return self.set_balance(user_id, amount)
        if operation in (SUBTRACT, DEDUCT):
            return self._apply(user_id, self.stage_clamped_debit, amount)
        raise InvalidInput(f"Unknown coin operation: {operation}")

    @retry_on_conflict
    def _apply(self, user_id: str, stage, amount: int) -> int:
        check_amount(amount)
        with self.locks.hold(user_id):
            user = require_user(self.store, user_id)
            batch = WriteBatch(user_id)
            balance = stage(batch, user, amount)
            self.store.commit(batch)
        logger.info(f"Balance for user {user_id} is now {balance}")
        return balance

    def stage_credit(self, batch: WriteBatch, user: UserRecord, amount: int) -> int:
        check_amount(amount)
        return self._stage_balance(batch, user, user.user_coins + amount)

    def stage_debit(self, batch: WriteBatch, user: UserRecord, amount: int) -> int:
        check_amount(amount)
        if user.user_coins < amount:
            raise InsufficientFunds()
        return self._stage_balance(batch, user, user.user_coins - amount)

    def stage_clamped_debit(
        self, batch: WriteBatch, user: UserRecord, amount: int
    ) -> int:
        check_amount(amount)
        return self._stage_balance(batch, user, max(0, user.user_coins - amount))

    def stage_set(self, batch: WriteBatch, user: UserRecord, amount: int) -> int:
        check_amount(amount)
        return self._stage_balance(batch, user, amount)

    @staticmethod
    def _stage_balance(batch: WriteBatch, user: UserRecord, balance: int) -> int:
        now = utcnow()
        batch.expect(user)
        batch.update_user(user_coins=balance, updated_at=now)
        # Later staging in the same unit must see the new balance.
        user.user_coins = balance
        user.updated_at = now
        return balance
