"""
Owned items, purchases and theme activation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from echo_backend.db import (
    INVENTORY,
    EchoStore,
    WriteBatch,
    require_user,
    retry_on_conflict,
)
from echo_backend.errors import AlreadyOwned, InsufficientFunds, InvalidInput, NotOwned
from echo_backend.ledger import Ledger, check_amount
from echo_backend.locks import UserLockProvider
from echo_backend.records import InventoryItemRecord, UserRecord, utcnow
from shared.constants import DEFAULT_THEME, ITEM_TYPES, THEME_ITEM_TYPE

logger = logging.getLogger(__name__)


@dataclass
class PurchaseResult:
    item_id: str
    item_type: str
    remaining_coins: int
    theme_activated: bool

    def as_dict(self) -> dict:
        return {
            "success": True,
            "itemId": self.item_id,
            "itemType": self.item_type,
            "remainingCoins": self.remaining_coins,
            "themeActivated": self.theme_activated,
        }


@dataclass
class ActiveTheme:
    id: str
    details: Optional[InventoryItemRecord] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "details": self.details.as_dict() if self.details else None,
        }


class InventoryService:
    def __init__(self, store: EchoStore, locks: UserLockProvider, ledger: Ledger):
        self.store = store
        self.locks = locks
        self.ledger = ledger

    def list(self, user_id: str) -> list[InventoryItemRecord]:
        return self.store.list_inventory(user_id)

    @retry_on_conflict
    def purchase(
        self,
        user_id: str,
        item_id: str,
        item_type: str,
        price: int,
        item_name: Optional[str] = None,
        auto_activate: bool = False,
    ) -> PurchaseResult:
        if not item_id:
            raise InvalidInput("Item id is required")
        if item_type not in ITEM_TYPES:
            raise InvalidInput(f"Unknown item type: {item_type}")
        check_amount(price)

        with self.locks.hold(user_id):
            user = require_user(self.store, user_id)
            if user.user_coins < price:
                raise InsufficientFunds()
            items = self.store.list_inventory(user_id)
            if any(item.item_id == item_id for item in items):
                raise AlreadyOwned()

            batch = WriteBatch(user_id)
            remaining = self.ledger.stage_debit(batch, user, price)
            now = utcnow()
            batch.update_user(last_purchase_at=now)

            is_theme = item_type == THEME_ITEM_TYPE
            theme_activated = is_theme and (
                user.user_theme == DEFAULT_THEME or auto_activate
            )
            item = InventoryItemRecord(
                id=self.store.new_id(),
                user_id=user_id,
                item_id=item_id,
                item_type=item_type,
                item_name=item_name or item_id,
                price=price,
                acquired_at=now,
                is_active=not is_theme,
            )
            if theme_activated:
                self.stage_activation(batch, user, item_id, items + [item])
            else:
                batch.put(INVENTORY, item)
            self.store.commit(batch)

        logger.info(f"Item purchased: {item_id} for user {user_id}")
        return PurchaseResult(
            item_id=item_id,
            item_type=item_type,
            remaining_coins=remaining,
            theme_activated=theme_activated,
        )

    @retry_on_conflict
    def activate(self, user_id: str, theme_id: str) -> str:
        if not theme_id:
            raise InvalidInput("Theme ID is required")
        with self.locks.hold(user_id):
            user = require_user(self.store, user_id)
            batch = WriteBatch(user_id)
            self.stage_activation(
                batch, user, theme_id, self.store.list_inventory(user_id)
            )
            self.store.commit(batch)
        logger.info(f"Theme activated: {theme_id} for user {user_id}")
        return theme_id

    def stage_activation(
        self,
        batch: WriteBatch,
        user: UserRecord,
        theme_id: str,
        items: list[InventoryItemRecord],
        require_owned: bool = True,
    ) -> None:
        """
        Make ``theme_id`` the single active theme.

        Every owned theme is rewritten so exactly the target ends up active;
        ``default`` has no inventory row and simply deactivates the rest.
        """
        themes = [item for item in items if item.is_theme]
        owned = any(item.item_id == theme_id for item in themes)
        if require_owned and theme_id != DEFAULT_THEME and not owned:
            raise NotOwned()

        now = utcnow()
        for item in themes:
            if item.item_id == theme_id:
                batch.put(INVENTORY, replace(item, is_active=True, last_activated_at=now))
            elif item.is_active:
                batch.put(INVENTORY, replace(item, is_active=False))

        batch.expect(user)
        batch.update_user(user_theme=theme_id, theme_changed_at=now, updated_at=now)
        user.user_theme = theme_id

    def active_theme(self, user: UserRecord, items: list[InventoryItemRecord]) -> ActiveTheme:
        details = next(
            (item for item in items if item.is_theme and item.is_active), None
        )
        return ActiveTheme(id=user.user_theme, details=details)
