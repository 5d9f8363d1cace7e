"""
Assembles the core components around one store, lock provider and authenticator.
"""

from __future__ import annotations

from dataclasses import dataclass

from echo_backend.accounts import AccountService
from echo_backend.auth import Authenticator
from echo_backend.db import EchoStore
from echo_backend.growth import GrowthTracker
from echo_backend.health import HealthService
from echo_backend.inventory import InventoryService
from echo_backend.ledger import Ledger
from echo_backend.locks import UserLockProvider
from echo_backend.progress import ProgressManager
from echo_backend.tasks import TaskTracker
from shared.constants import STARTING_COINS


@dataclass
class EchoServices:
    store: EchoStore
    locks: UserLockProvider
    authenticator: Authenticator
    ledger: Ledger
    growth: GrowthTracker
    inventory: InventoryService
    tasks: TaskTracker
    progress: ProgressManager
    health: HealthService
    accounts: AccountService


def build_services(
    store: EchoStore,
    locks: UserLockProvider,
    authenticator: Authenticator,
    starting_coins: int = STARTING_COINS,
) -> EchoServices:
    ledger = Ledger(store, locks)
    growth = GrowthTracker(store, locks)
    inventory = InventoryService(store, locks, ledger)
    tasks = TaskTracker(store, locks, ledger, growth)
    progress = ProgressManager(store, locks, ledger, inventory)
    return EchoServices(
        store=store,
        locks=locks,
        authenticator=authenticator,
        ledger=ledger,
        growth=growth,
        inventory=inventory,
        tasks=tasks,
        progress=progress,
        health=HealthService(store, locks),
        accounts=AccountService(
            store,
            locks,
            authenticator,
            tasks,
            growth,
            progress,
            starting_coins=starting_coins,
        ),
    )
