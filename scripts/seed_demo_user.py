import argparse
import logging
from dataclasses import replace
from typing import Optional

from echo_backend.db import INVENTORY, PLANTS, WriteBatch
from echo_backend.dependencies import get_services
from echo_backend.records import InventoryItemRecord, utcnow
from echo_backend.services import EchoServices

# Creates the demo account used for local testing of the shop and garden.

DEMO_EMAIL = "test@test.com"
DEMO_PASSWORD = "test123"
DEMO_NAME = "Test User"
DEMO_COINS = 999999
DEMO_GOALS = ["productive", "healthier", "organized"]
DEMO_PLANT_NAME = "Test Garden Rose"
DEMO_PLANT_TASKS = 25

OWNED_ITEMS = (
    "cactus",
    "rose",
    "sunflower",
    "fountain-1",
    "fountain-2",
    "lantern-1",
    "lantern-2",
    "lantern-3",
    "theme_dark",
    "theme_forest",
)


def item_type_for(item_id: str) -> str:
    if item_id.startswith("theme_"):
        return "theme"
    if "fountain" in item_id or "lantern" in item_id:
        return "decoration"
    return "plant-skin"


def seed_demo_user(
    services: EchoServices,
    email: str = DEMO_EMAIL,
    password: str = DEMO_PASSWORD,
    coins: int = DEMO_COINS,
) -> Optional[str]:
    """
    Create the demo user with owned items and a grown plant.

    Returns the new user id, or None when the account already exists.
    """
    if services.store.find_user_by_email(email.lower()):
        print(f"Demo user {email} already exists; nothing to do.")
        return None

    user = services.accounts.register(email, password, DEMO_NAME, DEMO_GOALS).user
    user_id = user.user_id
    services.ledger.set_balance(user_id, coins)

    with services.locks.hold(user_id):
        batch = WriteBatch(user_id)
        now = utcnow()
        for item_id in OWNED_ITEMS:
            item_type = item_type_for(item_id)
            batch.put(
                INVENTORY,
                InventoryItemRecord(
                    id=services.store.new_id(),
                    user_id=user_id,
                    item_id=item_id,
                    item_type=item_type,
                    item_name=item_id,
                    price=0,
                    acquired_at=now,
                    is_active=item_type != "theme",
                ),
            )
        plant = services.growth.primary(user_id)
        batch.put(
            PLANTS,
            replace(
                plant,
                name=DEMO_PLANT_NAME,
                tasks_completed=DEMO_PLANT_TASKS,
                updated_at=now,
            ),
        )
        services.store.commit(batch)

    print(f"✅ Demo user created: {email} ({user_id}) with {coins} coins.")
    return user_id


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Seed the demo account into the configured Echo store."
    )
    parser.add_argument("--email", default=DEMO_EMAIL)
    parser.add_argument("--password", default=DEMO_PASSWORD)
    parser.add_argument("--coins", type=int, default=DEMO_COINS)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    seed_demo_user(get_services(), args.email, args.password, args.coins)
