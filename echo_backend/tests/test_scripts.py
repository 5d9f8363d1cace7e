import unittest

from fastapi.testclient import TestClient

from echo_backend.app import create_app
from echo_backend.dependencies import get_services
from echo_backend.tests.factories import make_services
from scripts.seed_demo_user import OWNED_ITEMS, item_type_for, seed_demo_user
from scripts.smoke_test_api import run_smoke


class SmokeScriptTests(unittest.TestCase):
    def test_full_session_against_app(self):
        services = make_services()
        app = create_app()
        app.dependency_overrides[get_services] = lambda: services
        progress = run_smoke(TestClient(app))

        self.assertEqual(progress["user"]["userCoins"], 5)
        self.assertEqual(progress["activeTheme"]["id"], "theme_ocean")
        self.assertEqual(progress["progressSnapshot"]["level"], 2)


class SeedDemoUserTests(unittest.TestCase):
    def setUp(self):
        self.services = make_services()

    def test_item_types(self):
        self.assertEqual(item_type_for("theme_dark"), "theme")
        self.assertEqual(item_type_for("lantern-2"), "decoration")
        self.assertEqual(item_type_for("fountain-1"), "decoration")
        self.assertEqual(item_type_for("cactus"), "plant-skin")

    def test_seed_creates_demo_account(self):
        user_id = seed_demo_user(self.services)
        self.assertIsNotNone(user_id)

        user = self.services.store.get_user(user_id)
        self.assertEqual(user.user_coins, 999999)
        self.assertEqual(user.email, "test@test.com")

        items = self.services.inventory.list(user_id)
        self.assertEqual(sorted(i.item_id for i in items), sorted(OWNED_ITEMS))
        self.assertTrue(all(not i.is_active for i in items if i.is_theme))
        self.assertTrue(all(i.is_active for i in items if not i.is_theme))

        plant = self.services.growth.primary(user_id)
        self.assertEqual(plant.name, "Test Garden Rose")
        self.assertEqual(plant.tasks_completed, 25)

        login = self.services.accounts.login("test@test.com", "test123")
        self.assertEqual(login.user.user_id, user_id)

    def test_seed_is_idempotent(self):
        seed_demo_user(self.services)
        self.assertIsNone(seed_demo_user(self.services))


if __name__ == "__main__":
    unittest.main()
