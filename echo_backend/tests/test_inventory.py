import unittest

from echo_backend.errors import AlreadyOwned, InsufficientFunds, InvalidInput, NotOwned
from echo_backend.tests.factories import make_services, make_user


class InventoryServiceTests(unittest.TestCase):
    def setUp(self):
        self.services = make_services()
        self.inventory = self.services.inventory
        make_user(self.services, "u1", coins=100)

    def user(self):
        return self.services.store.get_user("u1")

    def active_themes(self):
        return [i.item_id for i in self.inventory.list("u1") if i.is_theme and i.is_active]

    def test_purchase_decoration_is_active_immediately(self):
        result = self.inventory.purchase("u1", "lantern-1", "decoration", 20)

        self.assertEqual(result.remaining_coins, 80)
        self.assertFalse(result.theme_activated)
        (item,) = self.inventory.list("u1")
        self.assertTrue(item.is_active)
        self.assertEqual(item.item_name, "lantern-1")
        self.assertEqual(self.user().user_coins, 80)
        self.assertIsNotNone(self.user().last_purchase_at)

    def test_first_theme_activates_while_on_default(self):
        result = self.inventory.purchase("u1", "theme_dark", "theme", 30, item_name="Dark")

        self.assertTrue(result.theme_activated)
        self.assertEqual(self.user().user_theme, "theme_dark")
        self.assertEqual(self.active_themes(), ["theme_dark"])
        self.assertIsNotNone(self.user().theme_changed_at)

    def test_theme_stays_inactive_without_auto_activate(self):
        self.inventory.purchase("u1", "theme_dark", "theme", 10)
        result = self.inventory.purchase("u1", "theme_ocean", "theme", 10)

        self.assertFalse(result.theme_activated)
        self.assertEqual(self.user().user_theme, "theme_dark")
        self.assertEqual(self.active_themes(), ["theme_dark"])

    def test_auto_activate_replaces_active_theme(self):
        self.inventory.purchase("u1", "theme_dark", "theme", 10)
        result = self.inventory.purchase(
            "u1", "theme_ocean", "theme", 10, auto_activate=True
        )

        self.assertTrue(result.theme_activated)
        self.assertEqual(self.user().user_theme, "theme_ocean")
        self.assertEqual(self.active_themes(), ["theme_ocean"])

    def test_duplicate_purchase_fails_without_charging(self):
        self.inventory.purchase("u1", "rose", "plant-skin", 25)
        with self.assertRaises(AlreadyOwned):
            self.inventory.purchase("u1", "rose", "plant-skin", 25)
        self.assertEqual(self.user().user_coins, 75)
        self.assertEqual(len(self.inventory.list("u1")), 1)

    def test_balance_is_checked_before_ownership(self):
        self.inventory.purchase("u1", "rose", "plant-skin", 100)
        with self.assertRaises(InsufficientFunds):
            self.inventory.purchase("u1", "rose", "plant-skin", 1)

    def test_insufficient_funds(self):
        with self.assertRaises(InsufficientFunds):
            self.inventory.purchase("u1", "theme_space", "theme", 101)
        self.assertEqual(self.user().user_coins, 100)
        self.assertEqual(self.inventory.list("u1"), [])

    def test_rejects_bad_items(self):
        with self.assertRaises(InvalidInput):
            self.inventory.purchase("u1", "x", "sticker", 1)
        with self.assertRaises(InvalidInput):
            self.inventory.purchase("u1", "", "theme", 1)
        with self.assertRaises(InvalidInput):
            self.inventory.purchase("u1", "x", "theme", -5)

    def test_activate_owned_theme(self):
        self.inventory.purchase("u1", "theme_dark", "theme", 10)
        self.inventory.purchase("u1", "theme_forest", "theme", 10)

        self.inventory.activate("u1", "theme_forest")

        self.assertEqual(self.user().user_theme, "theme_forest")
        self.assertEqual(self.active_themes(), ["theme_forest"])
        forest = next(i for i in self.inventory.list("u1") if i.item_id == "theme_forest")
        self.assertIsNotNone(forest.last_activated_at)

    def test_activate_unowned_theme(self):
        with self.assertRaises(NotOwned):
            self.inventory.activate("u1", "theme_space")
        self.assertEqual(self.user().user_theme, "default")

    def test_decoration_cannot_be_activated_as_theme(self):
        self.inventory.purchase("u1", "fountain-1", "decoration", 10)
        with self.assertRaises(NotOwned):
            self.inventory.activate("u1", "fountain-1")

    def test_activate_default_without_themes(self):
        self.inventory.activate("u1", "default")
        self.assertEqual(self.user().user_theme, "default")

    def test_activate_default_deactivates_current_theme(self):
        self.inventory.purchase("u1", "theme_dark", "theme", 10)
        self.inventory.activate("u1", "default")

        self.assertEqual(self.user().user_theme, "default")
        self.assertEqual(self.active_themes(), [])

    def test_active_theme_view(self):
        self.inventory.purchase("u1", "theme_dark", "theme", 10)
        view = self.inventory.active_theme(self.user(), self.inventory.list("u1"))
        self.assertEqual(view.id, "theme_dark")
        self.assertEqual(view.as_dict()["details"]["itemId"], "theme_dark")


if __name__ == "__main__":
    unittest.main()
