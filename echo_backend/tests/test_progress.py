import unittest

from echo_backend.errors import InvalidInput, NotFound
from echo_backend.tests.factories import make_services, make_user


class ProgressManagerTests(unittest.TestCase):
    def setUp(self):
        self.services = make_services()
        self.progress = self.services.progress
        make_user(self.services, "u1", coins=10)

    def user(self):
        return self.services.store.get_user("u1")

    def test_save_mirrors_coins_and_theme(self):
        self.progress.save("u1", {"userCoins": 77, "userTheme": "dark"})

        view = self.progress.load_complete("u1")
        self.assertEqual(view.user.user_coins, 77)
        self.assertEqual(view.active_theme.id, "dark")
        payload = view.as_dict()
        self.assertEqual(payload["user"]["userCoins"], 77)
        self.assertEqual(payload["activeTheme"], {"id": "dark", "details": None})

    def test_save_merges_free_form_state(self):
        self.progress.save("u1", {"level": 3, "streak": 2})
        self.progress.save("u1", {"streak": 5, "lastScreen": "garden"})

        snapshot = self.services.store.get_progress("u1")
        self.assertEqual(snapshot.state, {"level": 3, "streak": 5, "lastScreen": "garden"})
        self.assertTrue(snapshot.session_active)
        self.assertIsNotNone(snapshot.last_sync_at)
        self.assertEqual(self.user().user_coins, 10)

    def test_save_ignores_server_owned_keys(self):
        self.progress.save("u1", {"sessionActive": False, "lastSyncAt": "yesterday"})
        snapshot = self.services.store.get_progress("u1")
        self.assertEqual(snapshot.state, {})
        self.assertTrue(snapshot.session_active)

    def test_save_refreshes_last_active(self):
        self.assertIsNone(self.user().last_active_at)
        saved_at = self.progress.save("u1", {})
        self.assertEqual(self.user().last_active_at, saved_at)

    def test_save_rejects_negative_coins(self):
        with self.assertRaises(InvalidInput):
            self.progress.save("u1", {"userCoins": -1})
        self.assertIsNone(self.services.store.get_progress("u1"))
        self.assertEqual(self.user().user_coins, 10)

    def test_saved_owned_theme_becomes_the_only_active_theme(self):
        self.services.ledger.credit("u1", 100)
        self.services.inventory.purchase("u1", "theme_dark", "theme", 10)
        self.services.inventory.purchase("u1", "theme_forest", "theme", 10)

        self.progress.save("u1", {"userTheme": "theme_forest"})

        active = [
            i.item_id
            for i in self.services.inventory.list("u1")
            if i.is_theme and i.is_active
        ]
        self.assertEqual(active, ["theme_forest"])
        self.assertEqual(self.user().user_theme, "theme_forest")

    def test_load_complete_assembles_everything(self):
        self.services.tasks.create("u1", "A")
        self.services.ledger.credit("u1", 50)
        self.services.inventory.purchase("u1", "theme_dark", "theme", 10)
        self.progress.save("u1", {"level": 2})

        payload = self.progress.load_complete("u1").as_dict()

        self.assertEqual(
            set(payload),
            {
                "user",
                "tasks",
                "plants",
                "inventory",
                "activeTheme",
                "progressSnapshot",
                "loadedAt",
            },
        )
        self.assertEqual(len(payload["tasks"]), 1)
        self.assertEqual(len(payload["plants"]), 1)
        self.assertEqual(payload["activeTheme"]["id"], "theme_dark")
        self.assertEqual(payload["activeTheme"]["details"]["itemId"], "theme_dark")
        self.assertEqual(payload["progressSnapshot"]["level"], 2)
        self.assertTrue(payload["progressSnapshot"]["sessionActive"])
        self.assertIsInstance(payload["loadedAt"], str)

    def test_end_session(self):
        self.progress.save("u1", {"level": 4})
        ended_at = self.progress.end_session("u1")

        snapshot = self.services.store.get_progress("u1")
        self.assertFalse(snapshot.session_active)
        self.assertEqual(snapshot.session_ended_at, ended_at)
        self.assertEqual(snapshot.state, {"level": 4})
        self.assertEqual(self.user().last_logout_at, ended_at)

    def test_end_session_without_snapshot(self):
        self.progress.end_session("u1")
        self.assertFalse(self.services.store.get_progress("u1").session_active)

    def test_unknown_user(self):
        with self.assertRaises(NotFound):
            self.progress.save("missing", {"level": 1})
        with self.assertRaises(NotFound):
            self.progress.load_complete("missing")


if __name__ == "__main__":
    unittest.main()
