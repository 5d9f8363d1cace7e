import unittest
from datetime import date, timedelta

from echo_backend.errors import InvalidInput, NotFound
from echo_backend.tests.factories import make_services, make_user


class TaskTrackerTests(unittest.TestCase):
    def setUp(self):
        self.services = make_services()
        self.tasks = self.services.tasks
        make_user(self.services, "u1", coins=10)
        make_user(self.services, "u2", coins=10)

    def coins(self, user_id="u1"):
        return self.services.store.get_user(user_id).user_coins

    def plant_count(self, user_id="u1"):
        return self.services.growth.primary(user_id).tasks_completed

    def test_create_defaults(self):
        task = self.tasks.create("u1", "Water the plants")
        self.assertFalse(task.completed)
        self.assertEqual(task.priority, "medium")
        self.assertEqual(task.recurring, "none")
        self.assertEqual(task.category, "")
        self.assertIsNone(task.due_date)
        self.assertEqual(self.tasks.get("u1", task.id).text, "Water the plants")

    def test_create_parses_due_date(self):
        task = self.tasks.create("u1", "Pay rent", due_date="2026-11-01")
        self.assertEqual(task.due_date, date(2026, 11, 1))

    def test_create_rejects_bad_enums(self):
        with self.assertRaises(InvalidInput):
            self.tasks.create("u1", "x", priority="urgent")
        with self.assertRaises(InvalidInput):
            self.tasks.create("u1", "x", recurring="hourly")

    def test_list_newest_first(self):
        for text in ("first", "second", "third"):
            self.tasks.create("u1", text)
        listed = self.tasks.list("u1")
        self.assertEqual(len(listed), 3)
        self.assertEqual(
            listed, sorted(listed, key=lambda t: t.created_at, reverse=True)
        )
        self.assertEqual(self.tasks.list("u2"), [])

    def test_toggle_to_completed_rewards_once(self):
        task = self.tasks.create("u1", "Run", priority="high")
        change = self.tasks.toggle("u1", task.id)

        self.assertTrue(change.task.completed)
        self.assertEqual(change.reward.coins, 10)
        self.assertEqual(change.reward.balance, 20)
        self.assertEqual(change.reward.plant.tasks_completed, 1)
        self.assertEqual(self.coins(), 20)
        self.assertEqual(self.plant_count(), 1)

    def test_uncompleting_keeps_reward(self):
        task = self.tasks.create("u1", "Read", priority="low")
        self.tasks.toggle("u1", task.id)
        change = self.tasks.toggle("u1", task.id)

        self.assertFalse(change.task.completed)
        self.assertIsNone(change.reward)
        self.assertEqual(self.coins(), 12)
        self.assertEqual(self.plant_count(), 1)

    def test_every_completion_transition_pays(self):
        task = self.tasks.create("u1", "Stretch", priority="medium")
        self.tasks.toggle("u1", task.id)
        self.tasks.toggle("u1", task.id)
        self.tasks.toggle("u1", task.id)
        self.assertEqual(self.coins(), 20)
        self.assertEqual(self.plant_count(), 2)

    def test_update_completed_on_completed_task_pays_nothing(self):
        task = self.tasks.create("u1", "Cook", priority="high")
        self.tasks.update("u1", task.id, {"completed": True})
        change = self.tasks.update("u1", task.id, {"completed": True, "text": "Cook dinner"})
        self.assertIsNone(change.reward)
        self.assertEqual(change.task.text, "Cook dinner")
        self.assertEqual(self.coins(), 20)

    def test_update_rejects_unknown_fields(self):
        task = self.tasks.create("u1", "x")
        with self.assertRaises(InvalidInput):
            self.tasks.update("u1", task.id, {"user_id": "u2"})

    def test_reward_without_plant_still_credits(self):
        make_user(self.services, "bare", coins=0, plant_name=None)
        task = self.tasks.create("bare", "Solo", priority="high")
        with self.assertLogs("echo_backend.growth", level="WARNING"):
            change = self.tasks.toggle("bare", task.id)
        self.assertIsNone(change.reward.plant)
        self.assertEqual(self.coins("bare"), 10)

    def test_missing_or_foreign_task_is_not_found(self):
        task = self.tasks.create("u1", "mine")
        with self.assertRaises(NotFound):
            self.tasks.toggle("u1", "nope")
        with self.assertRaises(NotFound):
            self.tasks.toggle("u2", task.id)
        with self.assertRaises(NotFound):
            self.tasks.update("u2", task.id, {"text": "stolen"})
        with self.assertRaises(NotFound):
            self.tasks.delete("u2", task.id)
        self.assertEqual(self.coins("u2"), 10)

    def test_delete(self):
        task = self.tasks.create("u1", "temp")
        self.tasks.delete("u1", task.id)
        with self.assertRaises(NotFound):
            self.tasks.get("u1", task.id)

    def test_stats_uses_calendar_dates(self):
        today = date(2026, 10, 18)
        self.tasks.create("u1", "late", due_date=today - timedelta(days=1))
        self.tasks.create("u1", "today", due_date=today)
        done = self.tasks.create("u1", "done late", due_date=today - timedelta(days=3))
        self.tasks.create("u1", "someday")
        self.tasks.toggle("u1", done.id)

        stats = self.tasks.stats("u1", today=today)
        self.assertEqual(
            stats.as_dict(), {"total": 4, "completed": 1, "overdue": 1, "dueToday": 1}
        )

    def test_search(self):
        self.tasks.create("u1", "Buy milk", category="Errands", priority="low")
        self.tasks.create("u1", "Call mom", category="Family", priority="high")
        gym = self.tasks.create("u1", "Gym session", category="Health", priority="high")
        self.tasks.toggle("u1", gym.id)

        self.assertEqual([t.text for t in self.tasks.search("u1", query="MILK")], ["Buy milk"])
        self.assertEqual([t.text for t in self.tasks.search("u1", query="fam")], ["Call mom"])
        self.assertEqual(len(self.tasks.search("u1", priority="high")), 2)
        self.assertEqual(
            [t.text for t in self.tasks.search("u1", priority="high", completed=False)],
            ["Call mom"],
        )
        self.assertEqual(len(self.tasks.search("u1", category="Errands")), 1)
        self.assertEqual(len(self.tasks.search("u1", limit=2)), 2)

    def test_bulk_delete_isolates_failures(self):
        task = self.tasks.create("u1", "A")
        result = self.tasks.bulk("u1", "delete", [task.id, "missing"])

        self.assertEqual(result.successful, 1)
        self.assertEqual(result.failed, 1)
        self.assertEqual(result.as_dict()["results"][1]["error"], "Task not found")
        self.assertEqual(self.tasks.list("u1"), [])

    def test_bulk_complete_rewards_each_task(self):
        a = self.tasks.create("u1", "A", priority="high")
        b = self.tasks.create("u1", "B", priority="low")
        result = self.tasks.bulk("u1", "complete", [a.id, b.id])
        self.assertEqual(result.successful, 2)
        self.assertEqual(self.coins(), 22)
        self.assertEqual(self.plant_count(), 2)

    def test_bulk_update(self):
        a = self.tasks.create("u1", "A")
        result = self.tasks.bulk("u1", "update", [a.id], {"category": "Work"})
        self.assertEqual(result.successful, 1)
        self.assertEqual(self.tasks.get("u1", a.id).category, "Work")

    def test_bulk_rejects_bad_requests(self):
        with self.assertRaises(InvalidInput):
            self.tasks.bulk("u1", "archive", ["a"])
        with self.assertRaises(InvalidInput):
            self.tasks.bulk("u1", "update", ["a"])


if __name__ == "__main__":
    unittest.main()
