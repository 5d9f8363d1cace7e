import unittest
from datetime import date, datetime, timezone
from unittest.mock import MagicMock, patch

from firebase_admin import firestore
from google.api_core import exceptions

from echo_backend.db import HEALTH, INVENTORY, PROGRESS, TASKS, WriteBatch
from echo_backend.errors import Conflict, NotFound, StorageUnavailable
from echo_backend.firestore_db import FirestoreStore, decode_record, encode_record
from echo_backend.records import HealthRecord, ProgressSnapshot, TaskRecord

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def snapshot(data, exists=True):
    snap = MagicMock()
    snap.exists = exists
    snap.to_dict.return_value = data
    return snap


class FirestoreMappingTests(unittest.TestCase):
    def test_task_documents_are_camel_case_with_iso_dates(self):
        task = TaskRecord(
            id="t1",
            user_id="u1",
            text="Walk",
            due_date=date(2026, 10, 20),
            is_starter_task=True,
            created_at=NOW,
            updated_at=NOW,
        )
        data = encode_record(TASKS, task)
        self.assertEqual(data["dueDate"], "2026-10-20")
        self.assertTrue(data["isStarterTask"])
        self.assertEqual(data["createdAt"], NOW)
        self.assertEqual(decode_record(TASKS, data, "u1"), task)

    def test_empty_due_date_decodes_to_none(self):
        task = decode_record(TASKS, {"id": "t1", "text": "x", "dueDate": ""}, "u1")
        self.assertIsNone(task.due_date)
        self.assertEqual(task.user_id, "u1")

    def test_health_documents(self):
        record = HealthRecord(user_id="u1", date=date(2026, 10, 18), sleep_hours=7.5)
        data = encode_record(HEALTH, record)
        self.assertEqual(data["date"], "2026-10-18")
        self.assertEqual(data["sleepHours"], 7.5)
        self.assertEqual(decode_record(HEALTH, data, "u1"), record)

    def test_progress_keeps_client_keys(self):
        snap = ProgressSnapshot(
            user_id="u1",
            state={"userCoins": 5, "level_name": "seedling"},
            session_active=False,
            last_sync_at=NOW,
        )
        data = encode_record(PROGRESS, snap)
        self.assertEqual(data["level_name"], "seedling")
        self.assertFalse(data["sessionActive"])
        self.assertEqual(decode_record(PROGRESS, data, "u1"), snap)


class FirestoreStoreTests(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.store = FirestoreStore(self.client)
        self.user_doc = self.client.collection.return_value.document.return_value

    def test_get_user(self):
        self.user_doc.get.return_value = snapshot(
            {
                "userId": "u1",
                "email": "u1@example.com",
                "name": "U",
                "goals": ["a"],
                "userTheme": "theme_dark",
                "userCoins": 42,
                "createdAt": NOW,
                "updatedAt": NOW,
            }
        )
        user = self.store.get_user("u1")
        self.assertEqual(user.user_coins, 42)
        self.assertEqual(user.user_theme, "theme_dark")
        self.client.collection.assert_called_with("users")
        self.client.collection.return_value.document.assert_called_with("u1")

    def test_missing_documents(self):
        self.user_doc.get.return_value = snapshot(None, exists=False)
        self.assertIsNone(self.store.get_user("u1"))

    def test_get_task_reads_subcollection(self):
        task_doc = self.user_doc.collection.return_value.document.return_value
        task_doc.get.return_value = snapshot({"id": "t1", "text": "x", "completed": True})
        task = self.store.get_task("u1", "t1")
        self.assertTrue(task.completed)
        self.user_doc.collection.assert_called_with("tasks")

    def test_list_inventory_orders_by_acquired_at(self):
        query = self.user_doc.collection.return_value.order_by.return_value
        doc = MagicMock()
        doc.to_dict.return_value = {
            "id": "i1",
            "itemId": "theme_dark",
            "itemType": "theme",
            "itemName": "Dark",
            "price": 10,
            "isActive": True,
        }
        query.stream.return_value = [doc]

        (item,) = self.store.list_inventory("u1")

        self.assertTrue(item.is_theme)
        self.assertEqual(item.user_id, "u1")
        self.user_doc.collection.assert_called_with("inventory")
        args, kwargs = self.user_doc.collection.return_value.order_by.call_args
        self.assertEqual(args, ("acquiredAt",))

    def test_child_only_commit_writes_one_batch(self):
        write = self.client.batch.return_value
        batch = WriteBatch("u1")
        batch.put(TASKS, TaskRecord(id="t1", user_id="u1", text="x"))
        batch.delete(INVENTORY, "i9")

        self.store.commit(batch)

        self.assertEqual(write.set.call_count, 1)
        self.assertEqual(write.set.call_args[0][1]["text"], "x")
        write.delete.assert_called_once()
        write.commit.assert_called_once_with()
        self.client.transaction.assert_not_called()

    def test_user_changes_commit_in_a_transaction(self):
        transaction = self.client.transaction.return_value
        self.user_doc.get.return_value = snapshot({"userId": "u1", "version": 3})
        batch = WriteBatch("u1")
        batch.put(TASKS, TaskRecord(id="t1", user_id="u1", text="x"))
        batch.expected_version = 3
        batch.update_user(user_coins=15, user_theme="theme_dark")

        with patch.object(firestore, "transactional", side_effect=lambda fn: fn):
            self.store.commit(batch)

        self.user_doc.get.assert_called_with(transaction=transaction)
        self.assertEqual(transaction.set.call_count, 1)
        transaction.update.assert_called_once_with(
            self.user_doc, {"userCoins": 15, "userTheme": "theme_dark", "version": 4}
        )
        self.client.batch.assert_not_called()

    def test_stale_user_version_is_a_conflict(self):
        transaction = self.client.transaction.return_value
        self.user_doc.get.return_value = snapshot({"userId": "u1", "version": 4})
        batch = WriteBatch("u1")
        batch.expected_version = 3
        batch.update_user(user_coins=1)

        with patch.object(firestore, "transactional", side_effect=lambda fn: fn):
            with self.assertRaises(Conflict):
                self.store.commit(batch)
            self.user_doc.get.return_value = snapshot(None, exists=False)
            with self.assertRaises(NotFound):
                self.store.commit(batch)

        transaction.update.assert_not_called()
        transaction.set.assert_not_called()

    def test_commit_errors_are_translated(self):
        write = self.client.batch.return_value
        batch = WriteBatch("u1")
        batch.put(TASKS, TaskRecord(id="t1", user_id="u1", text="x"))

        write.commit.side_effect = exceptions.NotFound("no user")
        with self.assertRaises(NotFound):
            self.store.commit(batch)

        write.commit.side_effect = exceptions.ServiceUnavailable("down")
        with self.assertRaises(StorageUnavailable):
            self.store.commit(batch)

        user_batch = WriteBatch("u1")
        user_batch.update_user(user_coins=1)
        self.user_doc.get.side_effect = exceptions.ServiceUnavailable("down")
        with patch.object(firestore, "transactional", side_effect=lambda fn: fn):
            with self.assertRaises(StorageUnavailable):
                self.store.commit(user_batch)

    def test_find_user_by_email_without_match(self):
        query = self.client.collection.return_value.where.return_value.limit.return_value
        query.stream.return_value = []
        self.assertIsNone(self.store.find_user_by_email("nobody@example.com"))


if __name__ == "__main__":
    unittest.main()
