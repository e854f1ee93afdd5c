"""Tests for the SQLite-backed stores."""
import unittest
import tempfile
import shutil
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path

from mailspend.storage.database import Database
from mailspend.storage.models import Transaction
from mailspend.storage.runs import BatchRunLog
from mailspend.storage.transactions import TransactionStore, amount_key
from mailspend.storage.users import UserDirectory
from mailspend.utils.exceptions import PersistenceConflict

from tests.fakes import add_user


def make_transaction(user_id="u1", amount="156.40", merchant="WONG SUPERMERCADO", txn_date=date(2025, 3, 14), **kwargs):
    return Transaction(
        user_id=user_id,
        amount=Decimal(amount),
        merchant=merchant,
        resolved_merchant=kwargs.pop("resolved_merchant", "Wong"),
        category=kwargs.pop("category", "Comida & Restaurantes"),
        bank=kwargs.pop("bank", "BBVA"),
        date=txn_date,
        **kwargs
    )


class TestTransactionStore(unittest.TestCase):
    """Test TransactionStore functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.test_dir = Path(tempfile.mkdtemp())
        self.db = Database(self.test_dir / "test.db")
        self.store = TransactionStore(self.db)
        add_user(self.db, "u1", "ana@example.com")
        add_user(self.db, "u2", "luis@example.com")

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_insert_and_exists(self):
        self.assertFalse(self.store.exists("u1", Decimal("156.40"), "WONG SUPERMERCADO", date(2025, 3, 14)))

        self.store.insert(make_transaction(payment_method="Tarjeta de Crédito"))

        self.assertTrue(self.store.exists("u1", Decimal("156.4"), "WONG SUPERMERCADO", date(2025, 3, 14)))
        stored = self.store.list_for_user("u1")[0]
        self.assertEqual(stored.amount, Decimal("156.40"))
        self.assertEqual(stored.payment_method, "Tarjeta de Crédito")
        self.assertEqual(stored.date, date(2025, 3, 14))

    def test_duplicate_key_is_a_conflict(self):
        self.store.insert(make_transaction())

        with self.assertRaises(PersistenceConflict):
            self.store.insert(make_transaction(amount="156.4", resolved_merchant="Other name"))

        self.assertEqual(self.store.count_for_user("u1"), 1)

    def test_key_parts_distinguish_transactions(self):
        self.store.insert(make_transaction())
        self.store.insert(make_transaction(user_id="u2"))
        self.store.insert(make_transaction(amount="156.41"))
        self.store.insert(make_transaction(merchant="WONG"))
        self.store.insert(make_transaction(txn_date=date(2025, 3, 15)))

        self.assertEqual(self.store.count_for_user("u1"), 4)
        self.assertEqual(self.store.count_for_user("u2"), 1)

    def test_user_isolation(self):
        self.store.insert(make_transaction())
        self.assertFalse(self.store.exists("u2", Decimal("156.40"), "WONG SUPERMERCADO", date(2025, 3, 14)))

    def test_list_filters(self):
        self.store.insert(make_transaction(txn_date=date(2025, 3, 1), category="Compras"))
        self.store.insert(make_transaction(txn_date=date(2025, 3, 10)))
        self.store.insert(make_transaction(txn_date=date(2025, 3, 20)))

        dates = [t.date.day for t in self.store.list_for_user("u1")]
        self.assertEqual(dates, [20, 10, 1])

        ranged = self.store.list_for_user("u1", start=date(2025, 3, 5), end=date(2025, 3, 20))
        self.assertEqual([t.date.day for t in ranged], [20, 10])

        shopping = self.store.list_for_user("u1", categories=["Compras"])
        self.assertEqual([t.date.day for t in shopping], [1])

    def test_amount_key(self):
        self.assertEqual(amount_key(Decimal("156.4")), "156.40")
        self.assertEqual(amount_key(Decimal("20")), "20.00")


class TestUserDirectory(unittest.TestCase):

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.db = Database(self.test_dir / "test.db")
        self.users = UserDirectory(self.db)

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_lists_only_active_users(self):
        add_user(self.db, "u2", "luis@example.com", country="Chile")
        add_user(self.db, "u1", "ana@example.com")
        add_user(self.db, "u3", "old@example.com", is_active=False)

        users = self.users.list_active_users()

        self.assertEqual([u.id for u in users], ["u1", "u2"])
        self.assertEqual(users[1].country, "Chile")
        self.assertEqual(users[0].monthly_budget, Decimal("1500.00"))

    def test_get_user(self):
        add_user(self.db, "u3", "old@example.com", is_active=False)

        self.assertFalse(self.users.get_user("u3").is_active)
        self.assertIsNone(self.users.get_user("missing"))


class TestBatchRunLog(unittest.TestCase):

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.log = BatchRunLog(Database(self.test_dir / "test.db"))

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_start_and_complete(self):
        start = datetime(2025, 3, 14, 5, tzinfo=timezone.utc)
        end = datetime(2025, 3, 15, 5, tzinfo=timezone.utc)

        run_id = self.log.start_run(start, end, "fetching")
        self.log.complete_run(run_id, "done", False, {"transactions_created": 2, "errors": 1})

        record = self.log.list_runs()[0]
        self.assertEqual(record.run_id, run_id)
        self.assertEqual(record.window_start, start)
        self.assertEqual(record.state, "done")
        self.assertFalse(record.aborted)
        self.assertIsNotNone(record.completed_at)
        self.assertEqual(record.counters["transactions_created"], 2)
        self.assertEqual(record.counters["errors"], 1)
        self.assertEqual(record.counters["emails_failed"], 0)

    def test_unfinished_run_has_no_completion(self):
        start = datetime(2025, 3, 14, 5, tzinfo=timezone.utc)
        self.log.start_run(start, start.replace(day=15), "fetching")

        record = self.log.list_runs(limit=1)[0]
        self.assertIsNone(record.completed_at)
        self.assertEqual(record.state, "fetching")


if __name__ == "__main__":
    unittest.main()
