import os
import shutil
import tempfile
import unittest
from datetime import date, datetime

from upi_reconciler.core.ledger import InMemoryLedger, WorkbookLedger
from upi_reconciler.core.models import (
    Client,
    ExtractedPaymentInfo,
    Payment,
    ScreenshotStatus,
    ScreenshotUpload,
)
from upi_reconciler.errors import LedgerError


def make_screenshot(name, created_at=None, **extra):
    return ScreenshotUpload(
        filename=f"screenshot-{name}.png",
        original_name=f"{name}.png",
        path=f"/uploads/screenshot-{name}.png",
        hash=f"hash-{name}",
        created_at=created_at or datetime.now(),
        **extra,
    )


class BrokenLedger(InMemoryLedger):
    """Fails every write once `broken` is set, like a workbook that cannot be saved."""

    broken = False

    def _changed(self):
        if self.broken:
            raise LedgerError("disk full")


class TestInMemoryLedger(unittest.TestCase):
    def setUp(self):
        self.client = Client(name="Sharma (Eggs)", rate_per_tray=150)
        self.ledger = InMemoryLedger(clients=[self.client])

    def test_records_are_copied(self):
        fetched = self.ledger.get_client(self.client.id)
        fetched.name = "Changed"
        self.assertEqual(self.ledger.get_client(self.client.id).name, "Sharma (Eggs)")

        record = make_screenshot("a")
        self.ledger.save_screenshot(record)
        record.status = ScreenshotStatus.CONFIRMED
        self.assertEqual(self.ledger.get_screenshot(record.id).status, ScreenshotStatus.UPLOADED)

    def test_find_client_by_name_is_literal_and_case_insensitive(self):
        self.assertEqual(self.ledger.find_client_by_name("(eggs").id, self.client.id)
        self.assertIsNone(self.ledger.find_client_by_name("Sharma.*Bakery"))

    def test_find_by_utr_populates_client(self):
        self.ledger.add_payment(Payment(client_id=self.client.id, amount=150, utr="UTR1234567890"))
        payment = self.ledger.find_by_utr("UTR1234567890")
        self.assertEqual(payment.client.name, "Sharma (Eggs)")
        self.assertIsNone(self.ledger.find_by_utr("UTR0000000000"))

    def test_screenshots_newest_first(self):
        old = make_screenshot("old", created_at=datetime(2024, 1, 1, 9, 0))
        new = make_screenshot("new", created_at=datetime(2024, 1, 2, 9, 0))
        self.ledger.save_screenshot(old)
        self.ledger.save_screenshot(new)
        self.assertEqual([s.id for s in self.ledger.list_screenshots()], [new.id, old.id])

    def test_save_refreshes_updated_at(self):
        record = make_screenshot("a")
        record.updated_at = datetime(2000, 1, 1)
        self.ledger.save_screenshot(record)
        self.assertGreater(self.ledger.get_screenshot(record.id).updated_at, datetime(2000, 1, 1))

    def test_failed_persist_keeps_previous_state(self):
        ledger = BrokenLedger(clients=[self.client])
        record = make_screenshot("a")
        ledger.save_screenshot(record)
        ledger.broken = True

        record.status = ScreenshotStatus.PROCESSING
        with self.assertRaises(LedgerError):
            ledger.save_screenshot(record)
        self.assertEqual(ledger.get_screenshot(record.id).status, ScreenshotStatus.UPLOADED)

        with self.assertRaises(LedgerError):
            ledger.delete_screenshot(record.id)
        self.assertIsNotNone(ledger.get_screenshot(record.id))

        with self.assertRaises(LedgerError):
            ledger.add_client(Client(name="Gupta Bakery", rate_per_tray=5000))
        self.assertEqual([c.id for c in ledger.list_clients()], [self.client.id])

    def test_delete_payment(self):
        payment = self.ledger.add_payment(Payment(client_id=self.client.id, amount=150))
        self.assertEqual(self.ledger.delete_payment(payment.id).id, payment.id)
        self.assertIsNone(self.ledger.delete_payment(payment.id))
        self.assertEqual(self.ledger.list_payments(), [])

    def test_find_and_delete_screenshot(self):
        record = make_screenshot("a")
        self.ledger.save_screenshot(record)
        self.assertEqual(self.ledger.find_screenshot_by_hash("hash-a").id, record.id)
        self.assertEqual(self.ledger.delete_screenshot(record.id).id, record.id)
        self.assertIsNone(self.ledger.delete_screenshot(record.id))
        self.assertIsNone(self.ledger.find_screenshot_by_hash("hash-a"))


class TestWorkbookLedger(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.path = os.path.join(self.tmp, 'ledger.xlsx')

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_missing_workbook_starts_empty(self):
        ledger = WorkbookLedger(self.path)
        self.assertEqual(ledger.list_clients(), [])
        self.assertFalse(os.path.exists(self.path))

    def test_round_trip(self):
        ledger = WorkbookLedger(self.path)
        client = ledger.add_client(Client(name="Sharma Eggs", phone="0987654321", rate_per_tray=150))
        payment = ledger.add_payment(Payment(
            client_id=client.id, amount=1250.5, utr="600821857735",
            date=date(2024, 1, 8), confirmed=True,
        ))
        shot = make_screenshot(
            "gpay",
            size=2048,
            status=ScreenshotStatus.PROCESSED,
            extracted=ExtractedPaymentInfo(
                amount=1250.5, utr="600821857735", date=date(2024, 1, 8),
                payer_name="DHARSHAN L",
            ),
        )
        ledger.save_screenshot(shot)

        reopened = WorkbookLedger(self.path)

        loaded_client = reopened.get_client(client.id)
        self.assertEqual(loaded_client.phone, "0987654321")
        self.assertEqual(loaded_client.rate_per_tray, 150.0)
        self.assertIsNone(loaded_client.farm_id)

        loaded_payment = reopened.find_by_utr("600821857735")
        self.assertEqual(loaded_payment.id, payment.id)
        self.assertEqual(loaded_payment.amount, 1250.5)
        self.assertEqual(loaded_payment.date, date(2024, 1, 8))
        self.assertTrue(loaded_payment.confirmed)
        self.assertIsNone(loaded_payment.sale_id)
        self.assertEqual(loaded_payment.client.id, client.id)

        loaded_shot = reopened.get_screenshot(shot.id)
        self.assertEqual(loaded_shot.status, ScreenshotStatus.PROCESSED)
        self.assertEqual(loaded_shot.size, 2048)
        self.assertEqual(loaded_shot.extracted, shot.extracted)
        self.assertIsNone(loaded_shot.extracted.upi_id)
        self.assertEqual(loaded_shot.created_at, shot.created_at)
        self.assertIsNone(loaded_shot.matched_client_id)

    def test_client_with_defaults_round_trips(self):
        ledger = WorkbookLedger(self.path)
        client = ledger.add_client(Client(name="Sharma Eggs", rate_per_tray=150))

        loaded = WorkbookLedger(self.path).get_client(client.id)
        self.assertEqual(loaded.phone, "")
        self.assertIsNone(loaded.farm_id)
        self.assertEqual(loaded.rate_per_tray, 150.0)

    def test_failed_write_is_rolled_back(self):
        ledger = WorkbookLedger(self.path)
        client = ledger.add_client(Client(name="Sharma Eggs", rate_per_tray=150))

        # A directory where the workbook should be makes the swap fail
        os.remove(self.path)
        os.mkdir(self.path)
        with self.assertRaises(LedgerError):
            ledger.add_payment(Payment(client_id=client.id, amount=150, utr="UTR1234567890"))
        self.assertIsNone(ledger.find_by_utr("UTR1234567890"))
        self.assertEqual(ledger.list_payments(), [])

        os.rmdir(self.path)
        ledger.add_client(Client(name="Gupta Bakery", rate_per_tray=5000))
        reopened = WorkbookLedger(self.path)
        self.assertEqual(reopened.list_payments(), [])
        self.assertEqual(len(reopened.list_clients()), 2)

    def test_no_temp_file_left_behind(self):
        ledger = WorkbookLedger(self.path)
        ledger.add_client(Client(name="A", rate_per_tray=1))
        self.assertEqual(os.listdir(self.tmp), ['ledger.xlsx'])

    def test_delete_is_persisted(self):
        ledger = WorkbookLedger(self.path)
        shot = make_screenshot("a")
        ledger.save_screenshot(shot)
        ledger.delete_screenshot(shot.id)
        self.assertEqual(WorkbookLedger(self.path).list_screenshots(), [])

    def test_reload_discards_unsaved_state(self):
        ledger = WorkbookLedger(self.path)
        ledger.add_client(Client(name="A", rate_per_tray=1))
        other = WorkbookLedger(self.path)
        ledger.add_client(Client(name="B", rate_per_tray=2))

        self.assertEqual(len(other.list_clients()), 1)
        other.reload()
        self.assertEqual([c.name for c in other.list_clients()], ["A", "B"])

    def test_corrupt_workbook(self):
        with open(self.path, 'wb') as f:
            f.write(b"this is not a workbook")
        with self.assertRaises(LedgerError):
            WorkbookLedger(self.path)

    def test_unwritable_location(self):
        blocker = os.path.join(self.tmp, 'blocker')
        with open(blocker, 'w') as f:
            f.write("x")
        ledger = WorkbookLedger(os.path.join(blocker, 'ledger.xlsx'))
        with self.assertRaises(LedgerError):
            ledger.add_client(Client(name="A", rate_per_tray=1))


if __name__ == '__main__':
    unittest.main()
