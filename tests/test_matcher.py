import unittest

from upi_reconciler.core.ledger import InMemoryLedger
from upi_reconciler.core.matcher import (
    ClientMatcher,
    legacy_amount_proximity_match,
    payer_name_lookup,
    utr_lookback,
)
from upi_reconciler.core.models import Client, ExtractedPaymentInfo, Payment
from upi_reconciler.errors import LedgerError


class FailingLedger(InMemoryLedger):
    def find_by_utr(self, utr):
        raise LedgerError("ledger offline")

    def list_clients(self):
        raise LedgerError("ledger offline")


class TestClientMatcher(unittest.TestCase):
    def setUp(self):
        self.sharma = Client(name="Sharma Eggs", phone="9000000001", rate_per_tray=150)
        self.gupta = Client(name="Gupta Bakery", phone="9000000002", rate_per_tray=5000)
        self.ramesh = Client(name="Ramesh Traders", phone="9000000003", rate_per_tray=20000)
        self.ledger = InMemoryLedger(
            clients=[self.sharma, self.gupta, self.ramesh],
            payments=[Payment(client_id=self.gupta.id, amount=4800, utr="UTR1234567890")],
        )
        self.matcher = ClientMatcher()

    def match(self, **fields):
        return self.matcher.match(ExtractedPaymentInfo(**fields), self.ledger, self.ledger)

    def test_utr_wins_over_other_signals(self):
        client = self.match(utr="UTR1234567890", amount=160, payer_name="Ramesh")
        self.assertEqual(client.id, self.gupta.id)

    def test_amount_proximity_when_utr_unknown(self):
        client = self.match(utr="ZZZ9999999999", amount=5050.0)
        self.assertEqual(client.id, self.gupta.id)

    def test_amount_proximity_takes_first_client_in_order(self):
        ledger = InMemoryLedger(clients=[
            Client(name="First", rate_per_tray=150),
            Client(name="Second", rate_per_tray=180),
        ])
        client = self.matcher.match(ExtractedPaymentInfo(amount=160), ledger, ledger)
        self.assertEqual(client.name, "First")

    def test_amount_proximity_is_strict(self):
        self.assertIsNone(self.match(amount=250.0))

    def test_payer_name_case_insensitive_substring(self):
        client = self.match(amount=999999.0, payer_name="ramesh")
        self.assertEqual(client.id, self.ramesh.id)

    def test_no_match(self):
        self.assertIsNone(self.match(amount=999999.0, payer_name="Nobody Known"))

    def test_empty_extraction(self):
        self.assertIsNone(self.match())

    def test_payment_without_known_client_falls_through(self):
        self.ledger.add_payment(Payment(client_id="deleted", amount=10, utr="ORPHAN12345678"))
        client = self.match(utr="ORPHAN12345678", payer_name="Sharma")
        self.assertEqual(client.id, self.sharma.id)

    def test_lookup_failure_propagates(self):
        ledger = FailingLedger(clients=[self.sharma])
        with self.assertRaises(LedgerError):
            self.matcher.match(ExtractedPaymentInfo(utr="UTR1234567890"), ledger, ledger)
        with self.assertRaises(LedgerError):
            self.matcher.match(ExtractedPaymentInfo(amount=150), ledger, ledger)

    def test_custom_strategy_order(self):
        matcher = ClientMatcher(strategies=(payer_name_lookup, utr_lookback))
        client = matcher.match(
            ExtractedPaymentInfo(utr="UTR1234567890", payer_name="Sharma"),
            self.ledger, self.ledger,
        )
        self.assertEqual(client.id, self.sharma.id)

    def test_legacy_strategy_can_be_dropped(self):
        matcher = ClientMatcher(strategies=(utr_lookback, payer_name_lookup))
        self.assertIsNone(
            matcher.match(ExtractedPaymentInfo(amount=150), self.ledger, self.ledger)
        )

    def test_strategies_skip_missing_fields(self):
        info = ExtractedPaymentInfo()
        for strategy in (utr_lookback, legacy_amount_proximity_match, payer_name_lookup):
            self.assertIsNone(strategy(info, self.ledger, self.ledger))


if __name__ == '__main__':
    unittest.main()
