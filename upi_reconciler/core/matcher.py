"""
Client Matcher Module
---------------------
Associates extracted payment details with a known client.

Strategies run in a fixed priority order and the first one that
returns a client wins; there is no scoring across strategies.
Repository failures are not caught here: "no client matched" (None)
and "lookup failed" (LedgerError) must stay distinguishable.
"""

from upi_reconciler.utils.logger import get_logger

logger = get_logger(__name__)

# ratePerTray and the paid amount must differ by strictly less than this
AMOUNT_PROXIMITY = 100


def utr_lookback(extracted, clients, payments):
    """Client of an existing payment recorded with the same UTR."""
    if not extracted.utr:
        return None
    payment = payments.find_by_utr(extracted.utr)
    if payment is not None and payment.client is not None:
        return payment.client
    return None


def legacy_amount_proximity_match(extracted, clients, payments):
    """
    First client whose rate_per_tray lies within AMOUNT_PROXIMITY of the amount.

    Compares a per-tray rate with a whole payment, so it only "works" for
    single-tray payments. Kept under this name so a corrected strategy
    can replace it in DEFAULT_STRATEGIES without touching the others.
    """
    if extracted.amount is None:
        return None
    for client in clients.list_all():
        if abs(client.rate_per_tray - extracted.amount) < AMOUNT_PROXIMITY:
            return client
    return None


def payer_name_lookup(extracted, clients, payments):
    """First client whose name contains the payer name, ignoring case."""
    if not extracted.payer_name:
        return None
    return clients.find_by_name_pattern(extracted.payer_name)


DEFAULT_STRATEGIES = (
    utr_lookback,
    legacy_amount_proximity_match,
    payer_name_lookup,
)


class ClientMatcher:
    """Runs the match strategies against a client and a payment repository."""

    def __init__(self, strategies=DEFAULT_STRATEGIES):
        self.strategies = tuple(strategies)

    def match(self, extracted, clients, payments):
        """
        Find the client a payment most likely came from.

        Args:
            extracted (ExtractedPaymentInfo): Output of PaymentInfoExtractor.
            clients (ClientRepository): Read-only client lookups.
            payments (PaymentRepository): Read-only payment lookups.

        Returns:
            Client or None: None means "leave for manual confirmation".

        Raises:
            LedgerError: A repository lookup failed.
        """
        for strategy in self.strategies:
            client = strategy(extracted, clients, payments)
            if client is not None:
                logger.info("Matched client %s (%s) via %s",
                            client.name, client.id, strategy.__name__)
                return client

        logger.info("No client matched for UTR=%s amount=%s payer=%s",
                    extracted.utr, extracted.amount, extracted.payer_name)
        return None
