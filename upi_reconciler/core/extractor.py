"""
Payment Info Extractor Module
-----------------------------
Parses raw OCR text from a UPI payment screenshot into an
ExtractedPaymentInfo record: amount, UTR, date, payer name and UPI id.

Every field is looked up by an ordered chain of strategies; the first
strategy that returns a value wins and the rest are never consulted.
Fields are independent of each other, so a missing or garbled amount
never stops the UTR from being read.
"""

import math
import re

from dateutil import parser as date_parser

from upi_reconciler.core.models import ExtractedPaymentInfo
from upi_reconciler.utils.logger import get_logger

logger = get_logger(__name__)

# Inclusive range of amounts accepted by the plausibility scan
MIN_PLAUSIBLE_AMOUNT = 10
MAX_PLAUSIBLE_AMOUNT = 10_000_000

# A numeral not glued to a preceding digit, comma or "<digit>.";
# keeps the scanners from starting halfway through "1,500.00".
_NUM_START = r'(?<![\d,])(?<!\d\.)'
# Thousands separators may be western (1,500) or Indian (1,00,000)
_INT_PART = r'\d+(?:,\d{2,3})*'

# ── Tier 1: numeral with exactly two decimals next to a money word ──
CONTEXT_AMOUNT_RE = re.compile(
    r'(?:₹|\brs\.?|\binr\b|\bpaid\b|\bamount\b|\btotal\b)\s*[:\-]?\s*₹?\s*'
    + _NUM_START + r'(?P<prefixed>' + _INT_PART + r'\.\d{2})(?!\d)'
    r'|'
    + _NUM_START + r'(?P<suffixed>' + _INT_PART + r'\.\d{2})(?!\d)'
    r'\s*(?:₹|rs\b|rs\.|inr\b|rupees\b|paid\b|amount\b|total\b)',
    re.IGNORECASE,
)

# ── Tier 2: optional currency symbol, then any numeral ──
LOOSE_AMOUNT_RE = re.compile(
    r'(?:(?P<currency>₹|\$|\brs\.?|\binr\b)\s*)?'
    + _NUM_START + r'(?P<number>' + _INT_PART + r'(?:\.\d+)?)',
    re.IGNORECASE,
)

# ── Tier 3: every numeral in the text ──
NUMERAL_RE = re.compile(_NUM_START + r'(' + _INT_PART + r'(?:\.\d+)?)')


def first_hit(strategies, text):
    """Run strategies in order and return the first non-None result."""
    for strategy in strategies:
        value = strategy(text)
        if value is not None:
            return value
    return None


def _to_amount(raw):
    """Strip everything but digits and dots, return a positive 2-decimal float or None."""
    if not raw:
        return None
    clean = re.sub(r'[^\d\.]', '', raw)
    try:
        value = float(clean)
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    value = round(value, 2)
    return value if value > 0 else None


class PaymentInfoExtractor:
    """
    Pure text → ExtractedPaymentInfo parser.

    Holds no state between calls: the same text always produces the
    same record.
    """

    def __init__(self):

        # ── Single-pattern fields (first match wins) ─────────────────
        self.patterns = {
            'utr': [
                # Not anchored to "UTR"/"ref": long words like "Transaction" also match
                r'\b([A-Z0-9]{10,20})\b',
            ],
            'date': [
                r'\b(\d{1,2}[/-]\d{1,2}[/-]\d{2,4})\b',
            ],
            'payer_name': [
                r'\b(?:from|paid by|sender|received from)[:\s]*([A-Za-z][A-Za-z \t]{2,49})',
            ],
            'upi_id': [
                # "Paid to: xyz@ybl" / "From xyz@okaxis"
                r'\b(?:paid\s+to|received\s+from|sent\s+to|from|to|payer|sender|receiver|recipient)'
                r'[:\s]*([a-zA-Z0-9\.\-_]+@[a-zA-Z]+)',
                # "UPI ID: xyz@paytm" / "VPA xyz@upi"
                r'\b(?:UPI\s*ID|VPA)\s*[:\-]?\s*([a-zA-Z0-9\.\-_]+@[a-zA-Z]+)',
                # "xyz@paytm verified"
                r'([a-zA-Z0-9\.\-_]+@[a-zA-Z]+)[:\s]*(?:is\s*)?(?:verified|success|paid)',
                r'([a-zA-Z0-9\.\-_]+@[a-zA-Z]+)',
            ],
        }

        self.amount_strategies = (
            self._contextual_amount,
            self._loose_amount,
            self._plausible_amount,
        )

    # ══════════════════════════════════════════════════════════════════
    #  COMMON HELPERS
    # ══════════════════════════════════════════════════════════════════

    def _find_match(self, pattern_key, text):
        """Search text for the first match in a pattern group, or None."""
        for pattern in self.patterns.get(pattern_key, []):
            match = re.search(pattern, text, re.IGNORECASE)
            if match:
                return match.group(1).strip()
        return None

    # ══════════════════════════════════════════════════════════════════
    #  AMOUNT TIERS
    # ══════════════════════════════════════════════════════════════════

    def _contextual_amount(self, text):
        """₹ / Rs / INR / paid / amount / total right before or after a ###.## numeral."""
        for match in CONTEXT_AMOUNT_RE.finditer(text):
            amount = _to_amount(match.group('prefixed') or match.group('suffixed'))
            if amount is not None:
                return amount
        return None

    def _loose_amount(self, text):
        """
        First money-shaped numeral anywhere, currency symbol optional.

        A bare integer (no symbol, no separator, no decimals) is skipped:
        in screenshot text those are dates, times and reference digits.
        """
        for match in LOOSE_AMOUNT_RE.finditer(text):
            number = match.group('number')
            if not (match.group('currency') or ',' in number or '.' in number):
                continue
            amount = _to_amount(number)
            if amount is not None:
                return amount
        return None

    def _plausible_amount(self, text):
        """Largest numeral inside [MIN_PLAUSIBLE_AMOUNT, MAX_PLAUSIBLE_AMOUNT]."""
        candidates = []
        for raw in NUMERAL_RE.findall(text):
            amount = _to_amount(raw)
            if amount is not None and MIN_PLAUSIBLE_AMOUNT <= amount <= MAX_PLAUSIBLE_AMOUNT:
                candidates.append(amount)
        return max(candidates) if candidates else None

    # ══════════════════════════════════════════════════════════════════
    #  FIELD EXTRACTORS
    # ══════════════════════════════════════════════════════════════════

    def extract_amount(self, text):
        return first_hit(self.amount_strategies, text)

    def extract_utr(self, text):
        utr = self._find_match('utr', text)
        return utr.upper() if utr else None

    def extract_date(self, text):
        raw = self._find_match('date', text)
        if not raw:
            return None
        try:
            return date_parser.parse(raw, dayfirst=True).date()
        except (ValueError, OverflowError):
            logger.debug("Dropping unparsable date %r", raw)
            return None

    def extract_payer_name(self, text):
        name = self._find_match('payer_name', text)
        if name and 3 <= len(name) <= 50:
            return name
        return None

    def extract_upi_id(self, text):
        return self._find_match('upi_id', text)

    # ══════════════════════════════════════════════════════════════════
    #  ENTRY POINT
    # ══════════════════════════════════════════════════════════════════

    def extract(self, text):
        """
        Parse OCR text into structured payment details.

        Args:
            text (str): Raw OCR text; may be empty.

        Returns:
            ExtractedPaymentInfo: every field independently optional.
        """
        text = text or ''
        info = ExtractedPaymentInfo(
            amount=self.extract_amount(text),
            utr=self.extract_utr(text),
            date=self.extract_date(text),
            payer_name=self.extract_payer_name(text),
            upi_id=self.extract_upi_id(text),
        )
        logger.debug("Extracted %s", info.model_dump(exclude_none=True))
        return info
