"""Rule-based invoice provider ("traditional").

Regex parsing of common invoice layouts, topped up with learned field
patterns from the pattern store. Free to run, so it usually sits first or
second in a fallback chain.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from domain.extraction.confidence import calculate_confidence
from domain.extraction.date_parser import parse_date
from domain.extraction.models import InvoiceLineItem, StructuredInvoice
from domain.extraction.ports import ExtractionProviderPort, ProviderOutcome
from domain.extraction.strategies import TRADITIONAL_PROVIDER
from learning.matchers import MatcherKind
from learning.pattern_store import PatternStore
from learning.schemas import CorrectableField

logger = logging.getLogger(__name__)

CURRENCY = r"(?:NZ\$|AU\$|A\$|\$|NZD|AUD|USD)?"
AMOUNT = r"([\d,]+(?:\.\d+)?)"

INVOICE_NUMBER_PATTERNS = [
    re.compile(r"invoice\s*#:?\s*([A-Z0-9\-_]+)", re.IGNORECASE),
    re.compile(r"invoice\s*(?:number|no\.?):?\s*([A-Z0-9\-_]+)", re.IGNORECASE),
    re.compile(r"\binv\.?\s*(?:#|number|no\.?):?\s*([A-Z0-9\-_]+)", re.IGNORECASE),
    re.compile(r"\b(?:reference|ref)\s*(?:#|number|no\.?)?:?\s*([A-Z0-9\-_]+)", re.IGNORECASE),
]

DATE_LABEL = r"(?:invoice\s*date|date|dated)"
DATE_PATTERNS = [
    re.compile(DATE_LABEL + r":?\s*(\d{4}[-/]\d{1,2}[-/]\d{1,2})", re.IGNORECASE),
    re.compile(DATE_LABEL + r":?\s*(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{4})", re.IGNORECASE),
    re.compile(DATE_LABEL + r":?\s*([A-Za-z]{3,9}\s+\d{1,2},?\s+\d{4})", re.IGNORECASE),
    re.compile(DATE_LABEL + r":?\s*(\d{1,2}[-\s][A-Za-z]{3,9}[-\s]\d{4})", re.IGNORECASE),
]

VENDOR_PATTERNS = [
    re.compile(r"\b(?:vendor|supplier|company|from|issued\s*by):?\s*([^\n\r]+)", re.IGNORECASE),
    re.compile(
        r"^([A-Za-z][A-Za-z\s&.\-]+(?:Ltd|Limited|Inc|Corp|Corporation|Co\.?|Pty|Company))\b",
        re.IGNORECASE | re.MULTILINE,
    ),
]

TAX_ID_PATTERNS = [
    re.compile(r"\b(?:GST\s*(?:No\.?|Number|#)|ABN|Tax\s*ID|VAT\s*(?:No\.?|Number)):?\s*([\d\-\s]{8,15}\d)", re.IGNORECASE),
]

DESCRIPTION_PATTERNS = [
    re.compile(r"\b(?:description|work\s*performed|services?|details?):?\s*([^\n\r]+)", re.IGNORECASE),
    re.compile(r"\b(?:for|re):\s*([^\n\r]{10,})", re.IGNORECASE),
]

SUBTOTAL_PATTERNS = [
    re.compile(rf"\b(?:subtotal|sub[-\s]total):?\s*{CURRENCY}\s*{AMOUNT}", re.IGNORECASE),
    re.compile(rf"\bnet\s*amount:?\s*{CURRENCY}\s*{AMOUNT}", re.IGNORECASE),
    re.compile(rf"^\s*amount:?\s*{CURRENCY}\s*{AMOUNT}", re.IGNORECASE | re.MULTILINE),
]

TAX_PATTERNS = [
    re.compile(rf"\b(?:tax|gst|vat)(?:\s*\(\d+(?:\.\d+)?%\))?:?\s*{CURRENCY}\s*{AMOUNT}", re.IGNORECASE),
    re.compile(rf"\b(?:gst|tax|vat)\s*@?\s*\d+(?:\.\d+)?%:?\s*{CURRENCY}\s*{AMOUNT}", re.IGNORECASE),
]

TOTAL_PATTERNS = [
    re.compile(rf"\b(?:total\s+amount|grand\s*total|amount\s*due|total\s*due):?\s*{CURRENCY}\s*{AMOUNT}", re.IGNORECASE),
    re.compile(rf"^\s*total(?:\s*\(incl\.?\s*gst\))?:?\s*{CURRENCY}\s*{AMOUNT}", re.IGNORECASE | re.MULTILINE),
    re.compile(rf"\bbalance\s*due:?\s*{CURRENCY}\s*{AMOUNT}", re.IGNORECASE),
]

CURRENCY_CODE_PATTERN = re.compile(r"\b(NZD|AUD|USD|EUR|GBP)\b")

LINE_ITEM_PATTERNS = [
    # Item 1: Description - Qty: X - $Y.YY each - $Z.ZZ
    re.compile(
        r"item\s*\d*:?\s*([^-\n]+?)\s*-\s*qty:?\s*(\d+(?:\.\d+)?)\s*-\s*\$?([\d,]+\.?\d*)"
        r"\s*(?:each|per|/\w+)?\s*-\s*\$?([\d,]+\.?\d*)",
        re.IGNORECASE,
    ),
    # Description - X hours - $Y.YY/hour - $Z.ZZ
    re.compile(
        r"^\s*([^-\n]+?)\s*-\s*(\d+(?:\.\d+)?)\s*(?:units?|hours?|hrs?|days?|m|each)\s*-\s*\$?([\d,]+\.?\d*)"
        r"\s*(?:/\w+|each|per)?\s*-\s*\$?([\d,]+\.?\d*)",
        re.IGNORECASE | re.MULTILINE,
    ),
]

# Learned literal fields replace parsed values; numeric and date fields only fill gaps
LEARNABLE_FIELDS = [
    CorrectableField.INVOICE_NUMBER,
    CorrectableField.ISSUE_DATE,
    CorrectableField.VENDOR_NAME,
    CorrectableField.VENDOR_TAX_ID,
    CorrectableField.DESCRIPTION,
    CorrectableField.SUBTOTAL,
    CorrectableField.TAX_AMOUNT,
    CorrectableField.TOTAL,
]


def _to_decimal(value: str) -> Optional[Decimal]:
    try:
        return Decimal(value.replace(",", "")).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        logger.warning(f"Failed to parse decimal value: {value}")
        return None


def _first_group(patterns, text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1):
            return match.group(1).strip()
    return None


def _first_amount(patterns, text: str) -> Optional[Decimal]:
    raw = _first_group(patterns, text)
    return _to_decimal(raw) if raw else None


class RuleBasedProvider(ExtractionProviderPort):
    """Regex invoice parser with learned-pattern overlay.

    Args:
        store: Pattern store to read learned field patterns from (optional)
    """

    name = TRADITIONAL_PROVIDER

    def __init__(self, store: Optional[PatternStore] = None):
        self.store = store

    def attempt(self, text: str, context: dict) -> ProviderOutcome:
        invoice = self.parse(text)
        applied = self._apply_learned_patterns(invoice, text)

        confidence, breakdown = calculate_confidence(invoice)
        logger.info(
            f"Rule-based parse: confidence={confidence:.3f}, "
            f"lines={breakdown['lines_count']}, learned_fields={applied}"
        )
        return ProviderOutcome(invoice=invoice, confidence=confidence, cost=Decimal("0"))

    def parse(self, text: str) -> StructuredInvoice:
        """Regex-only parse of invoice text."""
        currency_match = CURRENCY_CODE_PATTERN.search(text)
        if currency_match:
            currency = currency_match.group(1)
        elif "NZ$" in text:
            currency = "NZD"
        elif "AU$" in text or "A$" in text:
            currency = "AUD"
        else:
            currency = None

        return StructuredInvoice(
            invoice_number=_first_group(INVOICE_NUMBER_PATTERNS, text),
            issue_date=parse_date(_first_group(DATE_PATTERNS, text)),
            vendor_name=self._extract_vendor(text),
            vendor_tax_id=_first_group(TAX_ID_PATTERNS, text),
            description=self._extract_description(text),
            currency=currency,
            subtotal=_first_amount(SUBTOTAL_PATTERNS, text),
            tax_amount=_first_amount(TAX_PATTERNS, text),
            total=_first_amount(TOTAL_PATTERNS, text),
            line_items=self._extract_line_items(text),
        )

    @staticmethod
    def _extract_vendor(text: str) -> Optional[str]:
        for pattern in VENDOR_PATTERNS:
            match = pattern.search(text)
            if match and match.group(1):
                vendor = match.group(1).strip()
                # Filter out common false positives
                if not vendor.isdigit() and 2 < len(vendor) < 100:
                    return vendor
        return None

    @staticmethod
    def _extract_description(text: str) -> Optional[str]:
        for pattern in DESCRIPTION_PATTERNS:
            match = pattern.search(text)
            if match and match.group(1):
                description = match.group(1).strip()
                if 5 < len(description) < 200:
                    return description
        return None

    @staticmethod
    def _extract_line_items(text: str) -> List[InvoiceLineItem]:
        items = []
        seen = set()
        for pattern in LINE_ITEM_PATTERNS:
            for match in pattern.finditer(text):
                description = re.sub(r"^item\s*\d*:\s*", "", match.group(1).strip(), flags=re.IGNORECASE)
                quantity = _to_decimal(match.group(2))
                unit_price = _to_decimal(match.group(3))
                line_total = _to_decimal(match.group(4))

                if not description or quantity is None or unit_price is None or line_total is None:
                    continue
                key = (description.lower(), quantity, unit_price, line_total)
                if key in seen:
                    continue
                seen.add(key)
                items.append(InvoiceLineItem(
                    description=description,
                    quantity=quantity,
                    unit_price=unit_price,
                    line_total=line_total,
                ))
        return items

    def _apply_learned_patterns(self, invoice: StructuredInvoice, text: str) -> List[str]:
        """Fill (or for literal fields, replace) values found by learned patterns.

        Returns:
            Names of the fields a learned pattern set
        """
        if self.store is None:
            return []

        applied = []
        for field_name in LEARNABLE_FIELDS:
            kind = field_name.matcher_kind
            current = getattr(invoice, field_name.value)
            if current is not None and kind != MatcherKind.LITERAL:
                continue

            for pattern in self.store.for_field(field_name.value):
                found = pattern.field_matcher.find(text)
                if found is None:
                    continue
                if kind == MatcherKind.NUMERIC:
                    value = Decimal(found)
                elif kind == MatcherKind.DATE:
                    value = parse_date(found)
                else:
                    value = found
                setattr(invoice, field_name.value, value)
                applied.append(field_name.value)
                break

        return applied
