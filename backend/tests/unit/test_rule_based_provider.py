"""Unit tests for the rule-based ("traditional") provider

Tests cover:
- Regex parsing of a typical NZ tax invoice
- Confidence from field completeness
- Learned patterns replacing literal fields and filling numeric gaps
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from infrastructure.providers.rule_based_provider import RuleBasedProvider
from learning.matchers import MatcherKind
from learning.schemas import PatternExample, PatternKey, PatternObservation

SAMPLE_INVOICE = """ACME BUILDERS LTD
GST No: 123-456-789
Invoice #: INV-1001
Date: 15/01/2024
Description: Foundation works stage 1
Item 1: Concrete - Qty: 10 - $100.00 each - $1000.00
Subtotal: $1,000.00
GST (15%): $150.00
Total: $1,150.00
"""


def learn(store, field_name, value, matcher):
    store.reinforce(PatternObservation(
        key=PatternKey(field_name, value),
        matcher=matcher,
        example=PatternExample(text=value),
        observed_at=datetime(2024, 1, 1),
    ))


class TestRegexParsing:
    """Test parsing without learned patterns"""

    def test_header_fields(self):
        invoice = RuleBasedProvider().parse(SAMPLE_INVOICE)

        assert invoice.invoice_number == "INV-1001"
        assert invoice.issue_date == date(2024, 1, 15)
        assert invoice.vendor_name == "ACME BUILDERS LTD"
        assert invoice.vendor_tax_id == "123-456-789"
        assert invoice.description == "Foundation works stage 1"

    def test_amounts(self):
        invoice = RuleBasedProvider().parse(SAMPLE_INVOICE)

        assert invoice.subtotal == Decimal("1000.00")
        assert invoice.tax_amount == Decimal("150.00")
        assert invoice.total == Decimal("1150.00")
        assert invoice.totals_consistent() is True

    def test_line_items(self):
        invoice = RuleBasedProvider().parse(SAMPLE_INVOICE)

        assert len(invoice.line_items) == 1
        line = invoice.line_items[0]
        assert line.description == "Concrete"
        assert line.quantity == Decimal("10.00")
        assert line.unit_price == Decimal("100.00")
        assert line.line_total == Decimal("1000.00")

    def test_currency_code(self):
        assert RuleBasedProvider().parse("Total: NZD 50.00").currency == "NZD"
        assert RuleBasedProvider().parse("Total: NZ$50.00").currency == "NZD"

    def test_unstructured_text(self):
        invoice = RuleBasedProvider().parse("hello world")
        assert invoice.invoice_number is None
        assert invoice.total is None
        assert invoice.line_items == []


class TestAttempt:
    """Test provider outcome"""

    def test_complete_invoice_full_confidence(self):
        outcome = RuleBasedProvider().attempt(SAMPLE_INVOICE, {})

        assert outcome.confidence == pytest.approx(1.0)
        assert outcome.cost == Decimal("0")
        assert outcome.error is None

    def test_unstructured_text_zero_confidence(self):
        outcome = RuleBasedProvider().attempt("hello world", {})
        assert outcome.confidence == 0.0


class TestLearnedPatterns:
    """Test the learned-pattern overlay"""

    def test_literal_pattern_fills_missing_vendor(self, pattern_store):
        text = "Invoice #: 77\nPrepared by Harbour Joinery\nTotal: $50.00"
        learn(pattern_store, "vendor_name", "harbour joinery", MatcherKind.LITERAL)

        provider = RuleBasedProvider(pattern_store)
        assert provider.parse(text).vendor_name is None

        outcome = provider.attempt(text, {})

        assert outcome.invoice.vendor_name == "Harbour Joinery"

    def test_literal_pattern_replaces_parsed_value(self, pattern_store):
        learn(pattern_store, "vendor_name", "acme builders ltd", MatcherKind.LITERAL)
        text = "Supplier: the builders\nInvoice from ACME Builders Ltd\nTotal: $50.00"

        outcome = RuleBasedProvider(pattern_store).attempt(text, {})

        assert outcome.invoice.vendor_name == "ACME Builders Ltd"

    def test_numeric_pattern_fills_gap(self, pattern_store):
        learn(pattern_store, "total", "245.50", MatcherKind.NUMERIC)

        outcome = RuleBasedProvider(pattern_store).attempt("Invoice #: 77\nPlease pay 245.50 by Friday", {})

        assert outcome.invoice.total == Decimal("245.50")

    def test_numeric_pattern_does_not_override(self, pattern_store):
        learn(pattern_store, "total", "245.50", MatcherKind.NUMERIC)

        outcome = RuleBasedProvider(pattern_store).attempt("Total: $300.00\nDeposit 245.50 paid", {})

        assert outcome.invoice.total == Decimal("300.00")

    def test_pattern_not_in_text_ignored(self, pattern_store):
        learn(pattern_store, "vendor_name", "other co", MatcherKind.LITERAL)

        outcome = RuleBasedProvider(pattern_store).attempt(SAMPLE_INVOICE, {})

        assert outcome.invoice.vendor_name == "ACME BUILDERS LTD"
