"""Unit tests for the OpenAI extraction provider

Uses a mocked OpenAI client; no network calls are made.
"""

import json
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import httpx
import pytest
from openai import APITimeoutError

from domain.ai.ports import LLMInvalidResponseError, LLMServiceError, LLMTimeoutError
from infrastructure.ai.llm_invoice_provider import DEFAULT_CONFIDENCE, SYSTEM_PROMPT
from infrastructure.ai.openai_provider import OpenAIProvider

VALID_RESPONSE = {
    "invoiceNumber": "INV-1001",
    "vendorName": "ACME Builders Ltd",
    "vendorTaxId": "123-456-789",
    "date": "2024-01-15",
    "description": "Foundation works",
    "currency": "nzd",
    "amount": 1000,
    "tax": 150,
    "total": 1150,
    "lineItems": [
        {"description": "Concrete", "quantity": 10, "unitPrice": 100, "total": 1000},
        {"description": "Free delivery", "quantity": 1, "unitPrice": 0, "total": 0},
    ],
    "confidence": 0.93,
}


def mock_client(content, prompt_tokens=1000, completion_tokens=500):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.usage.prompt_tokens = prompt_tokens
    response.usage.completion_tokens = completion_tokens

    client = MagicMock()
    client.chat.completions.create.return_value = response
    return client


class TestAttempt:
    """Test a full extraction call"""

    def test_valid_response(self):
        client = mock_client(json.dumps(VALID_RESPONSE))
        provider = OpenAIProvider(client=client)

        outcome = provider.attempt("invoice text", {"supplier_name": "ACME"})

        assert outcome.error is None
        assert outcome.confidence == pytest.approx(0.93)
        assert outcome.cost == Decimal("0.000450")
        assert outcome.invoice.invoice_number == "INV-1001"
        assert outcome.invoice.issue_date == date(2024, 1, 15)
        assert outcome.invoice.currency == "NZD"
        assert outcome.invoice.total == Decimal("1150.00")

    def test_request_uses_json_mode_and_model(self):
        client = mock_client(json.dumps(VALID_RESPONSE))
        OpenAIProvider(name="openai-accurate", model="gpt-4o", client=client).attempt("text", {})

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.0

    def test_invalid_json_still_charged(self):
        client = mock_client("not json at all")

        outcome = OpenAIProvider(client=client).attempt("text", {})

        assert outcome.invoice is None
        assert outcome.error == "LLM output is not a JSON object"
        assert outcome.cost == Decimal("0.000450")

    def test_malformed_line_items_still_charged(self):
        client = mock_client(json.dumps({"invoiceNumber": "INV-9", "lineItems": 5}))

        outcome = OpenAIProvider(client=client).attempt("text", {})

        assert outcome.invoice is None
        assert outcome.error == "LLM response could not be normalized: TypeError"
        assert outcome.cost == Decimal("0.000450")

    def test_timeout_mapped(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = APITimeoutError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        )

        with pytest.raises(LLMTimeoutError):
            OpenAIProvider(client=client).attempt("text", {})

    def test_unexpected_error_mapped(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = RuntimeError("boom")

        with pytest.raises(LLMServiceError):
            OpenAIProvider(client=client).attempt("text", {})

    def test_requires_key_or_client(self):
        with pytest.raises(ValueError):
            OpenAIProvider(api_key=None)


class TestNormalizeResponse:
    """Test mapping the model's JSON onto StructuredInvoice"""

    def test_zero_total_lines_dropped(self):
        invoice, _ = OpenAIProvider.normalize_response(VALID_RESPONSE)
        assert [line.description for line in invoice.line_items] == ["Concrete"]

    def test_missing_confidence_defaults(self):
        _, confidence = OpenAIProvider.normalize_response({"invoiceNumber": "X"})
        assert confidence == DEFAULT_CONFIDENCE

    def test_confidence_clamped(self):
        _, confidence = OpenAIProvider.normalize_response({"confidence": 7})
        assert confidence == 1.0

    def test_inconsistent_totals_penalised(self):
        data = dict(VALID_RESPONSE, total=2000, confidence=0.9)
        _, confidence = OpenAIProvider.normalize_response(data)
        assert confidence == pytest.approx(0.72)

    def test_string_amounts(self):
        invoice, _ = OpenAIProvider.normalize_response({"total": "$1,150.00", "amount": "n/a"})
        assert invoice.total == Decimal("1150.00")
        assert invoice.subtotal is None

    def test_non_finite_amounts_dropped(self):
        invoice, confidence = OpenAIProvider.normalize_response(
            {"total": "NaN", "amount": "Infinity", "tax": 15, "confidence": float("nan")},
        )
        assert invoice.total is None
        assert invoice.subtotal is None
        assert invoice.tax_amount == Decimal("15.00")
        assert confidence == DEFAULT_CONFIDENCE

    def test_non_object_rejected(self):
        with pytest.raises(LLMInvalidResponseError):
            OpenAIProvider.normalize_response(["a", "b"])


class TestMessagesAndCost:
    """Test prompt construction and cost estimates"""

    def test_context_hints_in_prompt(self):
        messages = OpenAIProvider.build_messages(
            "INV text", {"supplier_name": "ACME", "expected_format": "nz-tax-invoice"},
        )
        assert messages[0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert "Expected Supplier: ACME" in messages[1]["content"]
        assert "Format Type: nz-tax-invoice" in messages[1]["content"]

    def test_no_hints(self):
        messages = OpenAIProvider.build_messages("INV text", {})
        assert "CONTEXT" not in messages[1]["content"]

    def test_estimate_cost_positive(self):
        provider = OpenAIProvider(client=MagicMock())
        assert provider.estimate_cost("x" * 4000) > Decimal("0")

    def test_price_per_1k_input(self):
        provider = OpenAIProvider(model="gpt-4o", client=MagicMock())
        assert provider.price_per_1k_input == Decimal("0.0025")

    def test_unknown_model_estimates_zero(self):
        provider = OpenAIProvider(model="mystery-model", client=MagicMock())
        assert provider.estimate_cost("text") == Decimal("0")
