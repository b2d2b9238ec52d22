"""
Shared behaviour of the LLM-backed invoice providers.

Prompt, response normalization, cost accounting and the attempt flow are the
same for every vendor; subclasses only implement ``_make_completion_call``
against their SDK and map its errors onto the LLMError family.
"""

import json
import logging
import math
import re
from abc import abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from domain.ai.ports import LLMExtractionResult, LLMInvalidResponseError
from domain.extraction.date_parser import parse_date
from domain.extraction.models import InvoiceLineItem, StructuredInvoice
from domain.extraction.ports import ExtractionProviderPort, ProviderOutcome

from .cost_calculator import CostCalculator
from .token_estimator import TokenEstimator

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.8
TOTALS_TOLERANCE = Decimal("0.50")

SYSTEM_PROMPT = """You are an expert invoice data extraction system for construction projects.
Extract structured data from the invoice text with high accuracy.

EXTRACTION REQUIREMENTS:
1. Invoice Number: exact invoice/reference number
2. Vendor Name: company name issuing the invoice, and its GST/ABN/tax id if shown
3. Date: invoice date in YYYY-MM-DD format
4. Amounts: subtotal (before tax), tax/GST amount, total (including tax), currency code
5. Line Items: individual items/services with quantities and prices
6. Description: brief description of work/materials

RESPONSE FORMAT (JSON):
{
  "invoiceNumber": "string",
  "vendorName": "string",
  "vendorTaxId": "string",
  "date": "YYYY-MM-DD",
  "description": "string",
  "currency": "NZD",
  "amount": number,
  "tax": number,
  "total": number,
  "lineItems": [
    {"description": "string", "quantity": number, "unitPrice": number, "total": number}
  ],
  "confidence": number,
  "reasoning": "brief explanation of extraction decisions"
}

VALIDATION RULES:
- All currency amounts are numbers (not strings)
- Dates are valid YYYY-MM-DD
- Total should equal amount + tax (within $0.50 tolerance)
- Confidence reflects extraction certainty (0.0-1.0)
- If unsure about a field, use null and lower confidence

Return ONLY valid JSON, no markdown formatting."""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        cleaned = str(value).replace(",", "").replace("$", "").strip()
        if not cleaned:
            return None
        amount = Decimal(cleaned).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return None
    # NaN survives quantize
    return amount if amount.is_finite() else None


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_json_output(raw_output: str, warnings: List[str]) -> Optional[Any]:
    """Model reply as JSON; falls back to the outermost {...} block when the
    model wrapped its answer in prose or markdown fences."""
    try:
        return json.loads(raw_output)
    except json.JSONDecodeError as e:
        match = _JSON_OBJECT.search(raw_output)
        if match:
            try:
                return json.loads(match.group(0))
            except json.JSONDecodeError:
                pass
        warnings.append(f"Failed to parse LLM JSON output: {str(e)}")
        return None


class LLMInvoiceProvider(ExtractionProviderPort):
    """
    Base class for chat-model providers.

    ``pricing_provider`` names the CostCalculator table the model is priced in.
    """

    pricing_provider: str = ""

    def __init__(self, name: str, model: str, request_timeout: float = 30.0):
        self.name = name
        self.model = model
        self.request_timeout = request_timeout

    @property
    def price_per_1k_input(self) -> Decimal:
        """Input price per 1k tokens, used to order cost-optimized chains."""
        input_rate, _ = CostCalculator.get_model_pricing(self.pricing_provider, self.model)
        return input_rate / Decimal(1000)

    def attempt(self, text: str, context: dict) -> ProviderOutcome:
        """
        Extract invoice fields from text.

        An unusable reply is returned as a failed outcome that still carries
        the billed cost. SDK failures raise LLMError subclasses.
        """
        result = self._make_completion_call(
            model=self.model,
            messages=self.build_messages(text, context),
        )

        try:
            invoice, confidence = self.normalize_response(result.parsed_json)
        except LLMInvalidResponseError as e:
            logger.warning(f"{self.name} returned an unusable response: {e}")
            return ProviderOutcome(error=str(e), cost=result.cost)
        except Exception as e:
            logger.warning(f"{self.name} response could not be normalized: {type(e).__name__}: {e}")
            return ProviderOutcome(
                error=f"LLM response could not be normalized: {type(e).__name__}",
                cost=result.cost,
            )

        logger.info(
            f"{self.name} extraction: confidence={confidence:.3f}, "
            f"tokens={result.tokens_in}/{result.tokens_out}, "
            f"cost={CostCalculator.format_cost_usd(result.cost)}, "
            f"latency={result.latency_ms}ms"
        )
        return ProviderOutcome(invoice=invoice, confidence=confidence, cost=result.cost)

    def estimate_cost(self, text: str) -> Decimal:
        prompt_tokens = TokenEstimator.estimate_text_tokens(SYSTEM_PROMPT + text)
        completion_tokens = TokenEstimator.estimate_completion_tokens()
        try:
            return CostCalculator.calculate_cost(
                self.pricing_provider, self.model, prompt_tokens, completion_tokens,
            )
        except ValueError:
            return Decimal("0")

    @staticmethod
    def build_messages(text: str, context: dict) -> List[dict]:
        hints = []
        if context.get("supplier_name"):
            hints.append(f"Expected Supplier: {context['supplier_name']}")
        if context.get("expected_format"):
            hints.append(f"Format Type: {context['expected_format']}")

        user_prompt = "INVOICE TEXT:\n" + text
        if hints:
            user_prompt += "\n\nCONTEXT:\n" + "\n".join(hints)

        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ]

    @staticmethod
    def normalize_response(parsed: Optional[dict]):
        """Turn the model's JSON into (StructuredInvoice, confidence).

        Raises:
            LLMInvalidResponseError: If the output is not a JSON object
        """
        if not isinstance(parsed, dict):
            raise LLMInvalidResponseError("LLM output is not a JSON object")

        line_items = []
        for item in parsed.get("lineItems") or []:
            if not isinstance(item, dict):
                continue
            description = _to_text(item.get("description"))
            line_total = _to_decimal(item.get("total"))
            if not description or line_total is None or line_total <= 0:
                continue
            line_items.append(InvoiceLineItem(
                description=description,
                quantity=_to_decimal(item.get("quantity")),
                unit_price=_to_decimal(item.get("unitPrice")),
                line_total=line_total,
            ))

        invoice = StructuredInvoice(
            invoice_number=_to_text(parsed.get("invoiceNumber")),
            issue_date=parse_date(parsed.get("date")),
            vendor_name=_to_text(parsed.get("vendorName")),
            vendor_tax_id=_to_text(parsed.get("vendorTaxId")),
            description=_to_text(parsed.get("description")),
            currency=_to_text(parsed.get("currency")),
            subtotal=_to_decimal(parsed.get("amount")),
            tax_amount=_to_decimal(parsed.get("tax")),
            total=_to_decimal(parsed.get("total")),
            line_items=line_items,
        )

        raw_confidence = parsed.get("confidence")
        try:
            confidence = float(raw_confidence) if raw_confidence else DEFAULT_CONFIDENCE
        except (TypeError, ValueError):
            confidence = DEFAULT_CONFIDENCE
        if not math.isfinite(confidence):
            confidence = DEFAULT_CONFIDENCE
        confidence = min(max(confidence, 0.0), 1.0)

        if invoice.subtotal and invoice.tax_amount and invoice.total:
            if not invoice.totals_consistent(TOTALS_TOLERANCE):
                confidence = max(confidence * 0.8, 0.3)

        return invoice, round(confidence, 3)

    def _usage_cost(self, model: str, prompt_tokens: Optional[int],
                    completion_tokens: Optional[int], warnings: List[str]) -> Decimal:
        if not (prompt_tokens and completion_tokens):
            return Decimal("0")
        try:
            return CostCalculator.calculate_cost(
                provider=self.pricing_provider,
                model=model,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
            )
        except ValueError as e:
            warnings.append(f"Failed to calculate cost: {str(e)}")
            return Decimal("0")

    @abstractmethod
    def _make_completion_call(self, model: str, messages: list) -> LLMExtractionResult:
        """
        One chat completion against the vendor API.

        Raises:
            LLMTimeoutError, LLMRateLimitError, LLMAuthError, LLMServiceError
        """
