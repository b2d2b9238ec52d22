"""
Extraction ports (interfaces) following Hexagonal Architecture.

Providers are pluggable adapters. The orchestrator only ever talks to
ExtractionProviderPort; it never imports a concrete provider.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .models import StructuredInvoice


@dataclass
class ProviderOutcome:
    """What one provider attempt produced.

    A provider that answered but could not build an invoice sets ``error``
    and leaves ``invoice`` empty. ``cost`` is charged either way.
    """
    invoice: Optional[StructuredInvoice] = None
    confidence: float = 0.0
    cost: Decimal = Decimal("0")
    error: Optional[str] = None


class ExtractionProviderPort(ABC):
    """
    Port interface for structured-field extraction providers.
    All providers (rule-based, OpenAI, ...) must implement this interface.
    """

    name: str = "provider"

    @abstractmethod
    def attempt(self, text: str, context: dict) -> ProviderOutcome:
        """
        Extract structured invoice fields from raw text.

        Args:
            text: Raw invoice text
            context: Hints such as ``expected_format`` and ``supplier_name``

        Returns:
            ProviderOutcome with invoice, confidence and cost

        Raises:
            ProviderFailureError: If the provider cannot answer
            LLMError: For LLM-backed providers (timeout, quota, bad response)
        """
        pass

    def estimate_cost(self, text: str) -> Decimal:
        """Estimated spend for one attempt on this text. Free by default."""
        return Decimal("0")
