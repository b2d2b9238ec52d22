"""
Dollar cost of an LLM call from its reported token usage.

Costs are Decimal USD rounded to the micro-dollar, so attempt costs add up
exactly in a run's total.
"""

from decimal import Decimal
from typing import Dict, Tuple


USD_QUANTUM = Decimal("0.000001")
PER_MILLION = Decimal(1_000_000)


class CostCalculator:
    """
    List-price table for the models the providers call.

    Rates are (input, output) USD per million tokens. Lookups are
    case-insensitive and an unlisted provider or model raises ValueError.
    """

    PRICING: Dict[str, Dict[str, Tuple[Decimal, Decimal]]] = {
        "openai": {
            "gpt-4o-mini": (Decimal("0.150"), Decimal("0.600")),
            "gpt-4o": (Decimal("2.50"), Decimal("10.00")),
            "gpt-4-turbo": (Decimal("10.00"), Decimal("30.00")),
            "gpt-3.5-turbo": (Decimal("0.50"), Decimal("1.50")),
        },
        "anthropic": {
            "claude-3-5-sonnet-20241022": (Decimal("3.00"), Decimal("15.00")),
            "claude-3-5-haiku-20241022": (Decimal("0.80"), Decimal("4.00")),
            "claude-3-opus-20240229": (Decimal("15.00"), Decimal("75.00")),
            "claude-3-haiku-20240307": (Decimal("0.25"), Decimal("1.25")),
        },
    }

    @staticmethod
    def get_model_pricing(provider: str, model: str) -> Tuple[Decimal, Decimal]:
        models = CostCalculator.PRICING.get(provider.lower())
        if models is None:
            raise ValueError(f"Unknown provider: {provider}")

        rates = models.get(model.lower())
        if rates is None:
            raise ValueError(f"Unknown model for {provider}: {model}")
        return rates

    @staticmethod
    def calculate_cost(
        provider: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int
    ) -> Decimal:
        """
        >>> CostCalculator.calculate_cost("openai", "gpt-4o-mini", 1000, 500)
        Decimal('0.000450')
        """
        input_rate, output_rate = CostCalculator.get_model_pricing(provider, model)
        raw = Decimal(prompt_tokens) * input_rate + Decimal(completion_tokens) * output_rate
        return (raw / PER_MILLION).quantize(USD_QUANTUM)

    @staticmethod
    def format_cost_usd(cost: Decimal) -> str:
        return f"${cost:.6f}"
