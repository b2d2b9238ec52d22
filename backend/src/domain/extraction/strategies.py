"""Strategy registry.

A strategy is a named, ordered fallback chain of provider names plus an
acceptance threshold and a per-invoice spend cap. The set of strategy names
is closed; chains are derived from the configured LLM provider order.
"""

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

TRADITIONAL_PROVIDER = "traditional"


class StrategyName(str, Enum):
    LLM_PRIMARY = "llm-primary"
    TRADITIONAL_PRIMARY = "traditional-primary"
    HYBRID = "hybrid"
    COST_OPTIMIZED = "cost-optimized"
    ACCURACY_OPTIMIZED = "accuracy-optimized"


class UnknownStrategyError(KeyError):
    """Raised when a strategy name is not registered"""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown strategy: {self.name}"


@dataclass(frozen=True)
class Strategy:
    name: StrategyName
    description: str
    fallback_chain: Tuple[str, ...]
    confidence_threshold: float
    max_cost_per_invoice: Decimal

    def to_dict(self) -> dict:
        return {
            "name": self.name.value,
            "description": self.description,
            "fallbackChain": list(self.fallback_chain),
            "confidenceThreshold": self.confidence_threshold,
            "maxCostPerInvoice": str(self.max_cost_per_invoice),
        }


# Templates: chains are filled in by build_fallback_chain
DEFAULT_STRATEGIES: Dict[StrategyName, Strategy] = {
    StrategyName.LLM_PRIMARY: Strategy(
        StrategyName.LLM_PRIMARY, "LLM first, traditional fallback only",
        (), 0.8, Decimal("0.10"),
    ),
    StrategyName.TRADITIONAL_PRIMARY: Strategy(
        StrategyName.TRADITIONAL_PRIMARY, "Traditional parsing with LLM validation",
        (TRADITIONAL_PROVIDER,), 0.7, Decimal("0.02"),
    ),
    StrategyName.HYBRID: Strategy(
        StrategyName.HYBRID, "LLM + traditional combined analysis",
        (), 0.85, Decimal("0.05"),
    ),
    StrategyName.COST_OPTIMIZED: Strategy(
        StrategyName.COST_OPTIMIZED, "Traditional first, LLM only for low confidence",
        (TRADITIONAL_PROVIDER,), 0.6, Decimal("0.01"),
    ),
    StrategyName.ACCURACY_OPTIMIZED: Strategy(
        StrategyName.ACCURACY_OPTIMIZED, "Multiple LLMs, most accurate first",
        (), 0.95, Decimal("0.20"),
    ),
}


def build_fallback_chain(
    name: StrategyName,
    provider_order: Iterable[str],
    llm_prices: Mapping[str, Decimal],
) -> Tuple[str, ...]:
    """Derive a strategy's chain from the configured LLM order.

    Only providers present in ``llm_prices`` (the enabled LLMs) are used.
    Prices are USD per 1k tokens and only matter for cost-optimized.

    Example:
        >>> build_fallback_chain(StrategyName.HYBRID, ["a", "b"], {"a": 1, "b": 2})
        ('a', 'traditional', 'b')
    """
    enabled = [p for p in provider_order if p in llm_prices and p != TRADITIONAL_PROVIDER]

    if name in (StrategyName.LLM_PRIMARY, StrategyName.ACCURACY_OPTIMIZED):
        chain = enabled + [TRADITIONAL_PROVIDER]
    elif name == StrategyName.TRADITIONAL_PRIMARY:
        chain = [TRADITIONAL_PROVIDER] + enabled
    elif name == StrategyName.HYBRID:
        chain = enabled[:1] + [TRADITIONAL_PROVIDER] + enabled[1:]
    elif name == StrategyName.COST_OPTIMIZED:
        # sorted() is stable, equal prices keep configured order
        chain = [TRADITIONAL_PROVIDER] + sorted(enabled, key=lambda p: llm_prices[p])
    else:
        chain = [TRADITIONAL_PROVIDER]

    return tuple(chain)


class StrategyRegistry:
    """Closed mapping of strategy name to Strategy.

    Lookups by unknown name raise UnknownStrategyError (a KeyError).
    """

    def __init__(self, strategies: Mapping[StrategyName, Strategy], default: StrategyName):
        self._strategies: Dict[StrategyName, Strategy] = dict(strategies)
        if default not in self._strategies:
            raise UnknownStrategyError(str(default))
        self._default = default

    @classmethod
    def from_providers(
        cls,
        provider_order: Iterable[str],
        llm_prices: Mapping[str, Decimal],
        default: str = StrategyName.HYBRID.value,
    ) -> "StrategyRegistry":
        """Build every default strategy against the enabled LLM providers.

        With no LLM enabled the default becomes traditional-primary.
        """
        order = list(provider_order)
        strategies = {
            name: replace(template, fallback_chain=build_fallback_chain(name, order, llm_prices))
            for name, template in DEFAULT_STRATEGIES.items()
        }

        default_name = cls._coerce(default)
        if not any(p in llm_prices for p in order):
            if default_name != StrategyName.TRADITIONAL_PRIMARY:
                logger.info(
                    "No LLM providers enabled, default strategy falls back to traditional-primary",
                    extra={"requested_default": default_name.value},
                )
            default_name = StrategyName.TRADITIONAL_PRIMARY

        return cls(strategies, default_name)

    @staticmethod
    def _coerce(name) -> StrategyName:
        if isinstance(name, StrategyName):
            return name
        try:
            return StrategyName(name)
        except ValueError:
            raise UnknownStrategyError(str(name))

    @property
    def default(self) -> Strategy:
        return self._strategies[self._default]

    def get(self, name: Optional[str] = None) -> Strategy:
        """Strategy by name; the default strategy when name is None."""
        if name is None:
            return self.default
        key = self._coerce(name)
        if key not in self._strategies:
            raise UnknownStrategyError(key.value)
        return self._strategies[key]

    def register(self, strategy: Strategy) -> None:
        """Replace the definition of a strategy (name must be a StrategyName)."""
        self._strategies[strategy.name] = strategy
        logger.debug(f"Registered strategy: {strategy.name.value} -> {list(strategy.fallback_chain)}")

    def list(self) -> List[Strategy]:
        return [self._strategies[name] for name in StrategyName if name in self._strategies]
