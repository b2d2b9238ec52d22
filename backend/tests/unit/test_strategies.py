"""Unit tests for the strategy registry and fallback chain derivation"""

from decimal import Decimal

import pytest

from domain.extraction.strategies import (
    DEFAULT_STRATEGIES,
    TRADITIONAL_PROVIDER,
    StrategyName,
    StrategyRegistry,
    UnknownStrategyError,
    build_fallback_chain,
)

ORDER = ["openai", "openai-accurate"]
PRICES = {"openai": Decimal("0.00015"), "openai-accurate": Decimal("0.0025")}


class TestFallbackChains:
    """Test chains derived from the configured provider order"""

    def test_llm_primary(self):
        chain = build_fallback_chain(StrategyName.LLM_PRIMARY, ORDER, PRICES)
        assert chain == ("openai", "openai-accurate", TRADITIONAL_PROVIDER)

    def test_traditional_primary(self):
        chain = build_fallback_chain(StrategyName.TRADITIONAL_PRIMARY, ORDER, PRICES)
        assert chain == (TRADITIONAL_PROVIDER, "openai", "openai-accurate")

    def test_hybrid_interleaves_traditional(self):
        chain = build_fallback_chain(StrategyName.HYBRID, ORDER, PRICES)
        assert chain == ("openai", TRADITIONAL_PROVIDER, "openai-accurate")

    def test_cost_optimized_sorts_by_price(self):
        """Test cheapest LLM comes right after the free traditional parser"""
        chain = build_fallback_chain(StrategyName.COST_OPTIMIZED, ["openai-accurate", "openai"], PRICES)
        assert chain == (TRADITIONAL_PROVIDER, "openai", "openai-accurate")

    def test_disabled_providers_skipped(self):
        """Test providers without credentials (not priced) are left out"""
        chain = build_fallback_chain(StrategyName.LLM_PRIMARY, ["anthropic", "openai"], PRICES)
        assert chain == ("openai", TRADITIONAL_PROVIDER)

    def test_no_llm_gives_traditional_only(self):
        for name in StrategyName:
            assert build_fallback_chain(name, ORDER, {}) == (TRADITIONAL_PROVIDER,)


class TestStrategyRegistry:
    """Test registry lookups"""

    def test_all_strategies_registered(self):
        registry = StrategyRegistry.from_providers(ORDER, PRICES)
        assert [s.name for s in registry.list()] == list(StrategyName)

    def test_default_from_settings(self):
        registry = StrategyRegistry.from_providers(ORDER, PRICES, default="accuracy-optimized")
        assert registry.default.name == StrategyName.ACCURACY_OPTIMIZED
        assert registry.get().name == StrategyName.ACCURACY_OPTIMIZED

    def test_default_falls_back_without_llm(self):
        """Test no enabled LLM makes traditional-primary the default"""
        registry = StrategyRegistry.from_providers(ORDER, {}, default="hybrid")
        assert registry.default.name == StrategyName.TRADITIONAL_PRIMARY

    def test_thresholds_and_caps(self):
        registry = StrategyRegistry.from_providers(ORDER, PRICES)
        hybrid = registry.get("hybrid")
        assert hybrid.confidence_threshold == 0.85
        assert hybrid.max_cost_per_invoice == Decimal("0.05")
        assert registry.get("cost-optimized").confidence_threshold == 0.6

    def test_unknown_strategy(self):
        registry = StrategyRegistry.from_providers(ORDER, PRICES)
        with pytest.raises(UnknownStrategyError) as exc_info:
            registry.get("fastest")
        assert isinstance(exc_info.value, KeyError)
        assert str(exc_info.value) == "Unknown strategy: fastest"

    def test_unknown_default_rejected(self):
        with pytest.raises(UnknownStrategyError):
            StrategyRegistry.from_providers(ORDER, PRICES, default="fastest")

    def test_register_replaces_definition(self):
        from dataclasses import replace

        registry = StrategyRegistry.from_providers(ORDER, PRICES)
        custom = replace(DEFAULT_STRATEGIES[StrategyName.HYBRID], fallback_chain=("openai",))
        registry.register(custom)

        assert registry.get("hybrid").fallback_chain == ("openai",)

    def test_to_dict(self):
        registry = StrategyRegistry.from_providers(ORDER, PRICES)
        data = registry.get("traditional-primary").to_dict()
        assert data == {
            "name": "traditional-primary",
            "description": "Traditional parsing with LLM validation",
            "fallbackChain": ["traditional", "openai", "openai-accurate"],
            "confidenceThreshold": 0.7,
            "maxCostPerInvoice": "0.02",
        }
