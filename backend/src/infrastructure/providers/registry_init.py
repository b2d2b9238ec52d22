"""Provider Registry Initialization - build the orchestrator on app startup.

Registers the rule-based provider plus every LLM provider that has
credentials, derives strategy chains from PROVIDER_ORDER and wires both
into an ExtractionOrchestrator.
"""

import logging
from decimal import Decimal
from typing import Dict, Optional

from config import Settings
from domain.extraction.orchestrator import ExtractionOrchestrator
from domain.extraction.ports import ExtractionProviderPort
from domain.extraction.strategies import StrategyRegistry
from infrastructure.ai.anthropic_provider import AnthropicProvider
from infrastructure.ai.llm_invoice_provider import LLMInvoiceProvider
from infrastructure.ai.openai_provider import OpenAIProvider
from learning.pattern_store import PatternStore

from .rule_based_provider import RuleBasedProvider

logger = logging.getLogger(__name__)


def build_providers(settings: Settings, store: Optional[PatternStore] = None) -> Dict[str, ExtractionProviderPort]:
    """All providers that can run with the current settings, keyed by name.

    Example:
        >>> providers = build_providers(get_settings(), store)
        >>> sorted(providers)
        ['anthropic', 'openai', 'openai-accurate', 'traditional']
    """
    providers: Dict[str, ExtractionProviderPort] = {}

    rule_based = RuleBasedProvider(store)
    providers[rule_based.name] = rule_based

    if settings.OPENAI_API_KEY:
        for name, model in (
            ("openai", settings.OPENAI_TEXT_MODEL),
            ("openai-accurate", settings.OPENAI_ACCURATE_MODEL),
        ):
            providers[name] = OpenAIProvider(
                name=name,
                model=model,
                api_key=settings.OPENAI_API_KEY,
                request_timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            )
    else:
        logger.warning("OPENAI_API_KEY not set, OpenAI providers disabled")

    if settings.ANTHROPIC_API_KEY:
        providers["anthropic"] = AnthropicProvider(
            model=settings.ANTHROPIC_MODEL,
            api_key=settings.ANTHROPIC_API_KEY,
            request_timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )
    else:
        logger.warning("ANTHROPIC_API_KEY not set, Anthropic provider disabled")

    return providers


def llm_input_prices(providers: Dict[str, ExtractionProviderPort]) -> Dict[str, Decimal]:
    """Input price per 1k tokens of every LLM provider; unpriced models sort last."""
    prices: Dict[str, Decimal] = {}
    for name, provider in providers.items():
        if not isinstance(provider, LLMInvoiceProvider):
            continue
        try:
            prices[name] = provider.price_per_1k_input
        except ValueError:
            logger.warning(f"No pricing for {name} ({provider.model}), ordered last in cost-optimized chains")
            prices[name] = Decimal("Infinity")
    return prices


def build_orchestrator(settings: Settings, store: Optional[PatternStore] = None) -> ExtractionOrchestrator:
    """Build the strategy registry and orchestrator from settings."""
    logger.info("Initializing extraction providers...")
    providers = build_providers(settings, store)

    registry = StrategyRegistry.from_providers(
        settings.provider_order,
        llm_input_prices(providers),
        default=settings.PARSING_STRATEGY,
    )

    logger.info(
        f"Extraction providers initialized: {sorted(providers)}, "
        f"default strategy={registry.default.name.value}"
    )
    return ExtractionOrchestrator(
        registry,
        providers,
        timeout_seconds=settings.PROVIDER_TIMEOUT_SECONDS,
    )
