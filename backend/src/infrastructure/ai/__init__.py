"""AI Infrastructure - Adapters for LLM providers.

This module contains concrete implementations of the extraction provider
port backed by LLM APIs, plus their cost helpers.
"""

from .anthropic_provider import AnthropicProvider
from .llm_invoice_provider import LLMInvoiceProvider
from .openai_provider import OpenAIProvider
from .cost_calculator import CostCalculator
from .token_estimator import TokenEstimator

__all__ = [
    "AnthropicProvider",
    "LLMInvoiceProvider",
    "OpenAIProvider",
    "CostCalculator",
    "TokenEstimator"
]
