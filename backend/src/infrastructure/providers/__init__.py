"""Extraction providers and the startup wiring that registers them."""

from .rule_based_provider import RuleBasedProvider
from .registry_init import build_orchestrator, build_providers

__all__ = [
    "RuleBasedProvider",
    "build_orchestrator",
    "build_providers",
]
