"""Extraction orchestrator.

Walks a strategy's fallback chain one provider at a time. Each attempt is
bounded by a timeout and recorded in an append-only ledger; the first
answer that clears the strategy's threshold wins. Provider errors never
abort the run, they advance the chain.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Mapping, Optional

from domain.ai.ports import LLMError
from domain.errors import ChainExhaustedError, ErrorDetail, ProviderFailureError

from .models import (
    AttemptOutcome,
    ExpectedFormat,
    ExtractionAttempt,
    ExtractionResult,
    RunStatus,
    StructuredInvoice,
)
from .ports import ExtractionProviderPort, ProviderOutcome
from .strategies import Strategy, StrategyRegistry

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_TIMEOUT_SECONDS = 30.0


@dataclass
class ParseContext:
    """Caller identity plus optional hints for one run.

    ``cancel_event`` is anything with ``is_set()`` (asyncio.Event or
    threading.Event); once set, no further attempts are started.
    """
    identity: str
    expected_format: Optional[ExpectedFormat] = None
    strategy: Optional[str] = None
    cancel_event: Optional[object] = None
    supplier_name: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def hints(self) -> dict:
        return {
            "identity": self.identity,
            "expected_format": self.expected_format.value if self.expected_format else None,
            "supplier_name": self.supplier_name,
        }


class ExtractionRun:
    """Append-only attempt ledger for one orchestration run.

    Callers that may cancel the task pass their own run so the attempts
    recorded before cancellation stay available to them.
    """

    def __init__(self, strategy: str):
        self.strategy = strategy
        self._attempts: List[ExtractionAttempt] = []

    def record(self, attempt: ExtractionAttempt) -> None:
        if attempt.position != len(self._attempts):
            raise ValueError(
                f"Attempt position {attempt.position} out of order, expected {len(self._attempts)}"
            )
        self._attempts.append(attempt)

    @property
    def attempts(self) -> List[ExtractionAttempt]:
        return list(self._attempts)

    @property
    def next_position(self) -> int:
        return len(self._attempts)

    @property
    def total_cost(self) -> Decimal:
        return sum((a.cost for a in self._attempts), Decimal("0"))


class ExtractionOrchestrator:
    """Runs fallback chains against a fixed set of providers."""

    def __init__(
        self,
        registry: StrategyRegistry,
        providers: Mapping[str, ExtractionProviderPort],
        timeout_seconds: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
    ):
        self.registry = registry
        self.providers: Dict[str, ExtractionProviderPort] = dict(providers)
        self.timeout_seconds = timeout_seconds

    async def parse_invoice(
        self,
        text: str,
        context: ParseContext,
        run: Optional[ExtractionRun] = None,
    ) -> ExtractionResult:
        """Extract a StructuredInvoice from raw text.

        Args:
            text: Raw invoice text
            context: Identity, hints and optional strategy / cancel event
            run: Ledger to record attempts into (a fresh one when omitted)

        Returns:
            ExtractionResult with status SUCCEEDED, FAILED or CANCELLED

        Raises:
            UnknownStrategyError: If context.strategy is not registered
            asyncio.CancelledError: If the task is cancelled mid-attempt;
                the run keeps every attempt recorded so far
        """
        strategy = self.registry.get(context.strategy)
        if run is None:
            run = ExtractionRun(strategy.name.value)
        started = time.perf_counter()
        hints = context.hints()

        logger.info(
            f"Starting extraction run: strategy={strategy.name.value}, "
            f"chain={list(strategy.fallback_chain)}, identity={context.identity}"
        )

        budget_note = None
        for provider_name in strategy.fallback_chain:
            if context.cancelled:
                logger.info(f"Extraction run cancelled after {run.next_position} attempts")
                return self._finish(run, strategy, RunStatus.CANCELLED, started)

            if run.total_cost >= strategy.max_cost_per_invoice:
                budget_note = (
                    f"cost cap ${strategy.max_cost_per_invoice} reached "
                    f"after {run.next_position} attempts"
                )
                logger.warning(f"Extraction run stopped: {budget_note}")
                break

            attempt, invoice = await self._try_provider(strategy, provider_name, text, hints, run)

            if attempt.outcome == AttemptOutcome.SUCCEEDED:
                logger.info(
                    f"Extraction succeeded via {provider_name}: "
                    f"confidence={attempt.confidence:.3f}, total_cost=${run.total_cost}"
                )
                return self._finish(
                    run, strategy, RunStatus.SUCCEEDED, started,
                    invoice=invoice, confidence=attempt.confidence,
                )

        message = f"All {run.next_position} providers in strategy '{strategy.name.value}' failed or were below threshold"
        if budget_note:
            message = f"{message} ({budget_note})"
        logger.warning(f"Extraction chain exhausted: {message}")
        return self._finish(
            run, strategy, RunStatus.FAILED, started,
            error=ChainExhaustedError(message).to_detail(),
        )

    async def parse_with_strategy(
        self, strategy_name: str, text: str, context: ParseContext
    ) -> ExtractionResult:
        """Same as parse_invoice with an explicit strategy."""
        context.strategy = strategy_name
        return await self.parse_invoice(text, context)

    def estimate_cost(self, text: str, strategy_name: Optional[str] = None) -> Decimal:
        """Worst-case spend for running the whole chain, capped at the strategy limit."""
        strategy = self.registry.get(strategy_name)
        total = Decimal("0")
        for provider_name in strategy.fallback_chain:
            provider = self.providers.get(provider_name)
            if provider is not None:
                total += provider.estimate_cost(text)
        return min(total, strategy.max_cost_per_invoice)

    async def _try_provider(
        self,
        strategy: Strategy,
        provider_name: str,
        text: str,
        hints: dict,
        run: ExtractionRun,
    ):
        position = run.next_position
        provider = self.providers.get(provider_name)

        def record(outcome, confidence=0.0, cost=Decimal("0"), error=None, elapsed_ms=0):
            attempt = ExtractionAttempt(
                strategy=strategy.name.value,
                provider=provider_name,
                position=position,
                outcome=outcome,
                confidence=confidence,
                cost=cost,
                elapsed_ms=elapsed_ms,
                error=error,
            )
            run.record(attempt)
            return attempt

        if provider is None:
            logger.warning(f"Provider not available: {provider_name}")
            return record(AttemptOutcome.FAILED, error="Provider not available"), None

        attempt_started = time.perf_counter()

        def elapsed() -> int:
            return int((time.perf_counter() - attempt_started) * 1000)

        try:
            outcome: ProviderOutcome = await asyncio.wait_for(
                asyncio.to_thread(provider.attempt, text, hints),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Provider {provider_name} timed out after {self.timeout_seconds}s")
            return record(
                AttemptOutcome.TIMED_OUT,
                error=f"Timed out after {self.timeout_seconds}s",
                elapsed_ms=elapsed(),
            ), None
        except asyncio.CancelledError:
            record(AttemptOutcome.FAILED, error="cancelled", elapsed_ms=elapsed())
            raise
        except (LLMError, ProviderFailureError) as e:
            logger.warning(f"Provider {provider_name} failed: {e}")
            return record(AttemptOutcome.FAILED, error=str(e), elapsed_ms=elapsed()), None
        except Exception as e:
            logger.error(f"Provider {provider_name} raised unexpectedly: {e}", exc_info=True)
            return record(
                AttemptOutcome.FAILED,
                error=f"{type(e).__name__}: {e}",
                elapsed_ms=elapsed(),
            ), None

        cost = max(Decimal(outcome.cost or 0), Decimal("0"))
        confidence = min(max(float(outcome.confidence or 0.0), 0.0), 1.0)

        if outcome.error or outcome.invoice is None:
            error = outcome.error or "Provider returned no invoice"
            logger.warning(f"Provider {provider_name} failed: {error}")
            return record(
                AttemptOutcome.FAILED, confidence=confidence, cost=cost,
                error=error, elapsed_ms=elapsed(),
            ), None

        if confidence >= strategy.confidence_threshold:
            return record(
                AttemptOutcome.SUCCEEDED, confidence=confidence, cost=cost,
                elapsed_ms=elapsed(),
            ), outcome.invoice

        logger.info(
            f"Provider {provider_name} below threshold: "
            f"{confidence:.3f} < {strategy.confidence_threshold}"
        )
        return record(
            AttemptOutcome.BELOW_THRESHOLD, confidence=confidence, cost=cost,
            elapsed_ms=elapsed(),
        ), None

    @staticmethod
    def _finish(
        run: ExtractionRun,
        strategy: Strategy,
        status: RunStatus,
        started: float,
        invoice: Optional[StructuredInvoice] = None,
        confidence: float = 0.0,
        error: Optional[ErrorDetail] = None,
    ) -> ExtractionResult:
        return ExtractionResult(
            status=status,
            strategy=strategy.name.value,
            confidence=confidence,
            total_cost=run.total_cost,
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            attempts=run.attempts,
            invoice=invoice,
            error=error,
        )
