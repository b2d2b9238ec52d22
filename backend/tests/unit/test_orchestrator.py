"""Unit tests for the extraction orchestrator

Tests cover:
- First provider below threshold, second provider wins
- Chain exhaustion with a structured CHAIN_EXHAUSTED error
- Provider exceptions, timeouts and missing providers advance the chain
- Per-invoice cost cap stops the chain
- Cancellation (event and task cancel) keeps recorded attempts
"""

import asyncio
import threading
from decimal import Decimal

import pytest

from conftest import StubProvider
from domain.errors import ProviderFailureError
from domain.extraction.models import AttemptOutcome, RunStatus, StructuredInvoice
from domain.extraction.orchestrator import ExtractionOrchestrator, ExtractionRun, ParseContext
from domain.extraction.strategies import (
    Strategy,
    StrategyName,
    StrategyRegistry,
    UnknownStrategyError,
)
from domain.extraction.models import ExtractionAttempt


def make_orchestrator(providers, chain=("a", "b"), threshold=0.5, max_cost="1.00", timeout=2.0):
    strategy = Strategy(StrategyName.HYBRID, "test", tuple(chain), threshold, Decimal(max_cost))
    registry = StrategyRegistry({StrategyName.HYBRID: strategy}, StrategyName.HYBRID)
    return ExtractionOrchestrator(registry, {p.name: p for p in providers}, timeout_seconds=timeout)


class TestFallbackChain:
    """Test fallback across providers"""

    @pytest.mark.asyncio
    async def test_below_threshold_then_success(self):
        """Test provider at 0.3 falls through to provider at 0.9 with threshold 0.5"""
        a = StubProvider("a", confidence=0.3, cost=Decimal("0.002"))
        b = StubProvider("b", confidence=0.9, cost=Decimal("0.003"),
                         invoice=StructuredInvoice(invoice_number="INV-B"))
        orchestrator = make_orchestrator([a, b])

        result = await orchestrator.parse_invoice("Invoice #: INV-B", ParseContext(identity="u1"))

        assert result.status == RunStatus.SUCCEEDED
        assert result.success is True
        assert [at.outcome for at in result.attempts] == [
            AttemptOutcome.BELOW_THRESHOLD, AttemptOutcome.SUCCEEDED,
        ]
        assert [at.position for at in result.attempts] == [0, 1]
        assert result.confidence == pytest.approx(0.9)
        assert result.total_cost == Decimal("0.005")
        assert result.invoice.invoice_number == "INV-B"
        assert result.winning_provider == "b"

    @pytest.mark.asyncio
    async def test_first_provider_success_skips_rest(self):
        """Test a winning first attempt ends the run"""
        a = StubProvider("a", confidence=0.95)
        b = StubProvider("b", confidence=0.99)
        orchestrator = make_orchestrator([a, b])

        result = await orchestrator.parse_invoice("text", ParseContext(identity="u1"))

        assert result.status == RunStatus.SUCCEEDED
        assert len(result.attempts) == 1
        assert b.calls == 0

    @pytest.mark.asyncio
    async def test_chain_exhausted(self):
        """Test every provider below threshold gives FAILED with CHAIN_EXHAUSTED"""
        a = StubProvider("a", confidence=0.2, cost=Decimal("0.001"))
        b = StubProvider("b", confidence=0.4, cost=Decimal("0.001"))
        orchestrator = make_orchestrator([a, b])

        result = await orchestrator.parse_invoice("text", ParseContext(identity="u1"))

        assert result.status == RunStatus.FAILED
        assert result.invoice is None
        assert result.error.kind == "CHAIN_EXHAUSTED"
        assert len(result.attempts) == 2
        assert result.total_cost == Decimal("0.002")

    @pytest.mark.asyncio
    async def test_provider_exception_advances_chain(self):
        """Test a raising provider is recorded as FAILED and the next one runs"""
        a = StubProvider("a", error=ProviderFailureError("service down"))
        b = StubProvider("b", confidence=0.8)
        orchestrator = make_orchestrator([a, b])

        result = await orchestrator.parse_invoice("text", ParseContext(identity="u1"))

        assert result.status == RunStatus.SUCCEEDED
        assert result.attempts[0].outcome == AttemptOutcome.FAILED
        assert "service down" in result.attempts[0].error

    @pytest.mark.asyncio
    async def test_unexpected_exception_advances_chain(self):
        """Test a non-domain exception is contained too"""
        a = StubProvider("a", error=RuntimeError("boom"))
        b = StubProvider("b", confidence=0.8)
        orchestrator = make_orchestrator([a, b])

        result = await orchestrator.parse_invoice("text", ParseContext(identity="u1"))

        assert result.status == RunStatus.SUCCEEDED
        assert result.attempts[0].error == "RuntimeError: boom"

    @pytest.mark.asyncio
    async def test_missing_provider_recorded(self):
        """Test a chain entry with no registered provider is a FAILED attempt"""
        b = StubProvider("b", confidence=0.8)
        orchestrator = make_orchestrator([b], chain=("ghost", "b"))

        result = await orchestrator.parse_invoice("text", ParseContext(identity="u1"))

        assert result.status == RunStatus.SUCCEEDED
        assert result.attempts[0].provider == "ghost"
        assert result.attempts[0].error == "Provider not available"

    @pytest.mark.asyncio
    async def test_timeout_advances_chain(self):
        """Test a slow provider times out and the next provider is tried"""
        slow = StubProvider("a", confidence=0.99, delay=0.5)
        b = StubProvider("b", confidence=0.8)
        orchestrator = make_orchestrator([slow, b], timeout=0.05)

        result = await orchestrator.parse_invoice("text", ParseContext(identity="u1"))

        assert result.attempts[0].outcome == AttemptOutcome.TIMED_OUT
        assert result.status == RunStatus.SUCCEEDED
        assert result.winning_provider == "b"


class TestCostCap:
    """Test per-invoice spend cap"""

    @pytest.mark.asyncio
    async def test_cost_cap_stops_chain(self):
        """Test no further attempt starts once spend reaches the cap"""
        a = StubProvider("a", confidence=0.1, cost=Decimal("0.02"))
        b = StubProvider("b", confidence=0.99)
        orchestrator = make_orchestrator([a, b], max_cost="0.01")

        result = await orchestrator.parse_invoice("text", ParseContext(identity="u1"))

        assert result.status == RunStatus.FAILED
        assert b.calls == 0
        assert len(result.attempts) == 1
        assert "cost cap" in result.error.message

    def test_estimate_cost_capped(self):
        """Test estimate sums provider estimates and caps at the strategy limit"""
        a = StubProvider("a", estimate=Decimal("0.4"))
        b = StubProvider("b", estimate=Decimal("0.9"))
        orchestrator = make_orchestrator([a, b], max_cost="1.00")

        assert orchestrator.estimate_cost("text") == Decimal("1.00")

    def test_estimate_cost_below_cap(self):
        a = StubProvider("a", estimate=Decimal("0.01"))
        b = StubProvider("b", estimate=Decimal("0.02"))
        orchestrator = make_orchestrator([a, b])

        assert orchestrator.estimate_cost("text") == Decimal("0.03")


class TestCancellation:
    """Test cancellation keeps recorded attempts"""

    @pytest.mark.asyncio
    async def test_cancel_event_before_start(self):
        """Test a pre-set cancel event gives CANCELLED with no attempts"""
        event = threading.Event()
        event.set()
        a = StubProvider("a")
        orchestrator = make_orchestrator([a])

        result = await orchestrator.parse_invoice("text", ParseContext(identity="u1", cancel_event=event))

        assert result.status == RunStatus.CANCELLED
        assert result.attempts == []
        assert a.calls == 0

    @pytest.mark.asyncio
    async def test_cancel_event_between_attempts(self):
        """Test cancelling during the first attempt stops before the second"""
        event = threading.Event()

        class CancellingProvider(StubProvider):
            def attempt(self, text, context):
                event.set()
                return super().attempt(text, context)

        a = CancellingProvider("a", confidence=0.1)
        b = StubProvider("b", confidence=0.99)
        orchestrator = make_orchestrator([a, b])

        result = await orchestrator.parse_invoice("text", ParseContext(identity="u1", cancel_event=event))

        assert result.status == RunStatus.CANCELLED
        assert len(result.attempts) == 1
        assert b.calls == 0

    @pytest.mark.asyncio
    async def test_task_cancel_keeps_attempts(self):
        """Test cancelling the task mid-attempt records the in-flight attempt"""
        slow = StubProvider("a", delay=0.5)
        orchestrator = make_orchestrator([slow])
        run = ExtractionRun("hybrid")

        task = asyncio.create_task(orchestrator.parse_invoice("text", ParseContext(identity="u1"), run))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(run.attempts) == 1
        assert run.attempts[0].outcome == AttemptOutcome.FAILED
        assert run.attempts[0].error == "cancelled"


class TestStrategySelection:
    """Test strategy lookup"""

    @pytest.mark.asyncio
    async def test_unknown_strategy_raises(self):
        orchestrator = make_orchestrator([StubProvider("a")])

        with pytest.raises(UnknownStrategyError):
            await orchestrator.parse_invoice("text", ParseContext(identity="u1", strategy="magic"))

    @pytest.mark.asyncio
    async def test_parse_with_strategy(self):
        """Test explicit strategy name is used for the run"""
        orchestrator = make_orchestrator([StubProvider("a", confidence=0.9)])

        result = await orchestrator.parse_with_strategy("hybrid", "text", ParseContext(identity="u1"))

        assert result.strategy == "hybrid"
        assert result.status == RunStatus.SUCCEEDED


class TestExtractionRun:
    """Test the append-only attempt ledger"""

    def test_out_of_order_position_rejected(self):
        run = ExtractionRun("hybrid")
        attempt = ExtractionAttempt(
            strategy="hybrid", provider="a", position=1, outcome=AttemptOutcome.FAILED,
        )

        with pytest.raises(ValueError):
            run.record(attempt)

    def test_attempts_returns_copy(self):
        run = ExtractionRun("hybrid")
        run.record(ExtractionAttempt(strategy="hybrid", provider="a", position=0, outcome=AttemptOutcome.FAILED))

        run.attempts.clear()

        assert run.next_position == 1
