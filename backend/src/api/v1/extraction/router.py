"""Invoice parsing API endpoints.

POST /api/v1/invoices/parse runs a strategy's fallback chain over invoice
text. Provider failures never surface as HTTP errors: a run that exhausts
its chain is a 200 response with ``success: false`` and the full attempt
ledger, so callers can see what was tried and what it cost. A client that
disconnects mid-run stops the chain before its next attempt.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from dependencies import get_actor_id, get_orchestrator
from domain.extraction.orchestrator import ExtractionOrchestrator, ParseContext

from .schemas import (
    ParseInvoiceRequest,
    ParseInvoiceResponse,
    StrategyListResponse,
    StrategyResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/invoices", tags=["extraction"])

DISCONNECT_POLL_SECONDS = 0.25


class EstimateRequest(BaseModel):
    text: str = Field(..., min_length=1)
    strategy: Optional[str] = None


async def watch_disconnect(http_request: Request, cancel_event: asyncio.Event) -> None:
    """Set ``cancel_event`` once the client has gone away."""
    while not cancel_event.is_set():
        if await http_request.is_disconnected():
            logger.info(f"Client disconnected from {http_request.url.path}; cancelling run")
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@router.post("/parse", response_model=ParseInvoiceResponse)
async def parse_invoice(
    request: ParseInvoiceRequest,
    http_request: Request,
    actor_id: str = Depends(get_actor_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
):
    """Parse invoice text with the requested (or default) strategy.

    Returns CANCELLED with the attempts made so far when the client
    disconnects before the chain finishes.

    Raises:
        UnknownStrategyError: If ``strategy`` is not a registered name (400)
    """
    context = ParseContext(
        identity=actor_id,
        expected_format=request.expected_format,
        strategy=request.strategy,
        supplier_name=request.supplier_name,
        cancel_event=asyncio.Event(),
    )
    watcher = asyncio.create_task(watch_disconnect(http_request, context.cancel_event))
    # let the watcher take its first look before any attempt starts
    await asyncio.sleep(0)
    try:
        result = await orchestrator.parse_invoice(request.text, context)
    finally:
        watcher.cancel()

    logger.info(
        f"Parse finished: status={result.status.value}, attempts={len(result.attempts)}, "
        f"cost=${result.total_cost}",
        extra={"strategy": result.strategy, "status": result.status.value},
    )
    return ParseInvoiceResponse.from_result(result)


@router.get("/strategies", response_model=StrategyListResponse)
def list_strategies(
    actor_id: str = Depends(get_actor_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
):
    """Configured strategies with their resolved fallback chains."""
    registry = orchestrator.registry
    default_name = registry.default.name
    return StrategyListResponse(
        default=default_name.value,
        strategies=[
            StrategyResponse(
                name=strategy.name.value,
                description=strategy.description,
                fallback_chain=list(strategy.fallback_chain),
                confidence_threshold=strategy.confidence_threshold,
                max_cost_per_invoice=strategy.max_cost_per_invoice,
                is_default=strategy.name == default_name,
            )
            for strategy in registry.list()
        ],
    )


@router.post("/parse/estimate")
def estimate_parse_cost(
    request: EstimateRequest,
    actor_id: str = Depends(get_actor_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
):
    """Worst-case cost of parsing ``text``, capped at the strategy limit."""
    strategy = orchestrator.registry.get(request.strategy)
    estimate = orchestrator.estimate_cost(request.text, strategy.name.value)
    return {
        "strategy": strategy.name.value,
        "estimatedCost": str(estimate),
        "maxCostPerInvoice": str(strategy.max_cost_per_invoice),
    }
