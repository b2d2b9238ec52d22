"""Extraction API schemas - request/response models for invoice parsing.

Wire names are camelCase; Python attributes stay snake_case. Money is
serialized as strings.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from domain.errors import ErrorDetail
from domain.extraction.models import ExpectedFormat, ExtractionResult


class ParseInvoiceRequest(BaseModel):
    """Request body for POST /api/v1/invoices/parse"""

    text: str = Field(..., min_length=1, description="Raw invoice text")
    expected_format: Optional[ExpectedFormat] = Field(None, alias="expectedFormat")
    strategy: Optional[str] = Field(None, description="Strategy name; the default strategy when omitted")
    supplier_name: Optional[str] = Field(None, alias="supplierName")

    class Config:
        populate_by_name = True


class LineItemResponse(BaseModel):
    description: str
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = Field(None, alias="unitPrice")
    line_total: Optional[Decimal] = Field(None, alias="lineTotal")
    category: Optional[str] = None

    class Config:
        populate_by_name = True


class InvoiceResponse(BaseModel):
    invoice_number: Optional[str] = Field(None, alias="invoiceNumber")
    issue_date: Optional[date] = Field(None, alias="issueDate")
    vendor_name: Optional[str] = Field(None, alias="vendorName")
    vendor_tax_id: Optional[str] = Field(None, alias="vendorTaxId")
    description: Optional[str] = None
    currency: Optional[str] = None
    subtotal: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = Field(None, alias="taxAmount")
    total: Optional[Decimal] = None
    line_items: List[LineItemResponse] = Field(default_factory=list, alias="lineItems")

    class Config:
        populate_by_name = True


class AttemptResponse(BaseModel):
    strategy: str
    provider: str
    position: int
    outcome: str
    confidence: float
    cost: Decimal
    elapsed_ms: int = Field(..., alias="elapsedMs")
    error: Optional[str] = None

    class Config:
        populate_by_name = True


class ParseInvoiceResponse(BaseModel):
    """Response body for POST /api/v1/invoices/parse

    ``success`` is true only when a provider cleared the strategy's
    confidence threshold; ``attempts`` lists every provider tried, in order.
    """

    success: bool
    status: str
    strategy: str
    confidence: float
    total_cost: Decimal = Field(..., alias="totalCost")
    processing_time_ms: int = Field(..., alias="processingTimeMs")
    winning_provider: Optional[str] = Field(None, alias="winningProvider")
    attempts: List[AttemptResponse]
    invoice: Optional[InvoiceResponse] = None
    error: Optional[ErrorDetail] = None

    class Config:
        populate_by_name = True

    @classmethod
    def from_result(cls, result: ExtractionResult) -> "ParseInvoiceResponse":
        invoice = None
        if result.invoice is not None:
            invoice = InvoiceResponse(
                **result.invoice.model_dump(exclude={"line_items"}),
                line_items=[LineItemResponse(**item.model_dump()) for item in result.invoice.line_items],
            )
        return cls(
            success=result.success,
            status=result.status.value,
            strategy=result.strategy,
            confidence=result.confidence,
            total_cost=result.total_cost,
            processing_time_ms=result.processing_time_ms,
            winning_provider=result.winning_provider,
            attempts=[
                AttemptResponse(**attempt.model_dump(mode="json"))
                for attempt in result.attempts
            ],
            invoice=invoice,
            error=result.error,
        )


class StrategyResponse(BaseModel):
    name: str
    description: str
    fallback_chain: List[str] = Field(..., alias="fallbackChain")
    confidence_threshold: float = Field(..., alias="confidenceThreshold")
    max_cost_per_invoice: Decimal = Field(..., alias="maxCostPerInvoice")
    is_default: bool = Field(False, alias="isDefault")

    class Config:
        populate_by_name = True


class StrategyListResponse(BaseModel):
    default: str
    strategies: List[StrategyResponse]
