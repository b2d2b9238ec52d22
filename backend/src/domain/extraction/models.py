"""Extraction domain models.

StructuredInvoice is the contract between providers and everything
downstream (review, correction learning). ExtractionAttempt and
ExtractionResult describe one orchestration run.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from domain.errors import ErrorDetail


class ExpectedFormat(str, Enum):
    """Optional layout hint passed to providers"""
    NZ_TAX_INVOICE = "nz-tax-invoice"
    AU_TAX_INVOICE = "au-tax-invoice"
    CONSTRUCTION_INVOICE = "construction-invoice"
    GENERIC = "generic"


class InvoiceLineItem(BaseModel):
    """Single line item from an extracted invoice.

    line_total is computed from quantity and unit_price when the document
    does not state it.
    """

    description: str = Field(..., description="Line description")
    quantity: Optional[Decimal] = Field(None, description="Quantity")
    unit_price: Optional[Decimal] = Field(None, description="Price per unit")
    line_total: Optional[Decimal] = Field(None, description="Total for this line")
    category: Optional[str] = Field(None, description="Category tag (e.g. MATERIAL, LABOR)")

    @field_validator('description', mode='before')
    @classmethod
    def strip_description(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator('category')
    @classmethod
    def uppercase_category(cls, v):
        if v:
            return v.strip().upper()
        return v

    @model_validator(mode='after')
    def compute_line_total(self):
        if self.line_total is None and self.quantity is not None and self.unit_price is not None:
            self.line_total = (self.quantity * self.unit_price).quantize(Decimal("0.01"))
        return self


class StructuredInvoice(BaseModel):
    """Structured invoice fields produced by an extraction provider.

    All monetary fields are Decimal; they serialize as strings.
    """

    invoice_number: Optional[str] = None
    issue_date: Optional[date] = None
    vendor_name: Optional[str] = None
    vendor_tax_id: Optional[str] = None
    description: Optional[str] = None
    currency: Optional[str] = None
    subtotal: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    total: Optional[Decimal] = None
    line_items: List[InvoiceLineItem] = Field(default_factory=list)

    @field_validator('invoice_number', 'vendor_name', 'vendor_tax_id', 'description', mode='before')
    @classmethod
    def strip_strings(cls, v):
        """Strip whitespace from string fields"""
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator('currency')
    @classmethod
    def uppercase_currency(cls, v):
        if v:
            return v.upper()
        return v

    def totals_consistent(self, tolerance: Decimal = Decimal("0.50")) -> Optional[bool]:
        """True when subtotal + tax matches total, None when a figure is missing."""
        if self.subtotal is None or self.tax_amount is None or self.total is None:
            return None
        return abs(self.total - (self.subtotal + self.tax_amount)) <= tolerance


class AttemptOutcome(str, Enum):
    """Outcome of one provider attempt"""
    SUCCEEDED = "SUCCEEDED"
    BELOW_THRESHOLD = "BELOW_THRESHOLD"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


class RunStatus(str, Enum):
    """Terminal status of an orchestration run"""
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ExtractionAttempt(BaseModel):
    """One provider invocation inside a fallback chain. Immutable once recorded."""

    strategy: str
    provider: str
    position: int = Field(..., ge=0, description="Ordinal position in the fallback chain")
    outcome: AttemptOutcome
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    cost: Decimal = Field(Decimal("0"), ge=0)
    elapsed_ms: int = 0
    error: Optional[str] = None

    class Config:
        frozen = True

    @property
    def success(self) -> bool:
        """The provider produced a payload (whether or not it cleared the threshold)."""
        return self.outcome in (AttemptOutcome.SUCCEEDED, AttemptOutcome.BELOW_THRESHOLD)


class ExtractionResult(BaseModel):
    """Terminal outcome of an orchestration run."""

    status: RunStatus
    strategy: str
    confidence: float = 0.0
    total_cost: Decimal = Decimal("0")
    processing_time_ms: int = 0
    attempts: List[ExtractionAttempt] = Field(default_factory=list)
    invoice: Optional[StructuredInvoice] = None
    error: Optional[ErrorDetail] = None

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    @property
    def winning_provider(self) -> Optional[str]:
        if not self.success:
            return None
        return self.attempts[-1].provider
