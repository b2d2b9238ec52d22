"""InvoiceLineItem model - the slice of the invoice record the learning engine reads.

Line items belong to the invoice domain; learning only checks that a
referenced line item exists and records the category it was mapped to.
"""

from sqlalchemy import Column, Text, Numeric, DateTime

from .base import Base, utcnow


class InvoiceLineItem(Base):
    __tablename__ = "invoice_line_item"

    id = Column(Text, primary_key=True)
    invoice_ref = Column(Text, nullable=True)
    description = Column(Text, nullable=False)
    amount = Column(Numeric(14, 2), nullable=True)
    category = Column(Text, nullable=True)
    sub_category_ref = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
