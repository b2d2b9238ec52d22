"""Completeness score for rule-based extractions.

The rule-based provider has no model confidence of its own, so it scores how
much of an invoice it managed to fill in. The score is compared against the
same acceptance thresholds as LLM answers.

    overall = 0.4 * header + 0.6 * mean(line)    (header alone without lines)

A header scores the share of its key fields that are present and a line
scores the share of description, quantity and line total. When subtotal + tax
does not match the total, the result is multiplied by 0.8.
"""

from typing import List, Tuple

from .models import InvoiceLineItem, StructuredInvoice

HEADER_FIELDS = ("invoice_number", "issue_date", "vendor_name", "total")
LINE_FIELDS = ("description", "quantity", "line_total")

INCONSISTENT_TOTALS_PENALTY = 0.8


def _share_present(obj, names) -> float:
    present = [n for n in names if getattr(obj, n, None) not in (None, "")]
    return len(present) / len(names)


def calculate_header_confidence(invoice: StructuredInvoice) -> float:
    return _share_present(invoice, HEADER_FIELDS)


def calculate_line_confidence(line: InvoiceLineItem) -> float:
    return _share_present(line, LINE_FIELDS)


def calculate_lines_confidence(lines: List[InvoiceLineItem]) -> float:
    """Mean line score; 0.0 for an invoice without lines."""
    if not lines:
        return 0.0
    return sum(calculate_line_confidence(line) for line in lines) / len(lines)


def calculate_confidence(
    invoice: StructuredInvoice,
    header_weight: float = 0.4,
    lines_weight: float = 0.6
) -> Tuple[float, dict]:
    """Score an extracted invoice.

    Returns ``(score, breakdown)`` where the score is rounded to three places
    and the breakdown carries the component scores for logging.

    Raises:
        ValueError: If the weights do not sum to 1.0
    """
    if abs(header_weight + lines_weight - 1.0) > 0.01:
        raise ValueError(f"Weights must sum to 1.0, got {header_weight + lines_weight}")

    header_score = calculate_header_confidence(invoice)
    lines_score = calculate_lines_confidence(invoice.line_items)

    score = header_score
    if invoice.line_items:
        score = header_weight * header_score + lines_weight * lines_score

    consistent = invoice.totals_consistent()
    if consistent is False:
        score *= INCONSISTENT_TOTALS_PENALTY

    return round(score, 3), {
        "header_score": round(header_score, 3),
        "lines_score": round(lines_score, 3),
        "lines_count": len(invoice.line_items),
        "totals_consistent": consistent,
    }
