"""Matchers derived from corrected field values.

A learned pattern stores a matcher kind plus the normalized corrected value;
the concrete regular expression is built here and nowhere else.

- LITERAL: the value itself, case-insensitive, any run of whitespace
- NUMERIC: the amount with optional currency prefix, thousands separators
  and a dropped ".00"
- DATE: the date in every layout the date parser accepts
"""

import calendar
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from functools import lru_cache
from typing import Optional


class MatcherKind(str, Enum):
    LITERAL = "LITERAL"
    NUMERIC = "NUMERIC"
    DATE = "DATE"


CURRENCY_PREFIX = r"(?:(?:NZ\$|AU\$|A\$|US\$|\$|€|£|NZD|AUD|USD|EUR)\s*)?"
ORDINAL_SUFFIX = r"(?:st|nd|rd|th)?"


def _literal_regex(value: str) -> str:
    words = value.split()
    return r"\s+".join(re.escape(word) for word in words)


def _numeric_regex(value: str) -> str:
    amount = Decimal(value)
    sign = "-" if amount < 0 else ""
    integer, _, fraction = f"{abs(amount):.2f}".partition(".")

    groups = []
    while len(integer) > 3:
        groups.insert(0, integer[-3:])
        integer = integer[:-3]
    groups.insert(0, integer)
    integer_regex = ",?".join(groups)

    if fraction == "00":
        fraction_regex = r"(?:\.00?)?"
    elif fraction.endswith("0"):
        fraction_regex = r"\." + fraction[0] + "0?"
    else:
        fraction_regex = r"\." + fraction

    return rf"(?<![\d.,]){re.escape(sign)}{CURRENCY_PREFIX}{integer_regex}{fraction_regex}(?!\.?\d)"


def _date_regex(value: str) -> str:
    d = date.fromisoformat(value)
    day = rf"0?{d.day}"
    month = rf"0?{d.month}"
    month_names = rf"(?:{calendar.month_name[d.month]}|{calendar.month_abbr[d.month]})\.?"

    alternatives = [
        rf"{d.year}[-/]{d.month:02d}[-/]{d.day:02d}",
        rf"{day}([/\-.]){month}\1{d.year}",
        rf"{day}{ORDINAL_SUFFIX}[\s\-]+{month_names}[\s\-,]+{d.year}",
        rf"{month_names}\s+{day}{ORDINAL_SUFFIX},?\s+{d.year}",
    ]
    return r"(?<!\d)(?:" + "|".join(f"(?:{alt})" for alt in alternatives) + r")(?!\d)"


@lru_cache(maxsize=1024)
def compile_matcher(kind: MatcherKind, value: str) -> "re.Pattern":
    """Compiled regex for a (kind, normalized value) pair.

    Raises:
        ValueError: If the value cannot be read as the given kind
    """
    if kind == MatcherKind.NUMERIC:
        try:
            source = _numeric_regex(value)
        except InvalidOperation:
            raise ValueError(f"Not a numeric value: {value!r}")
    elif kind == MatcherKind.DATE:
        source = _date_regex(value)
    else:
        source = _literal_regex(value)
    return re.compile(source, re.IGNORECASE)


@dataclass(frozen=True)
class FieldMatcher:
    kind: MatcherKind
    value: str

    def find(self, text: str) -> Optional[str]:
        """Value found in text, or None.

        NUMERIC and DATE return the normalized value; LITERAL returns the
        text as written in the document (whitespace collapsed).
        """
        if not text or not self.value:
            return None
        match = compile_matcher(self.kind, self.value).search(text)
        if match is None:
            return None
        if self.kind == MatcherKind.LITERAL:
            return " ".join(match.group(0).split())
        return self.value
