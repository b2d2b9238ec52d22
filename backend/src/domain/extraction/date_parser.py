"""Invoice date parsing.

Trade invoices from NZ/AU suppliers print numeric dates day-first, so
``03/04/2024`` is the 3rd of April. Parsed dates are emitted as ISO strings.
"""

import logging
from datetime import datetime, date
from typing import Any, Optional

logger = logging.getLogger(__name__)


ISO_LAYOUTS = ("%Y-%m-%d", "%Y/%m/%d", "%Y-%m-%dT%H:%M:%S")
DAY_FIRST_LAYOUTS = ("%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y")
MONTH_NAME_LAYOUTS = (
    "%d %B %Y", "%d %b %Y", "%d-%b-%Y",
    "%B %d, %Y", "%b %d, %Y", "%B %d %Y", "%b %d %Y",
)

# tried in order, first layout that parses wins
DATE_FORMATS = ISO_LAYOUTS + DAY_FIRST_LAYOUTS + MONTH_NAME_LAYOUTS


def parse_date(value: Any) -> Optional[date]:
    """Read an invoice date, returning None when no layout matches.

    Accepts ``date``/``datetime`` objects unchanged (datetimes are truncated)
    and anything else via its string form with whitespace collapsed.

    >>> parse_date("15 Jan 2024")
    datetime.date(2024, 1, 15)
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = " ".join(str(value).split())
    if not text:
        return None

    for layout in DATE_FORMATS:
        try:
            return datetime.strptime(text, layout).date()
        except ValueError:
            pass

    logger.warning(f"Unrecognised invoice date: {text!r}")
    return None


def format_date_iso(value: Any) -> Optional[str]:
    """``parse_date`` then ``YYYY-MM-DD``; None when unparseable."""
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None
