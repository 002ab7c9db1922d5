import datetime as dt
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

# Accepts both the zero-padded ISO form and the unpadded Y-M-D form some
# clients send (e.g. '2024-3-5').
_DATE_RE = re.compile(r'^\s*(\d{4})-(\d{1,2})-(\d{1,2})\s*$')


def parse_date(value) -> Optional[dt.date]:
    """Parse a calendar date from an API payload.

    ``None`` and blank strings mean "no date". ``date`` instances pass
    through. Anything else that is not ``YYYY-M-D`` raises ``ValueError``.
    """
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if not isinstance(value, str):
        raise ValueError(f'unsupported date value: {value!r}')
    if not value.strip():
        return None
    m = _DATE_RE.match(value)
    if not m:
        raise ValueError(f'invalid date {value!r}, expected YYYY-MM-DD')
    year, month, day = (int(g) for g in m.groups())
    # date() validates month/day ranges and raises ValueError itself
    return dt.date(year, month, day)


def format_date(value: Optional[dt.date]) -> str:
    return value.isoformat() if value else ''
