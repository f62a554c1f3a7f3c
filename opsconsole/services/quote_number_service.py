"""Quote number generation."""
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from opsconsole.models import Quote

SEQUENCE_WIDTH = 4


def year_prefix(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"{today.year % 100:02d}"


def generate_quote_number(session: Session, today: Optional[date] = None) -> str:
    """
    Next quote number in format [YY][NNNN], e.g. 260001 for the first quote of 2026.

    Scans stored numbers for the current year prefix and increments the
    highest sequence found, so gaps are tolerated and no stored number is
    reused. Not atomic across concurrent requests: callers retry on conflict.
    """
    prefix = year_prefix(today)
    rows = session.query(Quote.quote_number).filter(
        Quote.quote_number.like(f'{prefix}%')
    ).all()

    highest = 0
    for (quote_number,) in rows:
        sequence = (quote_number or '')[len(prefix):]
        if sequence.isdigit():
            highest = max(highest, int(sequence))

    return f"{prefix}{str(highest + 1).zfill(SEQUENCE_WIDTH)}"


def is_quote_number_taken(session: Session, quote_number: str, exclude_quote_id: Optional[str] = None) -> bool:
    """True when a stored quote (other than exclude_quote_id) already owns quote_number."""
    query = session.query(Quote.id).filter(Quote.quote_number == quote_number)
    if exclude_quote_id:
        query = query.filter(Quote.id != exclude_quote_id)
    return query.first() is not None
