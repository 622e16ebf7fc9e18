"""Document compliance classification."""

from datetime import date
from typing import Optional

from .dates import DateLike, days_until, is_before_today, parse_iso_date
from .status import DocumentStatus

# Documents expiring within this many days are "expiring soon"
WARNING_DAYS = 30


def classify(
    expiry_date: DateLike,
    today: Optional[date] = None,
    warning_days: int = WARNING_DAYS,
) -> DocumentStatus:
    """
    Map a document's expiry date to its compliance status.

    - No expiry date, or one that does not parse: MISSING
    - Expired before today (expiring today still counts as valid): OVERDUE
    - Fewer than ``warning_days`` days left: EXPIRING_SOON
    - Otherwise: COMPLIANT
    """
    expiry = parse_iso_date(expiry_date)
    if expiry is None:
        return DocumentStatus.MISSING
    if is_before_today(expiry, today):
        return DocumentStatus.OVERDUE
    if days_until(expiry, today) < warning_days:
        return DocumentStatus.EXPIRING_SOON
    return DocumentStatus.COMPLIANT
