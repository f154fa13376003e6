"""
Bill Status Deriver

The one place that decides whether a bill is shown as overdue.

A bill stored as PENDING whose due date is before the start of the
reference day is displayed as OVERDUE. Nothing here writes to storage:
the stored status only changes through settlement or an explicit edit.
"""

from datetime import date, datetime
from typing import Iterable, Optional, Union

from finsaas.models.bill import Bill, BillStatus
from finsaas.models.ledger import utc_now


def _reference_day(as_of: Optional[Union[date, datetime]]) -> date:
    if as_of is None:
        as_of = utc_now()
    if isinstance(as_of, datetime):
        return as_of.date()
    return as_of


def derive_display_status(
    bill: Bill,
    as_of: Optional[Union[date, datetime]] = None,
) -> BillStatus:
    """
    Status to show for `bill` on the day of `as_of` (default: now, UTC).

    A bill due today is not overdue yet.
    """
    if bill.status == BillStatus.PENDING and bill.due_date < _reference_day(as_of):
        return BillStatus.OVERDUE
    return bill.status


def with_display_status(
    bills: Iterable[Bill],
    as_of: Optional[Union[date, datetime]] = None,
) -> list[Bill]:
    """
    Copies of `bills` carrying their display status.

    Apply this right after fetching, before filtering or totalling.
    The copies must never be written back as-is.
    """
    day = _reference_day(as_of)
    displayed = []
    for bill in bills:
        status = derive_display_status(bill, day)
        if status != bill.status:
            bill = bill.model_copy(update={"status": status})
        displayed.append(bill)
    return displayed
