"""
Financial Reports

Monthly, quarterly and yearly totals plus the two breakdowns the
reports screen shows: where the money went (expenses by category) and
where it came from (income by client).

Income and expense totals count SETTLED transactions only. The
breakdowns count every transaction dated in the period, pending ones
included, so a scheduled payment already shows up under its category.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from finsaas.models.ledger import Transaction, TransactionType, utc_now
from finsaas.models.records import Category, Client
from finsaas.queries.dashboard import ZERO, in_period, settled_total
from finsaas.services.storage import Collection, LedgerStorageInterface


class ReportPeriod(str, Enum):
    """Calendar window a report covers."""
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class LabeledTotal(BaseModel):
    """Amount attributed to one category or client."""
    id: UUID
    name: str
    total: Decimal


class FinancialReport(BaseModel):
    """Totals and breakdowns for one calendar period."""

    period: ReportPeriod
    period_start: date
    period_end: date

    income: Decimal = ZERO
    expense: Decimal = ZERO

    expenses_by_category: list[LabeledTotal] = Field(
        default_factory=list,
        description="Largest first; categories with nothing spent are left out"
    )
    income_by_client: list[LabeledTotal] = Field(
        default_factory=list,
        description="Largest first; clients with nothing received are left out"
    )

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


def _month_end(day: date) -> date:
    next_month = (day.replace(day=1) + timedelta(days=32)).replace(day=1)
    return next_month - timedelta(days=1)


def report_bounds(
    period: ReportPeriod,
    as_of: Union[date, datetime],
) -> tuple[date, date]:
    """
    Inclusive (start, end) of the calendar month, quarter or year
    containing `as_of`. Quarters start in January, April, July and October.
    """
    day = as_of.date() if isinstance(as_of, datetime) else as_of
    if period == ReportPeriod.MONTH:
        start = day.replace(day=1)
        return start, _month_end(start)
    if period == ReportPeriod.QUARTER:
        start = date(day.year, 3 * ((day.month - 1) // 3) + 1, 1)
        return start, _month_end(date(day.year, start.month + 2, 1))
    return date(day.year, 1, 1), date(day.year, 12, 31)


def _totals_by(
    transactions: Iterable[Transaction],
    labels: Iterable[Union[Category, Client]],
    transaction_type: TransactionType,
    attribute: str,
    bounds: tuple[date, date],
) -> list[LabeledTotal]:
    sums: dict[UUID, Decimal] = {}
    for tx in transactions:
        key = getattr(tx, attribute)
        if key is None or tx.type != transaction_type or not in_period(tx.date, bounds):
            continue
        sums[key] = sums.get(key, ZERO) + tx.amount

    totals = [
        LabeledTotal(id=label.id, name=label.name, total=sums[label.id])
        for label in labels
        if sums.get(label.id, ZERO) > 0
    ]
    totals.sort(key=lambda item: item.total, reverse=True)
    return totals


def expenses_by_category(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    bounds: tuple[date, date],
) -> list[LabeledTotal]:
    """Expense per category within `bounds`, largest first."""
    return _totals_by(
        transactions, categories, TransactionType.EXPENSE, "category_id", bounds
    )


def income_by_client(
    transactions: Iterable[Transaction],
    clients: Iterable[Client],
    bounds: tuple[date, date],
) -> list[LabeledTotal]:
    """Income per client within `bounds`, largest first."""
    return _totals_by(
        transactions, clients, TransactionType.INCOME, "client_id", bounds
    )


def build_report(
    period: ReportPeriod,
    as_of: Union[date, datetime],
    transactions: list[Transaction],
    categories: list[Category],
    clients: list[Client],
) -> FinancialReport:
    bounds = report_bounds(period, as_of)
    return FinancialReport(
        period=period,
        period_start=bounds[0],
        period_end=bounds[1],
        income=settled_total(transactions, TransactionType.INCOME, bounds),
        expense=settled_total(transactions, TransactionType.EXPENSE, bounds),
        expenses_by_category=expenses_by_category(transactions, categories, bounds),
        income_by_client=income_by_client(transactions, clients, bounds),
    )


class ReportQueries:
    """Runs the financial report against ledger storage. Nothing is cached."""

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def report(
        self,
        period: ReportPeriod = ReportPeriod.MONTH,
        as_of: Optional[Union[date, datetime]] = None,
    ) -> FinancialReport:
        """
        Build the report for the period containing `as_of` (default: now, UTC).

        Raises:
            StorageError: If any read fails
        """
        as_of = as_of or utc_now()

        transactions = await self._storage.list_transactions()
        categories = await self._storage.list_records(Collection.CATEGORIES)
        clients = await self._storage.list_records(Collection.CLIENTS)

        return build_report(
            period=ReportPeriod(period),
            as_of=as_of,
            transactions=transactions,
            categories=categories,
            clients=clients,
        )
