"""
Dashboard Queries

DESIGN DECISION: Dashboard figures are DETERMINISTIC aggregates over
freshly fetched records. Nothing is cached between calls, so a figure
can never lag behind a committed change: callers re-run `summary()`
when the ChangeNotifier says something moved.

Bills are passed through the status deriver right after they are
fetched, before any filtering or totalling, so "overdue" means the
same thing here as everywhere else.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Union

from pydantic import BaseModel, Field

from finsaas.config import AppSettings, get_settings
from finsaas.ledger.status import with_display_status
from finsaas.models.bill import Bill, BillType
from finsaas.models.ledger import Account, Transaction, TransactionType, utc_now
from finsaas.models.records import Goal, Recurrence
from finsaas.services.storage import Collection, LedgerStorageInterface


ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


class Period(str, Enum):
    """Reporting window for period-bound figures."""
    MONTH = "month"
    LAST_30_DAYS = "last_30_days"


class PayablesByDueWindow(BaseModel):
    """Open payables grouped by how soon they are due."""
    overdue: list[Bill] = Field(default_factory=list)
    due_soon: list[Bill] = Field(
        default_factory=list,
        description="Due today up to the short window (7 days by default)"
    )
    due_later: list[Bill] = Field(
        default_factory=list,
        description="Due after the short window, up to the long window"
    )


class DashboardSummary(BaseModel):
    """Every figure shown on the dashboard, for one period."""

    period: Period
    period_start: date
    period_end: date

    current_balance: Decimal = ZERO
    paid_expenses: Decimal = ZERO
    received_income: Decimal = ZERO

    goal: Optional[Goal] = None
    goal_progress: Decimal = Field(
        default=ZERO,
        description="Received income as a percentage of the goal (uncapped)"
    )

    open_receivables: list[Bill] = Field(default_factory=list)
    receivable_total: Decimal = ZERO
    payable_total: Decimal = ZERO
    payables: PayablesByDueWindow = Field(default_factory=PayablesByDueWindow)

    client_count: int = 0
    receipt_rate: Decimal = Field(
        default=ZERO,
        description="received / (received + open receivables due in period), in %"
    )

    mrr: Decimal = ZERO
    recurring_expenses: Decimal = ZERO
    recurring_balance: Decimal = ZERO

    @property
    def goal_progress_capped(self) -> Decimal:
        return min(self.goal_progress, HUNDRED)


# =============================================================================
# Pure helpers
# =============================================================================

def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def period_bounds(period: Period, as_of: Union[date, datetime]) -> tuple[date, date]:
    """
    Inclusive (start, end) dates of a reporting period.

    MONTH is the calendar month containing `as_of`. LAST_30_DAYS runs
    from 30 days before `as_of` up to `as_of` itself.
    """
    day = _as_date(as_of)
    if period == Period.MONTH:
        start = day.replace(day=1)
        next_month = (start + timedelta(days=32)).replace(day=1)
        return start, next_month - timedelta(days=1)
    return day - timedelta(days=30), day


def in_period(value: Union[date, datetime], bounds: tuple[date, date]) -> bool:
    start, end = bounds
    return start <= _as_date(value) <= end


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    """`part` as a percentage of `whole`, 0 when `whole` is not positive."""
    if whole <= 0:
        return ZERO
    return (part / whole * HUNDRED).quantize(Decimal("0.01"))


def settled_total(
    transactions: Iterable[Transaction],
    transaction_type: TransactionType,
    bounds: tuple[date, date],
) -> Decimal:
    return sum(
        (
            tx.amount for tx in transactions
            if tx.type == transaction_type and tx.is_settled and in_period(tx.date, bounds)
        ),
        ZERO,
    )


def open_bills(bills: Iterable[Bill], bill_type: BillType) -> list[Bill]:
    """Open bills of one type, closest due date first."""
    return sorted(
        (bill for bill in bills if bill.type == bill_type and bill.is_open),
        key=lambda bill: bill.due_date,
    )


def group_payables(
    payables: Iterable[Bill],
    as_of: Union[date, datetime],
    short_window_days: int = 7,
    long_window_days: int = 30,
) -> PayablesByDueWindow:
    """
    Bucket open payables by days until due.

    Bills due more than `long_window_days` out are left out.
    """
    today = _as_date(as_of)
    grouped = PayablesByDueWindow()
    for bill in payables:
        days = (bill.due_date - today).days
        if days < 0:
            grouped.overdue.append(bill)
        elif days <= short_window_days:
            grouped.due_soon.append(bill)
        elif days <= long_window_days:
            grouped.due_later.append(bill)
    return grouped


def goal_for(goals: Iterable[Goal], as_of: Union[date, datetime]) -> Optional[Goal]:
    day = _as_date(as_of)
    for goal in goals:
        if goal.month == day.month and goal.year == day.year:
            return goal
    return None


def recurring_totals(recurrences: Iterable[Recurrence]) -> tuple[Decimal, Decimal]:
    """(monthly recurring income, monthly recurring expenses) of active recurrences."""
    income = ZERO
    expenses = ZERO
    for recurrence in recurrences:
        if not recurrence.is_active:
            continue
        if recurrence.type == TransactionType.INCOME:
            income += recurrence.amount
        else:
            expenses += recurrence.amount
    return income, expenses


def build_summary(
    period: Period,
    as_of: Union[date, datetime],
    accounts: list[Account],
    transactions: list[Transaction],
    bills: list[Bill],
    goals: list[Goal],
    recurrences: list[Recurrence],
    client_count: int,
    short_window_days: int = 7,
    long_window_days: int = 30,
) -> DashboardSummary:
    """
    Compute every dashboard figure from already fetched records.

    `bills` must already carry their display status.
    """
    bounds = period_bounds(period, as_of)

    paid_expenses = settled_total(transactions, TransactionType.EXPENSE, bounds)
    received_income = settled_total(transactions, TransactionType.INCOME, bounds)

    # Goals are always monthly, whatever the period
    goal = goal_for(goals, as_of)
    goal_progress = percentage(received_income, goal.revenue_target) if goal else ZERO

    receivables = open_bills(bills, BillType.RECEIVABLE)
    payables = open_bills(bills, BillType.PAYABLE)
    receivable_total = sum(
        (bill.amount for bill in receivables if in_period(bill.due_date, bounds)), ZERO
    )
    payable_total = sum(
        (bill.amount for bill in payables if in_period(bill.due_date, bounds)), ZERO
    )

    mrr, recurring_expenses = recurring_totals(recurrences)

    return DashboardSummary(
        period=period,
        period_start=bounds[0],
        period_end=bounds[1],
        current_balance=sum((account.balance for account in accounts), ZERO),
        paid_expenses=paid_expenses,
        received_income=received_income,
        goal=goal,
        goal_progress=goal_progress,
        open_receivables=receivables,
        receivable_total=receivable_total,
        payable_total=payable_total,
        payables=group_payables(payables, as_of, short_window_days, long_window_days),
        client_count=client_count,
        receipt_rate=percentage(received_income, received_income + receivable_total),
        mrr=mrr,
        recurring_expenses=recurring_expenses,
        recurring_balance=mrr - recurring_expenses,
    )


class DashboardQueries:
    """
    Executes the dashboard aggregates against ledger storage.

    GUARANTEES:
    - Only figures computed from real stored data
    - Fresh reads on every call
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().app

    async def summary(
        self,
        period: Period = Period.MONTH,
        as_of: Optional[Union[date, datetime]] = None,
    ) -> DashboardSummary:
        """
        Compute the dashboard for `period` as seen on the day of `as_of`.

        Raises:
            StorageError: If any read fails
        """
        as_of = as_of or utc_now()

        accounts = await self._storage.list_accounts()
        transactions = await self._storage.list_transactions()
        bills = with_display_status(await self._storage.list_bills(), as_of)
        goals = await self._storage.list_records(Collection.GOALS)
        recurrences = await self._storage.list_records(Collection.RECURRENCES)
        clients = await self._storage.list_records(Collection.CLIENTS)

        return build_summary(
            period=Period(period),
            as_of=as_of,
            accounts=accounts,
            transactions=transactions,
            bills=bills,
            goals=goals,
            recurrences=recurrences,
            client_count=len(clients),
            short_window_days=self._settings.upcoming_short_window_days,
            long_window_days=self._settings.upcoming_long_window_days,
        )
