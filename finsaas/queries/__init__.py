"""Dashboard and report query package."""

from finsaas.queries.dashboard import (
    DashboardQueries,
    DashboardSummary,
    PayablesByDueWindow,
    Period,
    build_summary,
    group_payables,
    period_bounds,
)
from finsaas.queries.reports import (
    FinancialReport,
    LabeledTotal,
    ReportPeriod,
    ReportQueries,
    build_report,
    expenses_by_category,
    income_by_client,
    report_bounds,
)

__all__ = [
    # Dashboard
    "DashboardQueries",
    "DashboardSummary",
    "PayablesByDueWindow",
    "Period",
    "build_summary",
    "group_payables",
    "period_bounds",
    # Reports
    "FinancialReport",
    "LabeledTotal",
    "ReportPeriod",
    "ReportQueries",
    "build_report",
    "expenses_by_category",
    "income_by_client",
    "report_bounds",
]
