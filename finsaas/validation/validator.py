"""
Pre-write Validation

DESIGN DECISION: Validation happens in two layers:

LAYER 1 - MODEL VALIDATION (pydantic):
- Types, non-negative amounts, enum values
- Funding source is an account OR a card
- Bill settlement link (transaction_id iff settled)
- A record that fails here cannot even be constructed

LAYER 2 - LEDGER VALIDATION (this module):
- Rules that need context: thresholds from settings, today's date
- Suspicious-but-possible values (reported as warnings)
- Incomplete metadata (reported as errors)

Only errors block a write. Warnings are returned so the caller can
show them, and are never silently "fixed".
"""

from datetime import timedelta
from decimal import Decimal
from typing import Optional

from finsaas.config import AppSettings, get_settings
from finsaas.models.bill import (
    Bill,
    BillType,
    ValidationIssue,
    ValidationResult,
)
from finsaas.models.ledger import Transaction, utc_now


class LedgerValidator:
    """Validates transactions and bills before they are written."""

    def __init__(self, settings: Optional[AppSettings] = None):
        """
        Initialize validator.

        Args:
            settings: Application settings (thresholds).
                     If None, the global settings are used.
        """
        self._settings = settings or get_settings().app

    def _check_amount(self, amount: Decimal) -> list[ValidationIssue]:
        issues = []

        if amount == 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message="Amount is zero",
                severity="warning",
                suggested_fix="Check if the amount was entered correctly",
            ))

        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        return issues

    def _check_description(self, description: str) -> list[ValidationIssue]:
        if description.strip():
            return []
        return [ValidationIssue(
            field="description",
            issue_type="missing",
            message="Description is required",
            severity="error",
            suggested_fix="Describe what this money is for",
        )]

    def validate_transaction(self, transaction: Transaction) -> ValidationResult:
        """
        Validate a transaction before it is saved.

        Errors:
        - Blank description
        - Installment flag without installment metadata

        Warnings:
        - Zero or unusually high amount
        - Settled transaction dated in the future
        """
        issues = []
        issues.extend(self._check_description(transaction.description))
        issues.extend(self._check_amount(transaction.amount))

        tolerance = timedelta(days=self._settings.future_date_tolerance_days)
        if transaction.is_settled and transaction.date > utc_now() + tolerance:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=(
                    f"Transaction is marked as paid but dated "
                    f"{transaction.date.date()}, in the future"
                ),
                severity="warning",
                suggested_fix="Mark it as pending or fix the date",
            ))

        if transaction.is_installment and (
            transaction.installment_id is None
            or transaction.total_installments is None
        ):
            issues.append(ValidationIssue(
                field="installment",
                issue_type="missing",
                message="Installment transaction is missing its installment group or count",
                severity="error",
            ))

        return ValidationResult(
            record_type="transaction",
            record_id=transaction.id,
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
        )

    def validate_bill(self, bill: Bill) -> ValidationResult:
        """Validate a bill before it is saved."""
        issues = []
        issues.extend(self._check_description(bill.description))
        issues.extend(self._check_amount(bill.amount))

        if bill.type == BillType.RECEIVABLE and bill.card_id is not None:
            issues.append(ValidationIssue(
                field="source",
                issue_type="inconsistent",
                message="A receivable is funded by a credit card",
                severity="warning",
                suggested_fix="Receivables usually land in an account",
            ))

        return ValidationResult(
            record_type="bill",
            record_id=bill.id,
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show to non-technical users.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed!"

        lines = []

        if result.has_errors:
            lines.append(f"❌ This {result.record_type} cannot be saved yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning.message}")

        return "\n".join(lines)
