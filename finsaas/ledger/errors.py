"""Domain errors raised by the ledger workflows."""

from finsaas.models.bill import ValidationResult


class LedgerError(Exception):
    """Base exception for ledger rule violations."""
    pass


class InvalidStateError(LedgerError):
    """
    A precondition on the record's state does not hold.

    E.g. settling a bill that is already paid/received.
    """
    pass


class ValidationFailedError(LedgerError):
    """A record failed validation and was not written."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(
            issue.message for issue in result.issues if issue.severity == "error"
        )
        super().__init__(
            f"{result.record_type.capitalize()} {result.record_id} is invalid: {messages}"
        )
