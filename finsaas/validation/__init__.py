"""Validation module."""

from finsaas.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
