"""
Change notification payloads.

Published after a mutation has been committed so dependent views
(dashboard totals, receivable/payable lists) know to reload.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from finsaas.models.ledger import utc_now


class ChangeKind(str, Enum):
    TRANSACTIONS_CHANGED = "transactions_changed"
    BILLS_CHANGED = "bills_changed"
    ACCOUNTS_CHANGED = "accounts_changed"


class ChangeEvent(BaseModel):
    """A committed change to one entity."""

    kind: ChangeKind
    entity_id: UUID = Field(
        ...,
        description="ID of the record that changed"
    )
    account_ids: list[UUID] = Field(
        default_factory=list,
        description="Accounts whose balance was reconciled by this change"
    )
    correlation_id: Optional[UUID] = None
    occurred_at: datetime = Field(default_factory=utc_now)
