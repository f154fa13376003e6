"""
Row codec shared by the storage backends.

Records are stored as flat rows whose column names match the hosted
database tables: the funding-source union is flattened into two nullable columns,
`account_id` and `card_id`, and decoded back into the union on read.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from finsaas.services.storage.interface import (
    COLLECTION_MODELS,
    DEFAULT_ORDER,
    Collection,
)


SOURCE_FIELD = "source"
SOURCE_COLUMNS = ("account_id", "card_id")


def _has_source(model: type[BaseModel]) -> bool:
    return SOURCE_FIELD in model.model_fields


def columns_for(collection: Collection) -> list[str]:
    """Column order for a collection (used for spreadsheet headers)."""
    columns = []
    for name in COLLECTION_MODELS[collection].model_fields:
        if name == SOURCE_FIELD:
            columns.extend(SOURCE_COLUMNS)
        else:
            columns.append(name)
    return columns


def encode_value(value: Any) -> Any:
    """Turn a model value into a JSON-friendly primitive."""
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def to_cell(value: Any) -> str:
    """Encode a value as a spreadsheet cell (everything is text)."""
    value = encode_value(value)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def record_to_row(record: BaseModel) -> dict[str, Any]:
    """Flatten a record into a column -> JSON value mapping."""
    row = record.model_dump(mode="json")
    if SOURCE_FIELD in row:
        source = row.pop(SOURCE_FIELD) or {}
        kind = source.get("kind")
        row["account_id"] = source.get("account_id") if kind == "account" else None
        row["card_id"] = source.get("card_id") if kind == "card" else None
    return row


def row_to_record(collection: Collection, row: dict[str, Any]) -> BaseModel:
    """
    Rebuild a record from a stored row.

    Empty cells are treated as missing. Floats (how JSON backends return
    numeric columns) are converted through their text form so money
    keeps its exact decimal value.

    Raises:
        ValueError / pydantic.ValidationError: If the row is malformed
    """
    model = COLLECTION_MODELS[collection]
    data: dict[str, Any] = {}
    for key, value in row.items():
        if value is None or value == "":
            continue
        if isinstance(value, float):
            value = Decimal(str(value))
        data[key] = value

    if _has_source(model):
        account_id = data.pop("account_id", None)
        card_id = data.pop("card_id", None)
        if account_id and card_id:
            raise ValueError(
                f"{collection.value} row {data.get('id')} references both an account and a card"
            )
        if account_id:
            data[SOURCE_FIELD] = {"kind": "account", "account_id": account_id}
        elif card_id:
            data[SOURCE_FIELD] = {"kind": "card", "card_id": card_id}

    # Keep only known fields so extra backend columns don't break decoding
    known = set(model.model_fields)
    return model.model_validate({k: v for k, v in data.items() if k in known})


def matches(record: BaseModel, filters: Optional[dict[str, Any]]) -> bool:
    """Equality filter on attribute values (properties like account_id included)."""
    if not filters:
        return True
    for key, expected in filters.items():
        if encode_value(getattr(record, key, None)) != encode_value(expected):
            return False
    return True


def sort_records(collection: Collection, records: list[BaseModel]) -> list[BaseModel]:
    """Apply a collection's default ordering."""
    field, descending = DEFAULT_ORDER[collection]
    return sorted(records, key=lambda r: getattr(r, field), reverse=descending)
