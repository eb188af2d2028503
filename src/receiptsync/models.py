"""Pydantic models for progress, results and status.

Attributes are snake_case; :meth:`WireModel.to_wire` emits the camelCase
shape the UI and the inventory service expect.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Fields the inventory service documents for an imported receipt. Anything
# else the retailer returns stays on this side of the boundary.
RECEIPT_FIELDS: tuple[str, ...] = (
    "transactionBarcode",
    "transactionDateTime",
    "warehouseName",
    "warehouseNumber",
    "subTotal",
    "taxes",
    "total",
    "instantSavings",
    "totalItemCount",
)
LINE_ITEM_FIELDS: tuple[str, ...] = (
    "itemNumber",
    "itemDescription01",
    "itemDescription02",
    "amount",
    "unit",
    "itemUnitPriceAmount",
)
LINE_ITEMS_KEY = "itemArray"


def _pick(raw: Mapping[str, Any], fields: tuple[str, ...]) -> dict[str, Any]:
    return {name: raw[name] for name in fields if name in raw}


def filter_record_detail(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Reduce a raw receipt to the allow-listed fields.

    Keys missing from ``raw`` are omitted rather than sent as null. Line
    items keep their order.
    """
    filtered = _pick(raw, RECEIPT_FIELDS)
    items = raw.get(LINE_ITEMS_KEY) or []
    filtered[LINE_ITEMS_KEY] = [
        _pick(item, LINE_ITEM_FIELDS)
        for item in items
        if isinstance(item, Mapping)
    ]
    return filtered


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self, exclude_none: bool = False) -> dict[str, Any]:
        return self.model_dump(
            mode="json", by_alias=True, exclude_none=exclude_none
        )


class Phase(str, Enum):
    LISTING = "listing"
    FETCHING = "fetching"
    IMPORTING = "importing"


class ProgressSnapshot(WireModel):
    """Point-in-time progress of a running sync."""

    phase: Phase
    current: int | None = None
    total: int | None = None
    message: str = ""


class RecordSummary(WireModel):
    """Listing-phase entry; the barcode is enough to fetch details.

    ``transaction_barcode`` is None for an entry the retailer returned
    without a usable barcode. Such entries are counted as failed fetches.
    """

    transaction_barcode: str | None = None


class ImportResult(WireModel):
    """Response body of the import endpoint.

    The service is not strict about its shape: ``errors`` may be a count or
    a list of error objects, and any key may be missing.
    """

    imported: int | None = None
    duplicates: int = 0
    skipped: int = 0
    errors: int = 0

    @field_validator("duplicates", "skipped", mode="before")
    @classmethod
    def _none_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("errors", mode="before")
    @classmethod
    def _count_errors(cls, value: Any) -> Any:
        if value is None:
            return 0
        if isinstance(value, (list, tuple)):
            return len(value)
        return value


class SyncResult(WireModel):
    success: bool = True
    imported: int | None = None
    duplicates: int | None = None
    skipped: int | None = None
    errors: int | None = None
    fetch_failed: int | None = None
    count: int | None = None
    message: str | None = None


class CredentialValidation(WireModel):
    valid: bool
    network_error: bool = False


class StatusReport(WireModel):
    """Readiness view for the UI."""

    warehouse_connected: bool
    counterpart_connected: bool
    has_counterpart_tab: bool
    network_error: bool = False
    sync_in_progress: bool = False
    sync_progress: ProgressSnapshot | None = Field(default=None)
