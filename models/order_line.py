from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Bucket(str, Enum):
    """Where a classified line lands in the report."""
    DUE_SOON = "DueSoon"
    OVERDUE = "Overdue"


class OrderLineRecord(BaseModel):
    """
    One open purchase order line as returned by the data source.

    Fields accept either their snake_case name or the column name produced
    by the PO query (e.g. "PurchaseOrderNumber"), so a database row mapping
    can be validated directly. Supplier fields belong to the PO but arrive
    denormalised on every line.
    """
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    purchase_order_number: Optional[str] = Field(None, alias="PurchaseOrderNumber")
    purchase_order_item:   Optional[str] = Field(None, alias="PurchaseOrderItem")
    supplier_code:         Optional[str] = Field(None, alias="SupplierCode")
    supplier_name:         Optional[str] = Field(None, alias="SupplierName")
    part_number:           Optional[str] = Field(None, alias="PartNumber")
    description:           Optional[str] = Field(None, alias="ProductDescription")
    date_promised:         Optional[date] = Field(None, alias="DatePromised")
    quantity:              Optional[str] = Field(None, alias="QtyOrderedOrderUOM")   # display only
    unit_of_measure:       Optional[str] = Field(None, alias="OrderUOM")
    op_number:             Optional[str] = Field(None, alias="OpNumber")
    line_status:           Optional[str] = Field(None, alias="LineStatus")
    reference_number:      Optional[str] = Field(None, alias="ReferenceNumber")
    comments:              Optional[str] = Field(None, alias="OrderItemComments")

    @field_validator("date_promised", mode="before")
    @classmethod
    def _drop_time_component(cls, value: Any) -> Any:
        # DATETIME columns come back as datetime; only the calendar day counts.
        if isinstance(value, datetime):
            return value.date()
        return value


class ClassifiedLine(OrderLineRecord):
    """An order line with its signed day offset and report bucket."""
    date_promised: date = Field(alias="DatePromised")
    days_until_promised: int               # promised date minus today, whole days
    bucket: Bucket

    @property
    def days_late(self) -> int:
        """Days past the promised date (0 for lines not yet due)."""
        return abs(self.days_until_promised) if self.days_until_promised < 0 else 0
