from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .order_line import Bucket, ClassifiedLine


class PurchaseOrderGroup(BaseModel):
    """
    All classified lines of one purchase order, in data source order.
    Supplier details come from the first line seen for the PO.
    """
    purchase_order_number: str
    supplier_code: str = ""
    supplier_name: str = ""
    lines: List[ClassifiedLine] = Field(default_factory=list)

    @property
    def supplier_label(self) -> str:
        if self.supplier_name:
            return f"{self.supplier_name} ({self.supplier_code or 'n/a'})"
        return self.supplier_code or "n/a"

    @property
    def due_soon(self) -> List[ClassifiedLine]:
        return [line for line in self.lines if line.bucket == Bucket.DUE_SOON]

    @property
    def overdue(self) -> List[ClassifiedLine]:
        return [line for line in self.lines if line.bucket == Bucket.OVERDUE]


class ReportParameters(BaseModel):
    """Run parameters the renderer needs; injected, never read from the clock."""
    model_config = ConfigDict(frozen=True)

    today: date
    threshold_days: int = Field(ge=0)
    subject_prefix: str
    system_name: str


class Report(BaseModel):
    """The rendered alert email."""
    model_config = ConfigDict(frozen=True)

    subject: str
    text_body: str
    html_body: str


RunStatus = Literal["sent", "empty", "skipped", "dry_run"]


class RunResult(BaseModel):
    """Outcome of one runner invocation."""
    status: RunStatus
    line_count: int = 0                     # rows returned by the data source
    po_count: int = 0
    rejected_count: int = 0                 # unreadable rows + InvalidRecord rejections
    message_id: Optional[str] = None
    report: Optional[Report] = None
    elapsed_seconds: float = 0.0
