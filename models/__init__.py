from .order_line import Bucket, OrderLineRecord, ClassifiedLine
from .report import PurchaseOrderGroup, ReportParameters, Report, RunResult, RunStatus

__all__ = [
    "Bucket", "OrderLineRecord", "ClassifiedLine",
    "PurchaseOrderGroup", "ReportParameters", "Report", "RunResult", "RunStatus",
]
