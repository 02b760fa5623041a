"""
Due-date classification of open purchase order lines.

  DueSoon:  0 <= days_until_promised <= threshold
  Overdue:  -threshold <= days_until_promised < 0   (only if overdue is enabled)

Anything else is dropped. The data source applies the same window in SQL,
so a drop here means the classifier was fed a superset of rows.

"today" is always passed in by the caller; nothing here reads the clock.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

from errors import InvalidRecord
from models.order_line import Bucket, ClassifiedLine, OrderLineRecord
from .normalize import normalize_po_number

logger = logging.getLogger(__name__)


@dataclass
class ClassificationResult:
    lines: list[ClassifiedLine] = field(default_factory=list)
    rejected: list[InvalidRecord] = field(default_factory=list)
    dropped: int = 0                    # valid lines outside the window


def _as_date(value: date | datetime) -> date:
    # datetime is a subclass of date, so check it first
    if isinstance(value, datetime):
        return value.date()
    return value


def bucket_for(days_until_promised: int, threshold_days: int, include_overdue: bool) -> Optional[Bucket]:
    """Return the bucket for a day offset, or None when it is outside the window."""
    if 0 <= days_until_promised <= threshold_days:
        return Bucket.DUE_SOON
    if include_overdue and -threshold_days <= days_until_promised < 0:
        return Bucket.OVERDUE
    return None


def classify_line(
    record: OrderLineRecord,
    today: date,
    threshold_days: int,
    include_overdue: bool,
) -> Optional[ClassifiedLine]:
    """
    Classify a single order line.

    Returns None if the line falls outside both windows.
    Raises InvalidRecord if the record has no promised date or no PO number.
    """
    if threshold_days < 0:
        raise ValueError(f"threshold_days must be >= 0, got {threshold_days}")

    po_number = normalize_po_number(record.purchase_order_number)
    if not po_number:
        raise InvalidRecord("order line has no purchase order number", record)
    if record.date_promised is None:
        raise InvalidRecord(
            f"PO {po_number} item {record.purchase_order_item}: missing promised date", record
        )

    days = (_as_date(record.date_promised) - _as_date(today)).days
    bucket = bucket_for(days, threshold_days, include_overdue)
    if bucket is None:
        return None

    return ClassifiedLine.model_validate({
        **record.model_dump(),
        "purchase_order_number": po_number,
        "days_until_promised": days,
        "bucket": bucket,
    })


def classify_lines(
    records: Iterable[OrderLineRecord],
    today: date,
    threshold_days: int,
    include_overdue: bool,
) -> ClassificationResult:
    """
    Classify every record, keeping input order.

    Invalid records are logged and skipped so one bad row cannot suppress
    the rest of the report.
    """
    result = ClassificationResult()
    for record in records:
        try:
            line = classify_line(record, today, threshold_days, include_overdue)
        except InvalidRecord as exc:
            logger.warning("Skipping invalid order line: %s", exc.reason)
            result.rejected.append(exc)
            continue
        if line is None:
            logger.debug(
                "Dropping PO %s item %s: promised %s is outside the %d-day window",
                record.purchase_order_number, record.purchase_order_item,
                record.date_promised, threshold_days,
            )
            result.dropped += 1
            continue
        result.lines.append(line)

    logger.info(
        "Classified %d line(s): %d due soon, %d overdue, %d dropped, %d rejected",
        len(result.lines),
        sum(1 for l in result.lines if l.bucket == Bucket.DUE_SOON),
        sum(1 for l in result.lines if l.bucket == Bucket.OVERDUE),
        result.dropped,
        len(result.rejected),
    )
    return result
