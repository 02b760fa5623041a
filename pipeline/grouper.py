"""
Groups classified lines by purchase order.

The first line seen for a PO fixes both the group's position in the report
and its supplier label. Line order inside a group is the input order; the
data source already sorts by urgency then item number.
"""
import logging
from typing import Iterable

from models.order_line import ClassifiedLine
from models.report import PurchaseOrderGroup
from .normalize import clean_text, normalize_po_number

logger = logging.getLogger(__name__)


def group_by_purchase_order(lines: Iterable[ClassifiedLine]) -> list[PurchaseOrderGroup]:
    groups: dict[str, PurchaseOrderGroup] = {}
    for line in lines:
        key = normalize_po_number(line.purchase_order_number)
        group = groups.get(key)
        if group is None:
            group = PurchaseOrderGroup(
                purchase_order_number=key,
                supplier_code=clean_text(line.supplier_code),
                supplier_name=clean_text(line.supplier_name),
            )
            groups[key] = group
        group.lines.append(line)

    logger.debug("Grouped lines into %d purchase order(s)", len(groups))
    return list(groups.values())
