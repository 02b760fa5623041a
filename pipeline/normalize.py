"""
Value normalisation shared by the classifier and the grouper.

PO numbers are compared as exact strings after trimming: "0001" and "1" are
different purchase orders.
"""
from typing import Any


def clean_text(value: Any) -> str:
    """Return *value* as a stripped string ("" for None)."""
    if value is None:
        return ""
    return str(value).strip()


def normalize_po_number(value: Any) -> str:
    """The grouping key for a purchase order number."""
    return clean_text(value)
