"""
Report rendering: subject, plain-text body and HTML body.

Both bodies follow the same layout:
  - header with report date and threshold
  - one block per purchase order: PO number, supplier label, then the
    due-soon lines followed by the overdue lines
  - an explicit "none" marker for an empty bucket

Overdue lines show days late as a positive number. The HTML body is
rendered with Jinja2 autoescaping so supplier names, descriptions and
comments cannot inject markup; the text body is left as-is.

Rendering is a pure function of (groups, parameters).
"""
import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence

from jinja2 import BaseLoader, Environment

from models.order_line import ClassifiedLine
from models.report import PurchaseOrderGroup, Report, ReportParameters

logger = logging.getLogger(__name__)

REPORT_TITLE = "Purchase order delivery alert"
DUE_SOON_LABEL = "Due soon"
OVERDUE_LABEL = "Overdue"

HTML_TEMPLATE = """\
<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
<title>{{ subject }}</title>
</head>
<body style="margin:0; padding:16px;">
<div style="font-family:Arial, sans-serif; font-size:14px;">
<h2 style="margin:0 0 8px 0;">{{ title }}</h2>
<div style="margin:0 0 14px 0;"><b>Date:</b> {{ today }} &nbsp; | &nbsp; <b>Threshold:</b> {{ threshold_days }} days</div>
{% macro lines_table(rows, overdue) %}
<table cellpadding="6" cellspacing="0" style="border-collapse:collapse; width:100%;">
<thead>
<tr style="background:#f6f6f6;">
<th align="left" style="border:1px solid #ddd;">Item</th>
<th align="left" style="border:1px solid #ddd;">Part number</th>
<th align="left" style="border:1px solid #ddd;">Description</th>
<th align="left" style="border:1px solid #ddd;">Quantity</th>
<th align="left" style="border:1px solid #ddd;">Promised</th>
<th align="left" style="border:1px solid #ddd;">{{ "Days late" if overdue else "Days" }}</th>
</tr>
</thead>
<tbody>
{% for row in rows %}
<tr>
<td style="border:1px solid #ddd;">{{ row.item }}</td>
<td style="border:1px solid #ddd;">{{ row.part_number }}</td>
<td style="border:1px solid #ddd;">{{ row.description }}</td>
<td style="border:1px solid #ddd;">{{ row.quantity }}</td>
<td style="border:1px solid #ddd;">{{ row.promised }}</td>
<td style="border:1px solid #ddd;">{% if overdue %}Late: {% endif %}{{ row.days }}</td>
</tr>
{% endfor %}
</tbody>
</table>
{% endmacro %}
{% for group in groups %}
<hr style="border:none; border-top:1px solid #ddd; margin:16px 0;" />
<h3 style="margin:0 0 6px 0;">PO #{{ group.po_number }}</h3>
<h4 style="margin:0 0 10px 0;"><b>Supplier:</b> {{ group.supplier_label }}</h4>
<div style="margin:0 0 12px 0;">
<span style="display:inline-block; padding:4px 8px; border:1px solid #ddd; border-radius:999px; margin-right:8px;">{{ due_soon_label }}: <b>{{ group.due_soon | length }}</b></span>
<span style="display:inline-block; padding:4px 8px; border:1px solid #ddd; border-radius:999px;">{{ overdue_label }}: <b>{{ group.overdue | length }}</b></span>
</div>
<h4 style="margin:12px 0 6px 0;">{{ due_soon_label }}</h4>
{% if group.due_soon %}
{{ lines_table(group.due_soon, false) }}
{% else %}
<p style="margin:0 0 10px 0; color:#777;">none</p>
{% endif %}
<h4 style="margin:14px 0 6px 0;">{{ overdue_label }}</h4>
{% if group.overdue %}
<div style="margin:0 0 10px 0; padding:8px 10px; border:1px solid #f0c36d; background:#fff3cd; border-radius:6px;">The following lines are <b>past their promised date</b>.</div>
{{ lines_table(group.overdue, true) }}
{% else %}
<p style="margin:0 0 10px 0; color:#777;">none</p>
{% endif %}
{% endfor %}
<div style="margin-top:16px; color:#777; font-size:12px;">Automated notification - {{ system_name }}</div>
</div>
</body>
</html>
"""

_html_env = Environment(
    loader=BaseLoader(),
    autoescape=True,
    keep_trailing_newline=True,
    trim_blocks=True,
    lstrip_blocks=True,
)
_html_template = _html_env.from_string(HTML_TEMPLATE)


# ----------------------------------------------------------------------
# Formatting helpers
# ----------------------------------------------------------------------

def format_date(value: Optional[date]) -> str:
    """YYYY-MM-DD, or "" when there is no date."""
    if value is None:
        return ""
    return value.strftime("%Y-%m-%d")


def format_quantity(quantity: Optional[str], unit: Optional[str]) -> str:
    """'10 ea', '2.5 kg', 'TBC ea' or '' depending on what is known.

    Numeric text loses trailing zeros ("10.000" -> "10"); anything else is
    shown as stored.
    """
    qty = "" if quantity is None else str(quantity).strip()
    try:
        number = Decimal(qty)
    except InvalidOperation:
        number = None
    if number is not None and number.is_finite():
        qty = str(int(number)) if number == number.to_integral_value() else format(number.normalize(), "f")
    return f"{qty} {unit or ''}".strip()


def display_days(line: ClassifiedLine) -> int:
    """Raw offset for due-soon lines, days late for overdue lines."""
    return abs(line.days_until_promised)


def build_subject(params: ReportParameters) -> str:
    return f"{params.subject_prefix} {format_date(params.today)}".strip()


def _line_view(line: ClassifiedLine) -> dict:
    return {
        "item": line.purchase_order_item or "",
        "part_number": line.part_number or "",
        "description": line.description or "",
        "quantity": format_quantity(line.quantity, line.unit_of_measure),
        "promised": format_date(line.date_promised),
        "days": display_days(line),
    }


def _require_groups(groups: Sequence[PurchaseOrderGroup]) -> None:
    if not groups:
        raise ValueError("Cannot render a report without any purchase orders")


# ----------------------------------------------------------------------
# Renderers
# ----------------------------------------------------------------------

def render_text(groups: Sequence[PurchaseOrderGroup], params: ReportParameters) -> str:
    _require_groups(groups)
    out = [
        REPORT_TITLE,
        f"Date: {format_date(params.today)}",
        f"Threshold: {params.threshold_days} days",
        "",
    ]

    for group in groups:
        out.append(f"PO #{group.purchase_order_number} | Supplier: {group.supplier_label}")

        for label, lines, days_label in (
            (DUE_SOON_LABEL, group.due_soon, "Days"),
            (OVERDUE_LABEL, group.overdue, "Days late"),
        ):
            if not lines:
                out.append(f"  {label}: none")
                continue
            out.append(f"  {label} ({len(lines)}):")
            for line in lines:
                row = _line_view(line)
                out.append(
                    f"   - Item {row['item']} | {row['part_number']} | {row['description']}"
                    f" | Qty: {row['quantity']} | Promised: {row['promised']}"
                    f" | {days_label}: {row['days']}"
                )
        out.append("")

    out.append(f"Automated notification - {params.system_name}")
    return "\n".join(out)


def render_html(groups: Sequence[PurchaseOrderGroup], params: ReportParameters) -> str:
    _require_groups(groups)
    context = {
        "subject": build_subject(params),
        "title": REPORT_TITLE,
        "today": format_date(params.today),
        "threshold_days": params.threshold_days,
        "system_name": params.system_name,
        "due_soon_label": DUE_SOON_LABEL,
        "overdue_label": OVERDUE_LABEL,
        "groups": [
            {
                "po_number": group.purchase_order_number,
                "supplier_label": group.supplier_label,
                "due_soon": [_line_view(l) for l in group.due_soon],
                "overdue": [_line_view(l) for l in group.overdue],
            }
            for group in groups
        ],
    }
    return _html_template.render(**context)


def render_report(groups: Sequence[PurchaseOrderGroup], params: ReportParameters) -> Report:
    """Render the subject and both bodies for one alert email."""
    report = Report(
        subject=build_subject(params),
        text_body=render_text(groups, params),
        html_body=render_html(groups, params),
    )
    logger.info(
        "Rendered report '%s' for %d PO(s) (text=%d chars, html=%d chars)",
        report.subject, len(groups), len(report.text_body), len(report.html_body),
    )
    return report
