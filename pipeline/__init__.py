from .classifier import ClassificationResult, bucket_for, classify_line, classify_lines
from .grouper import group_by_purchase_order
from .renderer import render_html, render_report, render_text
from .database import PurchaseOrderSource
from .mailer import SmtpMailer
from .runner import AlertRunner
from .schedule import CronSchedule, IntervalSchedule, build_schedule

__all__ = [
    "ClassificationResult", "bucket_for", "classify_line", "classify_lines",
    "group_by_purchase_order", "render_html", "render_report", "render_text",
    "PurchaseOrderSource", "SmtpMailer", "AlertRunner",
    "CronSchedule", "IntervalSchedule", "build_schedule",
]
