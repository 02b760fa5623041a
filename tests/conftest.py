"""
Pytest configuration and shared fixtures for the PO alert test suite.
"""
import os
from datetime import date, timedelta
from pathlib import Path
from typing import Callable

import pytest

# Run from the project root
PROJECT_ROOT = Path(__file__).parent.parent
os.chdir(PROJECT_ROOT)

TODAY = date(2024, 6, 10)


@pytest.fixture
def today() -> date:
    """Fixed report date used across tests."""
    return TODAY


@pytest.fixture
def test_config() -> "Config":
    """Provide a fully populated configuration that passes validate()."""
    from config import Config

    return Config(
        threshold_days=3,
        include_overdue=True,
        recipients=["buyer@example.com", "planner@example.com"],
        subject_prefix="[DUE SOON / OVERDUE]",
        system_name="po-datepromised-alert",
        po_source="vPO_OPEN_LINES",
        po_source_is_fully_qualified=False,
        db_schema="dbo",
        db_server="sql.example.local",
        db_port=1433,
        db_database="ERP",
        db_user="alert_reader",
        db_password="db-secret",
        database_url_override=None,
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_secure=False,
        smtp_user="alerts@example.com",
        smtp_password="smtp-secret",
        mail_from=None,
        db_encrypt=False,
        db_trust_server_cert=True,
        cron_schedule=None,
        schedule_interval_minutes=60,
        run_on_startup=True,
    )


@pytest.fixture
def make_record() -> Callable[..., "OrderLineRecord"]:
    """Factory for order line records promised *offset* days from TODAY."""
    from models.order_line import OrderLineRecord

    def _make(po: str = "1001", item: str = "1", offset: int | None = 0, **overrides):
        values = {
            "purchase_order_number": po,
            "purchase_order_item": item,
            "supplier_code": "SUP01",
            "supplier_name": "Acme Parts Ltd",
            "part_number": f"P-{po}-{item}",
            "description": "Hex bolt M8",
            "date_promised": None if offset is None else TODAY + timedelta(days=offset),
            "quantity": "10",
            "unit_of_measure": "ea",
        }
        values.update(overrides)
        return OrderLineRecord(**values)

    return _make


@pytest.fixture
def scenario_records(make_record) -> list:
    """
    PO 1001: one line promised 2024-06-12 (+2).
    PO 1002: one line promised 2024-06-05 (-5) and one 2024-06-09 (-1).
    """
    return [
        make_record(po="1001", item="1", offset=2),
        make_record(po="1002", item="1", offset=-5, supplier_code="SUP02", supplier_name="Bolt & Co"),
        make_record(po="1002", item="2", offset=-1, supplier_code="SUP02", supplier_name="Bolt & Co"),
    ]


@pytest.fixture
def classified_lines(scenario_records, today) -> list:
    """The scenario records classified with threshold 3, overdue enabled."""
    from pipeline.classifier import classify_lines

    return classify_lines(scenario_records, today, 3, True).lines


@pytest.fixture
def report_params(today) -> "ReportParameters":
    from models.report import ReportParameters

    return ReportParameters(
        today=today,
        threshold_days=3,
        subject_prefix="[DUE SOON / OVERDUE]",
        system_name="po-datepromised-alert",
    )


# Configure pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
