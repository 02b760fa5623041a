"""
Exception hierarchy for the PO DatePromised alert.

  ConfigurationError  Startup configuration is missing or invalid. Fatal.
  InvalidRecord       A single row breaks the data source contract. The
                      classifier logs and skips it; the run continues.
  SourceUnavailable   The purchase order database could not be queried.
  DeliveryFailure     The SMTP server refused or dropped the report.

The last two abort the current run but are never swallowed: the runner logs
them and re-raises so the CLI (or the scheduler loop) can decide what to do.
"""
from typing import Any, Optional


class AlertError(Exception):
    """Base class for all errors raised by the alert pipeline."""


class ConfigurationError(AlertError):
    """Raised when the configuration cannot be used to start a run."""

    def __init__(self, problems: list[str] | str):
        if isinstance(problems, str):
            problems = [problems]
        self.problems = problems
        super().__init__("; ".join(problems))


class InvalidRecord(AlertError):
    """A data source row that violates the order line contract."""

    def __init__(self, reason: str, record: Optional[Any] = None):
        self.reason = reason
        self.record = record
        super().__init__(reason)


class SourceUnavailable(AlertError):
    """The order line data source failed (connection, query, driver)."""


class DeliveryFailure(AlertError):
    """The report could not be handed to the mail transport."""
