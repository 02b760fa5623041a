"""
Central configuration for the PO DatePromised alert.

Every setting defaults from an environment variable (a .env file in the
working directory is loaded by the CLI before Config is built) and can be
overridden by CLI options or by passing values to Config directly.

Config is constructed once at startup, validated with validate(), and then
passed explicitly to the runner. Nothing below the runner reads the
environment.
"""
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from croniter import croniter
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from errors import ConfigurationError

logger = logging.getLogger(__name__)

# Project root (directory containing this file)
PROJECT_ROOT = Path(__file__).parent

DEFAULT_THRESHOLD_DAYS   = 3
DEFAULT_SUBJECT_PREFIX   = "[DUE SOON / OVERDUE]"
DEFAULT_SYSTEM_NAME      = "po-datepromised-alert"
DEFAULT_DB_SCHEMA        = "dbo"
DEFAULT_DB_PORT          = 1433
DEFAULT_SMTP_PORT        = 587

_TRUTHY = {"1", "true", "yes", "y", "on"}

_ODBC_DRIVER = "mssql+pyodbc"

# Table / view names end up inside the SQL text, so only plain identifiers
# (optionally schema-qualified and bracket-quoted) are accepted.
_IDENT = r"(\[[A-Za-z0-9_ ]+\]|[A-Za-z_][A-Za-z0-9_]*)"
_SOURCE_NAME_RE = re.compile(rf"^{_IDENT}(\.{_IDENT}){{0,2}}$")


def env_int(name: str, default: Optional[int]) -> Optional[int]:
    """Read an integer env var; unset, empty or unparsable values give *default*."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Invalid %s value %r, using default %s", name, raw, default)
        return default


def env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in _TRUTHY


def split_emails(value: Optional[str]) -> list[str]:
    """Split a comma-separated address list, dropping blanks."""
    return [part.strip() for part in (value or "").split(",") if part.strip()]


@dataclass
class Config:
    # --- Classification ---
    threshold_days: int = field(
        default_factory=lambda: env_int("THRESHOLD_DAYS", DEFAULT_THRESHOLD_DAYS)
    )
    include_overdue: bool = field(
        default_factory=lambda: env_bool("INCLUDE_OVERDUE", True)
    )

    # --- Report ---
    recipients: list[str] = field(
        default_factory=lambda: split_emails(os.getenv("ALERT_RECIPIENTS"))
    )
    subject_prefix: str = field(
        default_factory=lambda: (os.getenv("MAIL_SUBJECT_PREFIX") or DEFAULT_SUBJECT_PREFIX).strip()
    )
    system_name: str = field(
        default_factory=lambda: (os.getenv("ALERT_SYSTEM_NAME") or DEFAULT_SYSTEM_NAME).strip()
    )

    # --- Data source ---
    po_source: str = field(default_factory=lambda: (os.getenv("PO_SOURCE") or "").strip())
    po_source_is_fully_qualified: bool = field(
        default_factory=lambda: env_bool("PO_SOURCE_IS_FULLY_QUALIFIED", False)
    )
    db_schema: str = field(
        default_factory=lambda: (os.getenv("DB_SCHEMA") or DEFAULT_DB_SCHEMA).strip()
    )
    db_server:   Optional[str] = field(default_factory=lambda: os.getenv("DB_SERVER"))
    db_port:     int           = field(default_factory=lambda: env_int("DB_PORT", DEFAULT_DB_PORT))
    db_database: Optional[str] = field(default_factory=lambda: os.getenv("DB_DATABASE"))
    db_user:     Optional[str] = field(default_factory=lambda: os.getenv("DB_USER"))
    db_password: Optional[str] = field(default_factory=lambda: os.getenv("DB_PASSWORD"))
    # A full SQLAlchemy URL wins over the DB_* parts.
    database_url_override: Optional[str] = field(
        default_factory=lambda: os.getenv("DATABASE_URL") or None
    )
    # TLS to SQL Server. pymssql cannot negotiate it, so encryption needs a
    # mssql+pyodbc DATABASE_URL; the flags are then added to its query string.
    db_encrypt:            bool = field(default_factory=lambda: env_bool("DB_ENCRYPT", False))
    db_trust_server_cert:  bool = field(default_factory=lambda: env_bool("DB_TRUST_SERVER_CERT", True))

    # --- SMTP ---
    smtp_host:     Optional[str] = field(default_factory=lambda: os.getenv("SMTP_HOST"))
    smtp_port:     int           = field(default_factory=lambda: env_int("SMTP_PORT", DEFAULT_SMTP_PORT))
    smtp_secure:   bool          = field(default_factory=lambda: env_bool("SMTP_SECURE", False))
    smtp_user:     Optional[str] = field(default_factory=lambda: os.getenv("SMTP_USER"))
    smtp_password: Optional[str] = field(default_factory=lambda: os.getenv("SMTP_PASS"))
    mail_from:     Optional[str] = field(default_factory=lambda: os.getenv("MAIL_FROM") or None)
    smtp_timeout_seconds: int = 30

    # --- Scheduling (serve) ---
    cron_schedule: Optional[str] = field(
        default_factory=lambda: (os.getenv("CRON_SCHEDULE") or "").strip() or None
    )
    schedule_interval_minutes: Optional[int] = field(
        default_factory=lambda: env_int("SCHEDULE_INTERVAL_MINUTES", None)
    )
    run_on_startup: bool = field(default_factory=lambda: env_bool("RUN_ON_STARTUP", True))

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def po_source_name(self) -> str:
        """Table or view to query, schema-qualified unless already fully qualified."""
        src = self.po_source.strip()
        if not src:
            raise ConfigurationError("PO_SOURCE is required (table or view name)")
        if self.po_source_is_fully_qualified:
            return src
        return f"{self.db_schema}.{src}"

    @property
    def database_url(self) -> URL:
        if self.database_url_override:
            url = make_url(self.database_url_override)
            if self.db_encrypt and url.drivername == _ODBC_DRIVER:
                url = url.update_query_dict({
                    "Encrypt": "yes",
                    "TrustServerCertificate": "yes" if self.db_trust_server_cert else "no",
                })
            return url
        return URL.create(
            "mssql+pymssql",
            username=self.db_user,
            password=self.db_password,
            host=self.db_server,
            port=self.db_port,
            database=self.db_database,
        )

    @property
    def sender(self) -> Optional[str]:
        return self.mail_from or self.smtp_user

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """Raise ConfigurationError listing every problem found."""
        problems = []

        if self.threshold_days < 0:
            problems.append(f"THRESHOLD_DAYS must be >= 0 (got {self.threshold_days})")

        if not self.recipients:
            problems.append("No ALERT_RECIPIENTS configured")
        else:
            bad = [r for r in self.recipients if "@" not in r]
            if bad:
                problems.append(f"Invalid recipient address(es): {', '.join(bad)}")

        if not self.po_source.strip():
            problems.append("PO_SOURCE is required (table or view name)")
        elif not _SOURCE_NAME_RE.match(self.po_source_name):
            problems.append(f"PO_SOURCE is not a valid table or view name: {self.po_source_name!r}")

        if not self.database_url_override and not (self.db_server and self.db_database):
            problems.append("DB_SERVER and DB_DATABASE are required (or set DATABASE_URL)")

        if self.db_encrypt and self._override_driver() != _ODBC_DRIVER:
            problems.append(
                "DB_ENCRYPT=true needs DATABASE_URL with the mssql+pyodbc driver "
                "(pymssql connections are not encrypted)"
            )

        if self.cron_schedule and not croniter.is_valid(self.cron_schedule):
            problems.append(f"CRON_SCHEDULE is not a valid cron expression: {self.cron_schedule!r}")

        if self.schedule_interval_minutes is not None and self.schedule_interval_minutes <= 0:
            problems.append(
                f"SCHEDULE_INTERVAL_MINUTES must be > 0 (got {self.schedule_interval_minutes})"
            )

        if problems:
            raise ConfigurationError(problems)

    def _override_driver(self) -> Optional[str]:
        if not self.database_url_override:
            return None
        try:
            return make_url(self.database_url_override).drivername
        except ArgumentError:
            return None
