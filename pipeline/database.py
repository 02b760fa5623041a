"""
Purchase order line data source (SQL Server via SQLAlchemy).

fetch_open_lines() returns the open PO lines whose promised date lies within
[-threshold, +threshold] days of the caller's "today". The same date is
bound into the query and used by the classifier, so the SQL window and the
buckets always agree. The query:

  - skips lines with no DatePromised and lines not flagged OrderLineComplete = 'no'
  - computes DaysUntilPromised with DATEDIFF on date-truncated values
  - joins SUPPLIER for the supplier name and vFM_STOCKED_PART_DETAILS for
    the part description, both on trimmed codes
  - only returns overdue lines when @include_overdue is set
  - orders by PO number, day offset, then PO item

The source table/view name comes from configuration (validated as an
identifier by Config.validate); all other values are bound parameters.
"""
import logging
from contextlib import contextmanager
from datetime import date
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy import Date, bindparam, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from errors import SourceUnavailable
from models.order_line import OrderLineRecord

logger = logging.getLogger(__name__)

_QUERY_TEMPLATE = """
WITH src AS (
  SELECT
    PurchaseOrderNumber,
    PurchaseOrderItem,
    LTRIM(RTRIM(SupplierCode))          AS SupplierCodeTrim,
    LTRIM(RTRIM(PartNumber))            AS PartNumberTrim,
    DatePromised,
    QtyOrderedOrderUOM,
    OrderUOM,
    OpNumber,
    LineStatus,
    ReferenceNumber,
    OrderItemComments,
    LTRIM(RTRIM(OrderLineComplete))     AS OrderLineCompleteTrim
  FROM {source}
  WHERE
    DatePromised IS NOT NULL
    AND LOWER(LTRIM(RTRIM(OrderLineComplete))) = 'no'
),
calc AS (
  SELECT
    s.*,
    DATEDIFF(DAY, CONVERT(date, :today), CONVERT(date, s.DatePromised)) AS DaysUntilPromised
  FROM src s
)
SELECT
  c.PurchaseOrderNumber,
  c.PurchaseOrderItem,
  c.SupplierCodeTrim AS SupplierCode,
  sup.Supplier_Name  AS SupplierName,
  c.PartNumberTrim   AS PartNumber,
  sp.ProductDescription,
  c.DatePromised,
  c.DaysUntilPromised,
  c.QtyOrderedOrderUOM,
  c.OrderUOM,
  c.OpNumber,
  c.LineStatus,
  c.ReferenceNumber,
  c.OrderItemComments,
  c.OrderLineCompleteTrim AS OrderLineComplete
FROM calc c
LEFT JOIN SUPPLIER sup
  ON LTRIM(RTRIM(sup.Supplier_Code)) = c.SupplierCodeTrim
LEFT JOIN vFM_STOCKED_PART_DETAILS sp
  ON LTRIM(RTRIM(sp.PartNumber)) = c.PartNumberTrim
WHERE
  (
    (c.DaysUntilPromised BETWEEN 0 AND :threshold_days)
    OR (:include_overdue = 1 AND c.DaysUntilPromised BETWEEN -:threshold_days AND -1)
  )
ORDER BY
  c.PurchaseOrderNumber,
  c.DaysUntilPromised ASC,
  c.PurchaseOrderItem
"""


def build_query(source_name: str) -> str:
    """The open-lines query for *source_name* (schema-qualified table or view)."""
    return _QUERY_TEMPLATE.format(source=source_name)


class PurchaseOrderSource:
    """
    Reads open purchase order lines from the ERP database.

    The engine (and its connection pool) is created on first use and torn
    down by close(); the runner closes it at the end of every run so no
    pooled connection outlives an invocation.
    """

    def __init__(
        self,
        config: Config,
        engine: Optional[Engine] = None,
        query: Optional[str] = None,
    ) -> None:
        self.config = config
        self._engine = engine
        self._owns_engine = engine is None
        self._query = query
        self.skipped_rows = 0

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    def _get_engine(self) -> Engine:
        if self._engine is None:
            try:
                self._engine = create_engine(
                    self.config.database_url,
                    pool_pre_ping=True,
                    pool_size=5,
                    pool_recycle=1800,
                )
            except (SQLAlchemyError, ImportError) as exc:
                raise SourceUnavailable(f"Cannot create database engine: {exc}") from exc
        return self._engine

    @contextmanager
    def _conn(self):
        try:
            with self._get_engine().connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise SourceUnavailable(f"Database query failed: {exc}") from exc

    def close(self) -> None:
        """Dispose of the connection pool (only if this source created it)."""
        if self._engine is not None and self._owns_engine:
            self._engine.dispose()
            self._engine = None
            logger.debug("Database connection pool closed")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def query(self) -> str:
        if self._query is None:
            self._query = build_query(self.config.po_source_name)
        return self._query

    def fetch_open_lines(
        self, threshold_days: int, include_overdue: bool, today: date,
    ) -> list[OrderLineRecord]:
        """
        Return open PO lines inside the threshold window around *today*,
        sorted by PO, day offset, then item.

        Rows that cannot be read as an OrderLineRecord are logged and left
        out; their count is kept in skipped_rows for the run summary.
        """
        params = {
            "threshold_days": int(threshold_days),
            "include_overdue": 1 if include_overdue else 0,
            "today": today,
        }
        logger.info(
            "Querying %s for %s (threshold=%d days, include_overdue=%s)",
            self.config.po_source_name, today.isoformat(), threshold_days, include_overdue,
        )
        with self._conn() as conn:
            stmt = text(self.query).bindparams(bindparam("today", type_=Date))
            rows = conn.execute(stmt, params).mappings().all()

        records = []
        self.skipped_rows = 0
        for row in rows:
            record = self._to_record(row)
            if record is None:
                self.skipped_rows += 1
            else:
                records.append(record)

        logger.info("Data source returned %d line(s), skipped %d", len(records), self.skipped_rows)
        return records

    def check_connection(self) -> dict:
        """Run a trivial query; used by the `check` command."""
        try:
            with self._conn() as conn:
                conn.execute(text("SELECT 1")).scalar()
            return {"ok": True}
        except SourceUnavailable as exc:
            return {"ok": False, "error": str(exc)}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_record(row: Any) -> Optional[OrderLineRecord]:
        try:
            return OrderLineRecord.model_validate(dict(row))
        except ValidationError as exc:
            logger.warning(
                "Skipping unreadable row for PO %s item %s: %s",
                row.get("PurchaseOrderNumber"), row.get("PurchaseOrderItem"), exc,
            )
            return None
