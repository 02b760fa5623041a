"""
Run orchestration for the PO DatePromised alert.

AlertRunner.run_once() performs one pass:
  1. Fetch     -- open PO lines inside the window (PurchaseOrderSource)
  2. Classify  -- bucket each line as due soon / overdue
  3. Group     -- one group per purchase order
  4. Render    -- subject + text + HTML report
  5. Deliver   -- single email to the configured recipients (SmtpMailer)

"today" is read once per run from the runner's clock and handed to both the
data source and the classifier. An empty fetch ends the run after step 1:
no report, no email.

Runs are single-flight: a run that starts while another is still fetching or
delivering is skipped, never queued. serve() fires run_once() on worker
threads at the times given by a CronSchedule or IntervalSchedule, so a slow
run leads to skipped ticks instead of a delayed timer.
"""
import logging
import signal
import threading
import time
from datetime import date, datetime
from typing import Callable, Optional

from config import Config
from errors import DeliveryFailure, SourceUnavailable
from models.report import ReportParameters, RunResult
from .classifier import classify_lines
from .database import PurchaseOrderSource
from .grouper import group_by_purchase_order
from .mailer import SmtpMailer
from .renderer import render_report
from .schedule import CronSchedule, IntervalSchedule

logger = logging.getLogger(__name__)


class AlertRunner:
    """
    Owns the data source and mail transport for the lifetime of the process
    and guards them against overlapping runs.
    """

    def __init__(
        self,
        config: Config,
        source: Optional[PurchaseOrderSource] = None,
        mailer: Optional[SmtpMailer] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        self.source = source or PurchaseOrderSource(config)
        self._mailer = mailer
        self.clock = clock
        self._run_lock = threading.Lock()
        self._shutdown = threading.Event()

    @property
    def mailer(self) -> SmtpMailer:
        # Built lazily so dry runs work without SMTP settings.
        if self._mailer is None:
            self._mailer = SmtpMailer(self.config)
        return self._mailer

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run_once(self, today: Optional[date] = None, dry_run: bool = False) -> RunResult:
        """
        Execute one fetch-classify-group-render-deliver pass.

        Returns a RunResult with status "skipped" if another run is in flight.
        SourceUnavailable and DeliveryFailure propagate to the caller.
        """
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Previous run still in progress, skipping this invocation.")
            return RunResult(status="skipped")
        try:
            return self._run(today or self.clock().date(), dry_run)
        finally:
            self._run_lock.release()

    def serve(
        self,
        schedule: CronSchedule | IntervalSchedule,
        run_on_startup: bool = True,
    ) -> None:
        """
        Run at the times given by *schedule* until SIGINT/SIGTERM or stop().

        Each due time starts run_once() on a worker thread. Errors from a run
        are logged and never stop the loop. After a stall (suspend, clock
        jump) only one run fires; missed times are not replayed.
        """
        logger.info("Scheduler started (%s, run_on_startup=%s)", schedule, run_on_startup)
        self._shutdown.clear()

        def _request_shutdown(signum, frame):  # noqa: ANN001
            logger.info("Shutdown signal received, stopping scheduler.")
            self.stop()

        previous_handlers = {
            sig: signal.signal(sig, _request_shutdown) for sig in (signal.SIGINT, signal.SIGTERM)
        }

        workers: list[threading.Thread] = []
        now = self.clock()
        next_fire = now if run_on_startup else schedule.next_after(now)
        logger.info("Next run at %s", next_fire.isoformat(timespec="seconds"))

        try:
            while not self._shutdown.is_set():
                now = self.clock()
                if now >= next_fire:
                    workers = [w for w in workers if w.is_alive()]
                    worker = threading.Thread(
                        target=self._scheduled_run, name="po-alert-run", daemon=True,
                    )
                    worker.start()
                    workers.append(worker)
                    next_fire = schedule.next_after(now)
                    logger.info("Next run at %s", next_fire.isoformat(timespec="seconds"))
                # Interruptible sleep: check shutdown flag every second
                time.sleep(min(1.0, max(0.0, (next_fire - self.clock()).total_seconds())))
        finally:
            for sig, handler in previous_handlers.items():
                signal.signal(sig, handler)
            for worker in workers:
                if worker.is_alive():
                    logger.info("Waiting for the in-flight run to finish...")
                    worker.join()
            logger.info("Scheduler stopped.")

    def stop(self) -> None:
        """Ask a running serve() loop to exit after its current sleep."""
        self._shutdown.set()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _scheduled_run(self) -> None:
        try:
            self.run_once()
        except (SourceUnavailable, DeliveryFailure) as exc:
            logger.error("Scheduled run failed: %s", exc)
        except Exception as exc:
            logger.error("Scheduled run error: %s", exc, exc_info=True)

    def _run(self, today: date, dry_run: bool) -> RunResult:
        start = time.monotonic()
        cfg = self.config
        logger.info("=== Running PO DatePromised check for %s ===", today.isoformat())

        try:
            # Step 1: Fetch
            logger.info("Step 1/5: Fetching open PO lines")
            try:
                records = self.source.fetch_open_lines(
                    cfg.threshold_days, cfg.include_overdue, today,
                )
            except SourceUnavailable as exc:
                logger.error("Fetch failed: %s", exc)
                raise
            skipped = self.source.skipped_rows
            if not records:
                logger.info("No lines within threshold. Nothing to email.")
                return RunResult(
                    status="empty",
                    rejected_count=skipped,
                    elapsed_seconds=self._elapsed(start),
                )

            # Step 2: Classify
            logger.info("Step 2/5: Classifying %d line(s)", len(records))
            classified = classify_lines(records, today, cfg.threshold_days, cfg.include_overdue)
            rejected = skipped + len(classified.rejected)

            # Step 3: Group
            logger.info("Step 3/5: Grouping by purchase order")
            groups = group_by_purchase_order(classified.lines)
            if not groups:
                logger.info("No classifiable lines left. Nothing to email.")
                return RunResult(
                    status="empty",
                    line_count=len(records),
                    rejected_count=rejected,
                    elapsed_seconds=self._elapsed(start),
                )

            # Step 4: Render
            logger.info("Step 4/5: Rendering report for %d PO(s)", len(groups))
            report = render_report(groups, ReportParameters(
                today=today,
                threshold_days=cfg.threshold_days,
                subject_prefix=cfg.subject_prefix,
                system_name=cfg.system_name,
            ))

            result = RunResult(
                status="dry_run" if dry_run else "sent",
                line_count=len(records),
                po_count=len(groups),
                rejected_count=rejected,
                report=report,
            )

            # Step 5: Deliver
            if dry_run:
                logger.info("Step 5/5: Dry run, email not sent (would go to %d recipient(s))",
                            len(cfg.recipients))
            else:
                logger.info("Step 5/5: Delivering report")
                try:
                    result.message_id = self.mailer.send(
                        cfg.recipients, report.subject, report.text_body, report.html_body,
                    )
                except DeliveryFailure as exc:
                    logger.error("Delivery failed: %s", exc)
                    raise

            result.elapsed_seconds = self._elapsed(start)
            logger.info(
                "Found lines: %d, POs: %d, rejected: %d (%s in %.2fs)",
                result.line_count, result.po_count, result.rejected_count,
                result.status, result.elapsed_seconds,
            )
            return result
        finally:
            self.source.close()

    @staticmethod
    def _elapsed(start: float) -> float:
        return round(time.monotonic() - start, 3)
